"""
Payment-gated checkout
Orders are only materialized after the gateway payment is verified, so an
unpaid cart never holds capacity.

Payment record states:
  created -> processing -> completed -> refunded
  created/failed -> failed (verification failure or client-reported failure)
  processing -> failed (settlement raised)
Only the request that claimed a payment (created/failed -> processing) may
settle it or move it out of processing. A completed payment is terminal for
confirm: repeating confirm returns the stored orders and never creates or
reserves anything again.

Payment kinds decide what a confirmation settles:
  checkout      replay the groups captured at initiation as paid orders
  orders        mark existing pending orders paid (capacity is already held)
  subscription  handed to the registered subscription settlement
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from ..config.settings import Settings
from ..core.database import DatabaseManager, fetch_all, fetch_one, log_action
from ..core.exceptions import (
    BaseApplicationError,
    ConcurrencyError,
    InvalidTransitionError,
    NotFoundError,
    PaymentVerificationFailedError,
    ValidationError,
)
from ..gateway.port import PaymentGateway
from ..models.base import PaginationParams
from ..models.order import Order, OrderDraft, OrderStatus, PaymentStatus
from ..models.payment import Payment, PaymentKind, PaymentRecordStatus
from .cart_service import CartService
from .checkout_service import CheckoutService
from .order_service import OrderService

logger = structlog.get_logger(__name__)

_CLAIMABLE = (PaymentRecordStatus.CREATED.value, PaymentRecordStatus.FAILED.value)
_PROCESSING = (PaymentRecordStatus.PROCESSING.value,)


@dataclass
class ConfirmResult:
    payment: Payment
    orders: List[Order] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    already_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payment": self.payment.model_dump(mode="json", exclude={"groups"}),
            "orders": [o.model_dump(mode="json") for o in self.orders],
            "errors": self.errors,
            "total_orders": len(self.orders),
            "already_completed": self.already_completed,
        }


class PaymentService:
    def __init__(self, db: DatabaseManager, gateway: PaymentGateway, checkout: CheckoutService,
                 cart: CartService, orders: OrderService, settings: Settings,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.gateway = gateway
        self.checkout = checkout
        self.cart = cart
        self.orders = orders
        self.settings = settings
        self.clock = clock
        # kind -> object with settle(conn, payment) and payment_failed(conn, payment)
        self._settlements: Dict[str, Any] = {}

    def register_settlement(self, kind, handler):
        """Attach the service that settles payments of `kind` inside the confirm transaction"""
        self._settlements[PaymentKind(kind).value] = handler

    def _groups_total(self, groups: List[OrderDraft]) -> int:
        total = 0
        for group in groups:
            _, _, subtotal = self.orders.price_items(group)
            total += subtotal + self.settings.delivery_charge_cents
        return total

    @staticmethod
    def _check_amount(declared: Optional[int], computed: int) -> int:
        amount = computed if declared is None else declared
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", details={"amount_cents": amount})
        if amount != computed:
            raise ValidationError(
                "Payment amount does not match the expected total",
                details={"amount_cents": amount, "expected_amount_cents": computed}
            )
        return amount

    def open_payment(self, user_id: int, amount_cents: int, kind=PaymentKind.CHECKOUT,
                     currency: Optional[str] = None, groups: Optional[List[OrderDraft]] = None,
                     order_ids: Optional[Sequence[int]] = None,
                     subscription_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Create the remote gateway order and the matching `created` payment row

        Raises:
            GatewayError: the gateway could not create its order
        """
        kind = PaymentKind(kind).value
        currency = currency or self.settings.currency
        now = self.clock()
        receipt = f"rcpt_{user_id}_{int(now.timestamp() * 1000)}"
        notes = {"user_id": str(user_id), "kind": kind}
        if order_ids:
            notes["order_ids"] = ",".join(str(i) for i in order_ids)
        if subscription_id is not None:
            notes["subscription_id"] = str(subscription_id)
        remote = self.gateway.create_remote_order(amount_cents, currency, receipt, notes=notes)

        snapshot = json.dumps([g.model_dump(mode="json") for g in groups]) if groups else None
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                """
                INSERT INTO payments(user_id, gateway_order_id, amount_cents, currency, status, kind,
                                     order_ids_json, cart_snapshot_json, subscription_id, response_json)
                VALUES (?, ?, ?, ?, 'created', ?, ?, ?, ?, ?)
                RETURNING *
                """,
                [user_id, remote["id"], amount_cents, currency, kind,
                 json.dumps(list(order_ids)) if order_ids else None, snapshot, subscription_id,
                 json.dumps(remote, default=str)]
            )
            log_action(conn, "payment_initiate", user_id=user_id, actor_id=user_id, detail={
                "payment_id": row["id"], "gateway_order_id": remote["id"], "amount_cents": amount_cents,
                "kind": kind
            })

        payment = Payment.from_row(row)
        logger.info("payment_initiated", payment_id=payment.id, user_id=user_id,
                    amount_cents=amount_cents, kind=kind)
        return {
            "payment": payment,
            "gateway_order_id": remote["id"],
            "amount_cents": amount_cents,
            "currency": currency,
            "key_id": self.settings.gateway_key_id,
        }

    def initiate(self, user_id: int, groups: Optional[List[OrderDraft]] = None,
                 total_amount_cents: Optional[int] = None,
                 currency: Optional[str] = None) -> Dict[str, Any]:
        """
        Open a gateway order for the cart (or the supplied groups)

        No order row or capacity reservation is created here; the groups are
        stored on the payment record and replayed on confirmation.

        Raises:
            ValidationError: empty cart or non-positive / mismatched total
            GatewayError: the gateway could not create its order
        """
        if groups is None:
            cart = self.cart.get_cart(user_id)
            if not cart.lines:
                raise ValidationError("Cart is empty")
            groups = self.cart.to_drafts(cart.groups)
            computed = cart.summary.total_cents
        else:
            if not groups:
                raise ValidationError("Cart is empty")
            computed = self._groups_total(groups)

        amount = self._check_amount(total_amount_cents, computed)
        return self.open_payment(user_id, amount, PaymentKind.CHECKOUT, currency, groups=groups)

    def initiate_for_orders(self, user_id: int, order_ids: List[int],
                            total_amount_cents: Optional[int] = None,
                            currency: Optional[str] = None) -> Dict[str, Any]:
        """
        Open a gateway order for orders already placed with payment pending

        Raises:
            ValidationError: no ids, an order that is not the user's, already
                paid or cancelled, or a mismatched total
            GatewayError: the gateway could not create its order
        """
        ids = list(dict.fromkeys(order_ids))
        if not ids:
            raise ValidationError("Order IDs are required")
        rows = self.db.execute_query(
            f"""
            SELECT id, total_amount_cents FROM orders
            WHERE id IN ({','.join('?' * len(ids))}) AND user_id = ?
              AND payment_status = 'pending' AND status <> 'cancelled'
            """,
            ids + [user_id]
        )
        found = {row["id"] for row in rows}
        missing = [i for i in ids if i not in found]
        if missing:
            raise ValidationError("Some orders were not found or are already paid",
                                  details={"order_ids": missing})

        amount = self._check_amount(total_amount_cents, sum(row["total_amount_cents"] for row in rows))
        return self.open_payment(user_id, amount, PaymentKind.ORDERS, currency, order_ids=ids)

    def find_by_gateway_order(self, user_id: Optional[int], gateway_order_id: str) -> Payment:
        query = "SELECT * FROM payments WHERE gateway_order_id = ?"
        params: list = [gateway_order_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        row = self.db.execute_one(query, params)
        if not row:
            raise NotFoundError("Payment not found", details={"gateway_order_id": gateway_order_id})
        return Payment.from_row(row)

    def _completed_result(self, payment: Payment) -> ConfirmResult:
        return ConfirmResult(payment=payment, orders=self.orders.get_orders(payment.order_ids),
                             already_completed=True)

    def _mark_failed(self, payment: Payment, reason: str, detail: Optional[dict] = None,
                     from_statuses: Tuple[str, ...] = _CLAIMABLE) -> bool:
        """Move the payment to failed if it is still in one of `from_statuses`"""
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                f"""
                UPDATE payments SET status = 'failed', response_json = ?, updated_at = now()
                WHERE id = ? AND status IN ({','.join('?' * len(from_statuses))})
                RETURNING id
                """,
                [json.dumps({"reason": reason, **(detail or {})}, default=str), payment.id, *from_statuses]
            )
            if row is None:
                return False
            handler = self._settlements.get(payment.kind)
            if handler is not None:
                handler.payment_failed(conn, payment)
            log_action(conn, "payment_failed", user_id=payment.user_id, actor_id=payment.user_id,
                       detail={"payment_id": payment.id, "reason": reason})
        logger.info("payment_failed", payment_id=payment.id, reason=reason)
        return True

    def confirm(self, user_id: int, gateway_order_id: str, gateway_payment_id: str,
                signature: str, groups: Optional[List[OrderDraft]] = None) -> ConfirmResult:
        """
        Verify the gateway callback and settle what the payment was for

        `groups` may replace the stored checkout snapshot, but only when they
        price to exactly the amount that was paid.

        Raises:
            NotFoundError: unknown payment for this user
            PaymentVerificationFailedError: signature mismatch
            ValidationError: supplied groups on a non-checkout payment or at a different total
            InvalidTransitionError: payment was refunded
            ConcurrencyError: another confirmation for the same payment is in flight
        """
        payment = self.find_by_gateway_order(user_id, gateway_order_id)
        if payment.status == PaymentRecordStatus.COMPLETED.value:
            return self._completed_result(payment)
        if payment.status == PaymentRecordStatus.REFUNDED.value:
            raise InvalidTransitionError("Payment has been refunded", details={"payment_id": payment.id})

        if not self.gateway.verify_signature(gateway_order_id, gateway_payment_id, signature):
            # A payment claimed by another request stays processing
            self._mark_failed(payment, "signature_mismatch", {"gateway_payment_id": gateway_payment_id},
                              from_statuses=_CLAIMABLE)
            raise PaymentVerificationFailedError(
                "Payment verification failed", details={"gateway_order_id": gateway_order_id}
            )

        if groups is not None:
            self._check_replacement_groups(payment, groups)

        with self.db.transaction() as conn:
            claimed = fetch_one(
                conn,
                f"""
                UPDATE payments
                SET status = 'processing', gateway_payment_id = ?, gateway_signature = ?, updated_at = now()
                WHERE id = ? AND status IN ({','.join('?' * len(_CLAIMABLE))})
                RETURNING id
                """,
                [gateway_payment_id, signature, payment.id, *_CLAIMABLE]
            )
        if claimed is None:
            current = self.find_by_gateway_order(user_id, gateway_order_id)
            if current.status == PaymentRecordStatus.COMPLETED.value:
                return self._completed_result(current)
            raise ConcurrencyError("Payment is already being processed",
                                   details={"payment_id": payment.id, "status": current.status})

        try:
            if payment.kind == PaymentKind.CHECKOUT.value:
                orders, errors = self._settle_checkout(user_id, payment, groups)
                row = self._complete(payment, orders, errors, gateway_payment_id)
            else:
                with self.db.transaction() as conn:
                    if payment.kind == PaymentKind.ORDERS.value:
                        orders, errors = self._settle_orders(conn, payment)
                    else:
                        self._settlement(payment.kind).settle(conn, payment)
                        orders, errors = [], []
                    row = self._complete(payment, orders, errors, gateway_payment_id)
        except BaseApplicationError as e:
            self._mark_failed(payment, e.error_code, {"message": e.message}, from_statuses=_PROCESSING)
            raise

        logger.info("payment_confirmed", payment_id=payment.id, user_id=user_id, kind=payment.kind,
                    orders=len(orders), errors=len(errors))
        return ConfirmResult(payment=Payment.from_row(row), orders=orders, errors=errors)

    def _settlement(self, kind: str):
        handler = self._settlements.get(kind)
        if handler is None:
            raise ValidationError(f"No settlement registered for {kind} payments", details={"kind": kind})
        return handler

    def _check_replacement_groups(self, payment: Payment, groups: List[OrderDraft]):
        if payment.kind != PaymentKind.CHECKOUT.value:
            raise ValidationError("Groups can only be supplied for checkout payments",
                                  details={"payment_id": payment.id, "kind": payment.kind})
        if not groups:
            raise ValidationError("At least one group is required", details={"payment_id": payment.id})
        groups_total = self._groups_total(groups)
        if groups_total != payment.amount_cents:
            raise ValidationError(
                "Groups total does not match the paid amount",
                details={"payment_id": payment.id, "amount_cents": payment.amount_cents,
                         "groups_total_cents": groups_total}
            )

    def _settle_checkout(self, user_id: int, payment: Payment,
                         groups: Optional[List[OrderDraft]]) -> Tuple[List[Order], List[str]]:
        drafts = groups if groups is not None else [OrderDraft.model_validate(g) for g in payment.groups]
        result = self.checkout.checkout(user_id, drafts, status=OrderStatus.CONFIRMED,
                                        payment_status=PaymentStatus.PAID, payment_id=payment.id)
        if result.orders:
            self.cart.clear(user_id)
        return result.orders, result.errors

    def _settle_orders(self, conn, payment: Payment) -> Tuple[List[Order], List[str]]:
        """Mark the still-payable orders paid; cancelled or already paid ones are reported"""
        ids = payment.order_ids
        rows = fetch_all(
            conn,
            f"""
            UPDATE orders
            SET payment_status = 'paid', paid_at = ?, payment_id = ?,
                status = CASE WHEN status = 'pending' THEN 'confirmed' ELSE status END,
                updated_at = now()
            WHERE id IN ({','.join('?' * len(ids))}) AND user_id = ?
              AND payment_status = 'pending' AND status <> 'cancelled'
            RETURNING *
            """,
            [self.clock(), payment.id, *ids, payment.user_id]
        )
        orders = sorted((Order.from_row(row) for row in rows), key=lambda o: o.id)
        paid = {o.id for o in orders}
        errors = [f"Order {order_id}: no longer payable" for order_id in ids if order_id not in paid]
        return orders, errors

    def _complete(self, payment: Payment, orders: List[Order], errors: List[str],
                  gateway_payment_id: str) -> Dict[str, Any]:
        order_ids = [o.id for o in orders]
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                """
                UPDATE payments
                SET status = 'completed', order_ids_json = ?, completed_at = ?, response_json = ?, updated_at = now()
                WHERE id = ? AND status = 'processing'
                RETURNING *
                """,
                [json.dumps(order_ids), self.clock(),
                 json.dumps({"errors": errors, "gateway_payment_id": gateway_payment_id}),
                 payment.id]
            )
            if row is None:
                raise ConcurrencyError("Payment left processing during settlement",
                                       details={"payment_id": payment.id})
            log_action(conn, "payment_confirm", user_id=payment.user_id, actor_id=payment.user_id, detail={
                "payment_id": payment.id, "kind": payment.kind, "order_ids": order_ids, "errors": errors
            })
        return row

    def record_failure(self, user_id: int, gateway_order_id: str, reason: Optional[str] = None,
                       detail: Optional[dict] = None) -> Payment:
        """Client-reported gateway failure (user closed the widget, card declined, ...)"""
        payment = self.find_by_gateway_order(user_id, gateway_order_id)
        if payment.status not in _CLAIMABLE or not self._mark_failed(payment, reason or "client_reported", detail):
            current = self.find_by_gateway_order(user_id, gateway_order_id)
            raise InvalidTransitionError(
                f"Cannot mark a {current.status} payment as failed",
                details={"payment_id": payment.id, "status": current.status}
            )
        return self.find_by_gateway_order(user_id, gateway_order_id)

    def get_payment(self, user_id: Optional[int], payment_id: int) -> Payment:
        query = "SELECT * FROM payments WHERE id = ?"
        params: list = [payment_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        row = self.db.execute_one(query, params)
        if not row:
            raise NotFoundError("Payment not found", details={"payment_id": payment_id})
        return Payment.from_row(row)

    def list_payments(self, user_id: Optional[int] = None, status: Optional[str] = None,
                      pagination: Optional[PaginationParams] = None) -> Tuple[List[Payment], int]:
        pagination = pagination or PaginationParams()
        conditions, params = [], []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(getattr(status, "value", status))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        with self.db.session() as conn:
            total = fetch_one(conn, f"SELECT COUNT(*) AS n FROM payments {where}", params)["n"]
            rows = fetch_all(
                conn,
                f"SELECT * FROM payments {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                params + [pagination.size, pagination.offset]
            )
        return [Payment.from_row(row) for row in rows], total

    def refund(self, payment_id: int, actor_id: int, reason: Optional[str] = None) -> Payment:
        """
        Admin refund: completed -> refunded, linked orders' payment status -> refunded

        Orders stay in their current lifecycle status; cancelling them is a
        separate admin action.
        """
        payment = self.get_payment(None, payment_id)
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                "UPDATE payments SET status = 'refunded', updated_at = now() WHERE id = ? AND status = 'completed' RETURNING *",
                [payment_id]
            )
            if row is None:
                raise InvalidTransitionError(
                    f"Only completed payments can be refunded (status '{payment.status}')",
                    details={"payment_id": payment_id, "status": payment.status}
                )
            if payment.order_ids:
                conn.execute(
                    f"""
                    UPDATE orders SET payment_status = 'refunded', updated_at = now()
                    WHERE id IN ({','.join('?' * len(payment.order_ids))})
                    """,
                    list(payment.order_ids)
                )
            log_action(conn, "payment_refund", user_id=payment.user_id, actor_id=actor_id, detail={
                "payment_id": payment_id, "order_ids": payment.order_ids, "reason": reason
            })
        logger.info("payment_refunded", payment_id=payment_id, actor_id=actor_id)
        return Payment.from_row(row)
