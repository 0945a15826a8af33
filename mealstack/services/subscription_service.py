"""
Subscription service
Prepaid meal packages. A subscription is created awaiting payment and is
activated by the confirmation of its gateway payment.

Subscription states:
  pending_payment -> active
  pending_payment -> payment_failed -> active (a retried payment confirms)
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import duckdb
import structlog

from ..config.settings import Settings
from ..core.database import DatabaseManager, fetch_all, fetch_one, log_action
from ..core.exceptions import (
    DuplicateOrderNumberError,
    InvalidAddressError,
    InvalidDateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..models.base import PaginationParams
from ..models.payment import Payment, PaymentKind
from ..models.subscription import PAYABLE_STATUSES, Subscription, SubscriptionStatus
from .address_service import AddressBook
from .order_service import generate_order_number
from .payment_service import ConfirmResult, PaymentService

logger = structlog.get_logger(__name__)

INSTRUCTIONS_MAX_LENGTH = 500


def generate_subscription_number(now: datetime) -> str:
    return generate_order_number(now, prefix="SUB")


class SubscriptionService:
    def __init__(self, db: DatabaseManager, payments: PaymentService, addresses: AddressBook,
                 settings: Settings, clock: Callable[[], datetime] = datetime.now,
                 number_factory: Callable[[datetime], str] = generate_subscription_number):
        self.db = db
        self.payments = payments
        self.addresses = addresses
        self.settings = settings
        self.clock = clock
        self.number_factory = number_factory
        payments.register_settlement(PaymentKind.SUBSCRIPTION, self)

    def package_price(self, package_type: str) -> int:
        price = self.settings.subscription_packages.get(package_type)
        if price is None:
            raise ValidationError(
                "Unknown subscription package",
                details={"package_type": package_type,
                         "available": sorted(self.settings.subscription_packages)}
            )
        return price

    def create_subscription(self, user_id: int, data: Dict[str, Any]) -> Subscription:
        """
        Create a subscription awaiting payment

        The price comes from the configured package; a declared price must match it.

        Raises:
            ValidationError: unknown package or mismatched price
            InvalidDateError: start before tomorrow or end before start
            InvalidAddressError: address not owned, inactive or unverified
        """
        price = self.package_price(data["package_type"])
        declared = data.get("price_cents")
        if declared is not None and declared != price:
            raise ValidationError(
                "Package price does not match",
                details={"price_cents": declared, "expected_price_cents": price}
            )

        start_date: date = data["start_date"]
        end_date: date = data["end_date"]
        now = self.clock()
        tomorrow = now.date() + timedelta(days=1)
        if start_date < tomorrow:
            raise InvalidDateError("Start date must be at least tomorrow",
                                   details={"start_date": start_date.isoformat()})
        if end_date < start_date:
            raise InvalidDateError(
                "End date must not be before the start date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            )

        address = self.addresses.find_owned_verified_address(user_id, data["address_id"])
        if address is None:
            raise InvalidAddressError(
                "Delivery address not found, inactive or not yet verified",
                details={"address_id": data["address_id"]}
            )

        number = self.number_factory(now)
        instructions = (data.get("special_instructions") or "").strip()[:INSTRUCTIONS_MAX_LENGTH] or None
        with self.db.transaction() as conn:
            try:
                row = fetch_one(
                    conn,
                    """
                    INSERT INTO subscriptions(subscription_number, user_id, package_type, package_title,
                                              price_cents, start_date, end_date, delivery_address,
                                              nearest_location, address_id, special_instructions,
                                              payment_method, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending_payment')
                    RETURNING *
                    """,
                    [number, user_id, data["package_type"], data["package_title"], price,
                     start_date, end_date, address.address, address.nearest_location, address.id,
                     instructions, data.get("payment_method") or "razorpay"]
                )
            except duckdb.ConstraintException as e:
                if "subscription_number" in str(e):
                    raise DuplicateOrderNumberError(
                        "Generated subscription number already exists, please retry",
                        details={"subscription_number": number}
                    ) from e
                raise
            log_action(conn, "subscription_create", user_id=user_id, actor_id=user_id, detail={
                "subscription_id": row["id"], "package_type": data["package_type"], "price_cents": price
            })

        logger.info("subscription_created", subscription_id=row["id"], user_id=user_id,
                    package_type=data["package_type"])
        return Subscription.model_validate(row)

    def get_subscription(self, user_id: Optional[int], subscription_id: int) -> Subscription:
        query = "SELECT * FROM subscriptions WHERE id = ?"
        params: list = [subscription_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        row = self.db.execute_one(query, params)
        if not row:
            raise NotFoundError("Subscription not found", details={"subscription_id": subscription_id})
        return Subscription.model_validate(row)

    def list_subscriptions(self, user_id: Optional[int] = None, status: Optional[str] = None,
                           pagination: Optional[PaginationParams] = None) -> Tuple[List[Subscription], int]:
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
            total = fetch_one(conn, f"SELECT COUNT(*) AS n FROM subscriptions {where}", params)["n"]
            rows = fetch_all(
                conn,
                f"SELECT * FROM subscriptions {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                params + [pagination.size, pagination.offset]
            )
        return [Subscription.model_validate(row) for row in rows], total

    def initiate_payment(self, user_id: int, subscription_id: int,
                         currency: Optional[str] = None) -> Dict[str, Any]:
        """
        Open a gateway payment for the subscription price

        Raises:
            NotFoundError: unknown subscription for this user
            InvalidTransitionError: subscription is not awaiting payment
            GatewayError: the gateway could not create its order
        """
        subscription = self.get_subscription(user_id, subscription_id)
        if subscription.status not in PAYABLE_STATUSES:
            raise InvalidTransitionError(
                "Payment already processed for this subscription",
                details={"subscription_id": subscription_id, "status": subscription.status}
            )

        handle = self.payments.open_payment(user_id, subscription.price_cents, PaymentKind.SUBSCRIPTION,
                                            currency, subscription_id=subscription.id)
        with self.db.transaction() as conn:
            conn.execute("UPDATE subscriptions SET payment_id = ?, updated_at = now() WHERE id = ?",
                         [handle["payment"].id, subscription.id])
        handle["subscription"] = self.get_subscription(user_id, subscription_id)
        return handle

    def confirm_payment(self, user_id: int, subscription_id: int, gateway_order_id: str,
                        gateway_payment_id: str, signature: str) -> Tuple[Subscription, ConfirmResult]:
        """Confirm the gateway payment of this subscription (idempotent)"""
        subscription = self.get_subscription(user_id, subscription_id)
        payment = self.payments.find_by_gateway_order(user_id, gateway_order_id)
        if payment.kind != PaymentKind.SUBSCRIPTION.value or payment.subscription_id != subscription.id:
            raise ValidationError(
                "Payment does not belong to this subscription",
                details={"subscription_id": subscription_id, "gateway_order_id": gateway_order_id}
            )
        result = self.payments.confirm(user_id, gateway_order_id, gateway_payment_id, signature)
        return self.get_subscription(user_id, subscription_id), result

    # Settlement hooks called by PaymentService inside its transactions

    def settle(self, conn, payment: Payment):
        row = fetch_one(
            conn,
            f"""
            UPDATE subscriptions
            SET status = 'active', activated_at = ?, payment_id = ?, updated_at = now()
            WHERE id = ? AND status IN ({','.join('?' * len(PAYABLE_STATUSES))})
            RETURNING id
            """,
            [self.clock(), payment.id, payment.subscription_id, *PAYABLE_STATUSES]
        )
        if row is None:
            raise InvalidTransitionError("Subscription is no longer awaiting payment",
                                         details={"subscription_id": payment.subscription_id})
        log_action(conn, "subscription_activate", user_id=payment.user_id, actor_id=payment.user_id,
                   detail={"subscription_id": payment.subscription_id, "payment_id": payment.id})
        logger.info("subscription_activated", subscription_id=payment.subscription_id, payment_id=payment.id)

    def payment_failed(self, conn, payment: Payment):
        conn.execute(
            "UPDATE subscriptions SET status = ?, updated_at = now() WHERE id = ? AND status = ?",
            [SubscriptionStatus.PAYMENT_FAILED.value, payment.subscription_id,
             SubscriptionStatus.PENDING_PAYMENT.value]
        )
