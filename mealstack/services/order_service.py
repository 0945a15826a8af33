"""
Order service
Turns a validated purchase intent into a persisted order while keeping the
capacity ledger consistent.

Business rules:
- orders may be placed from today up to `order_window_days` ahead
- same-day orders and cancellations close at the meal type's cutoff hour
- one order books exactly one unit of its (date, meal type) slot
- the order row and its capacity reservation commit together
- cancellation commits the status change first, then releases the unit
"""

import json
import secrets
import string
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import duckdb
import structlog

from ..config.settings import Settings
from ..core.database import DatabaseManager, fetch_all, fetch_one, log_action
from ..core.exceptions import (
    CapacityExceededError,
    DuplicateOrderNumberError,
    InvalidAddressError,
    InvalidDateError,
    InvalidTransitionError,
    ItemUnavailableError,
    NotFoundError,
    OrderWindowClosedError,
    ValidationError,
)
from ..models.base import PaginationParams, day_name
from ..models.order import (
    CANCELLABLE_STATUSES,
    STATUS_FLOW,
    LineItem,
    MealType,
    Order,
    OrderDraft,
    OrderStatus,
    PaymentStatus,
)
from ..models.user import Address
from .address_service import AddressBook
from .capacity_service import CapacityLedger
from .menu_service import MenuCatalog

logger = structlog.get_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
NOTES_MAX_LENGTH = 500
CANCEL_REASON_MAX_LENGTH = 200
CANCEL_MARKER = "--- CANCELLED ---"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number(now: datetime, prefix: str = "ORD") -> str:
    """<prefix>-<base36 epoch millis>-<5 random base36 chars>"""
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{prefix}-{_to_base36(millis)}-{suffix}"


@dataclass
class PreparedOrder:
    """A draft that passed every pre-persistence check"""
    draft: OrderDraft
    address: Address
    regular_items: List[LineItem] = field(default_factory=list)
    special_items: List[LineItem] = field(default_factory=list)
    subtotal_cents: int = 0
    delivery_charge_cents: int = 0

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.delivery_charge_cents


class OrderService:
    """Order lifecycle: placement, cancellation, queries and admin transitions"""

    def __init__(self, db: DatabaseManager, ledger: CapacityLedger, catalog: MenuCatalog,
                 addresses: AddressBook, settings: Settings,
                 clock: Callable[[], datetime] = datetime.now,
                 order_number_factory: Callable[[datetime], str] = generate_order_number):
        self.db = db
        self.ledger = ledger
        self.catalog = catalog
        self.addresses = addresses
        self.settings = settings
        self.clock = clock
        self.order_number_factory = order_number_factory

    # Validation shared by single, bulk and payment-confirmed placement

    def check_order_date(self, order_date: date, now: Optional[datetime] = None):
        """
        Date window check

        Raises:
            InvalidDateError: date in the past or beyond the ordering window
        """
        today = (now or self.clock()).date()
        if order_date < today:
            raise InvalidDateError("Cannot place orders for past dates",
                                   details={"order_date": order_date.isoformat()})
        last_day = today + timedelta(days=self.settings.order_window_days)
        if order_date > last_day:
            raise InvalidDateError(
                f"Orders can only be placed up to {self.settings.order_window_days} days in advance",
                details={"order_date": order_date.isoformat(), "last_date": last_day.isoformat()}
            )

    def check_cutoff(self, order_date: date, meal_type, action: str = "order",
                     now: Optional[datetime] = None):
        """
        Same-day cutoff check, used for both placement and cancellation

        Raises:
            OrderWindowClosedError: date is today and the cutoff hour has been reached
        """
        now = now or self.clock()
        if order_date != now.date():
            return
        meal = getattr(meal_type, "value", meal_type)
        cutoff = self.settings.cutoff_hour(meal)
        if now.hour >= cutoff:
            verb = "placed" if action == "order" else "cancelled"
            raise OrderWindowClosedError(
                f"Same-day {meal} orders must be {verb} before {cutoff:02d}:00",
                details={"meal_type": meal, "cutoff_hour": cutoff}
            )

    def resolve_address(self, user_id: int, address_id: int) -> Address:
        address = self.addresses.find_owned_verified_address(user_id, address_id)
        if address is None:
            raise InvalidAddressError(
                "Delivery address not found, inactive or not yet verified",
                details={"address_id": address_id}
            )
        return address

    def price_items(self, draft: OrderDraft) -> Tuple[List[LineItem], List[LineItem], int]:
        """
        Resolve line items against the catalog

        Returns:
            (regular items, special items, subtotal in cents)

        Raises:
            ItemUnavailableError: any referenced item is missing or inactive
        """
        catalog = self.catalog.find_active_items(i.menu_item_id for i in draft.items)
        missing = [i.menu_item_id for i in draft.items if i.menu_item_id not in catalog]
        if missing:
            raise ItemUnavailableError(missing)

        regular, special = [], []
        for requested in draft.items:
            item = catalog[requested.menu_item_id]
            unit_price = requested.unit_price_cents
            if unit_price is None:
                unit_price = item.price_cents
            line = LineItem(
                menu_item_id=item.id,
                name=item.name,
                quantity=requested.quantity,
                unit_price_cents=unit_price,
            )
            (special if item.is_special_item else regular).append(line)

        subtotal = sum(line.line_total_cents for line in regular + special)
        return regular, special, subtotal

    def prepare(self, user_id: int, draft: OrderDraft,
                address: Optional[Address] = None) -> PreparedOrder:
        """
        Run every check that precedes persistence

        Order: date window, cutoff, address, item availability, capacity.
        `address` may be passed in when the caller already resolved it.
        """
        now = self.clock()
        self.check_order_date(draft.order_date, now)
        self.check_cutoff(draft.order_date, draft.meal_type, now=now)
        if address is None:
            address = self.resolve_address(user_id, draft.address_id)

        regular, special, subtotal = self.price_items(draft)
        prepared = PreparedOrder(
            draft=draft,
            address=address,
            regular_items=regular,
            special_items=special,
            subtotal_cents=subtotal,
            delivery_charge_cents=self.settings.delivery_charge_cents,
        )
        if draft.declared_total_cents is not None and draft.declared_total_cents != prepared.total_cents:
            raise ValidationError(
                "Order total does not match item prices",
                details={"declared_total_cents": draft.declared_total_cents,
                         "expected_total_cents": prepared.total_cents}
            )

        if not self.ledger.has_availability(draft.order_date, draft.meal_type, 1):
            raise CapacityExceededError(
                f"{getattr(draft.meal_type, 'value', draft.meal_type).capitalize()} is fully booked "
                f"for {draft.order_date.isoformat()}",
                details={"date": draft.order_date.isoformat(),
                         "meal_type": getattr(draft.meal_type, "value", draft.meal_type)}
            )
        return prepared

    def persist(self, user_id: int, prepared: PreparedOrder,
                status: OrderStatus = OrderStatus.PENDING,
                payment_status: PaymentStatus = PaymentStatus.PENDING,
                payment_id: Optional[int] = None) -> Order:
        """
        Insert the order row and reserve its capacity unit in one transaction

        Raises:
            DuplicateOrderNumberError: generated order number already exists
            CapacityExceededError: slot filled up since the availability check;
                no order row survives
        """
        draft = prepared.draft
        now = self.clock()
        order_number = self.order_number_factory(now)
        notes = (draft.notes or "").strip()[:NOTES_MAX_LENGTH] or None
        paid_at = now if payment_status == PaymentStatus.PAID else None

        with self.db.transaction() as conn:
            try:
                row = fetch_one(
                    conn,
                    """
                    INSERT INTO orders(order_number, user_id, order_date, day_of_week, meal_type,
                                       selected_items_json, special_items_json, total_amount_cents,
                                       delivery_address, nearest_location, address_id,
                                       status, payment_status, payment_id, notes, paid_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    RETURNING *
                    """,
                    [
                        order_number, user_id, draft.order_date, day_name(draft.order_date),
                        getattr(draft.meal_type, "value", draft.meal_type),
                        json.dumps([i.model_dump() for i in prepared.regular_items]),
                        json.dumps([i.model_dump() for i in prepared.special_items]),
                        prepared.total_cents,
                        prepared.address.address, prepared.address.nearest_location, prepared.address.id,
                        status.value, payment_status.value, payment_id, notes, paid_at,
                    ]
                )
            except duckdb.ConstraintException as e:
                if "order_number" in str(e):
                    raise DuplicateOrderNumberError(
                        "Generated order number already exists, please retry",
                        details={"order_number": order_number}
                    ) from e
                raise

            self.ledger.reserve(draft.order_date, draft.meal_type, 1)
            log_action(conn, "order_create", user_id=user_id, actor_id=user_id, detail={
                "order_id": row["id"],
                "order_number": order_number,
                "order_date": draft.order_date.isoformat(),
                "meal_type": getattr(draft.meal_type, "value", draft.meal_type),
                "total_amount_cents": prepared.total_cents,
            })

        order = Order.from_row(row)
        logger.info("order_created", order_id=order.id, order_number=order.order_number,
                    user_id=user_id, order_date=order.order_date.isoformat(), meal_type=order.meal_type)
        return order

    def place_order(self, user_id: int, draft: OrderDraft) -> Order:
        """
        Place a single order

        Raises:
            InvalidDateError, OrderWindowClosedError, InvalidAddressError,
            ItemUnavailableError, CapacityExceededError, ValidationError,
            DuplicateOrderNumberError
        """
        prepared = self.prepare(user_id, draft)
        return self.persist(user_id, prepared)

    # Cancellation

    def cancel_order(self, user_id: Optional[int], order_id: int, reason: Optional[str] = None,
                     actor_id: Optional[int] = None) -> Order:
        """
        Cancel an order and release its capacity unit

        Args:
            user_id: owner the order must belong to; None for admin cancellation
            order_id: order to cancel
            reason: optional reason, appended to the order notes
            actor_id: who performed the cancellation (defaults to user_id)

        Raises:
            NotFoundError: no such order for that user
            InvalidTransitionError: order is not pending or confirmed
            OrderWindowClosedError: same-day cutoff has passed
        """
        order = self._load(order_id, user_id)
        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot cancel an order with status '{order.status}'",
                details={"order_id": order_id, "status": order.status}
            )
        self.check_cutoff(order.order_date, order.meal_type, action="cancel")

        reason = (reason or "").strip()[:CANCEL_REASON_MAX_LENGTH] or None
        marker = f"{CANCEL_MARKER}\nReason: {reason}" if reason else CANCEL_MARKER
        notes = f"{order.notes or ''}\n{marker}"
        actor_id = actor_id if actor_id is not None else user_id

        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                """
                UPDATE orders
                SET status = 'cancelled', notes = ?, cancellation_reason = ?,
                    cancelled_at = ?, updated_at = now()
                WHERE id = ? AND status = ?
                RETURNING *
                """,
                [notes, reason, self.clock(), order_id, order.status]
            )
            if row is None:
                raise InvalidTransitionError(
                    "Order status changed while cancelling",
                    details={"order_id": order_id}
                )
            log_action(conn, "order_cancel", user_id=order.user_id, actor_id=actor_id, detail={
                "order_id": order_id, "previous_status": order.status, "reason": reason
            })

        # Only reached once the status change is committed
        self.ledger.release(order.order_date, order.meal_type, 1)
        logger.info("order_cancelled", order_id=order_id, user_id=order.user_id, actor_id=actor_id)
        return Order.from_row(row)

    # Queries

    def _load(self, order_id: int, user_id: Optional[int] = None) -> Order:
        query = "SELECT * FROM orders WHERE id = ?"
        params: list = [order_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        row = self.db.execute_one(query, params)
        if not row:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return Order.from_row(row)

    def get_order(self, user_id: Optional[int], order_id: int) -> Order:
        return self._load(order_id, user_id)

    def get_orders(self, order_ids: List[int]) -> List[Order]:
        if not order_ids:
            return []
        rows = self.db.execute_query(
            f"SELECT * FROM orders WHERE id IN ({','.join('?' * len(order_ids))}) ORDER BY id",
            list(order_ids)
        )
        return [Order.from_row(row) for row in rows]

    def list_orders(self, user_id: Optional[int] = None, status: Optional[str] = None,
                    meal_type: Optional[str] = None, from_date: Optional[date] = None,
                    to_date: Optional[date] = None, payment_status: Optional[str] = None,
                    pagination: Optional[PaginationParams] = None) -> Tuple[List[Order], int]:
        """
        Filtered order history, newest delivery date first

        Returns:
            (orders on the requested page, total matching count)
        """
        pagination = pagination or PaginationParams()
        conditions, params = [], []
        filters = (
            ("user_id = ?", user_id),
            ("status = ?", getattr(status, "value", status)),
            ("meal_type = ?", getattr(meal_type, "value", meal_type)),
            ("order_date >= ?", from_date),
            ("order_date <= ?", to_date),
            ("payment_status = ?", getattr(payment_status, "value", payment_status)),
        )
        for clause, value in filters:
            if value is not None:
                conditions.append(clause)
                params.append(value)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self.db.session() as conn:
            total = fetch_one(conn, f"SELECT COUNT(*) AS n FROM orders {where}", params)["n"]
            rows = fetch_all(
                conn,
                f"SELECT * FROM orders {where} ORDER BY order_date DESC, id DESC LIMIT ? OFFSET ?",
                params + [pagination.size, pagination.offset]
            )
        return [Order.from_row(row) for row in rows], total

    def orders_for_date(self, user_id: int, day: date) -> List[Order]:
        rows = self.db.execute_query(
            """
            SELECT * FROM orders WHERE user_id = ? AND order_date = ?
            ORDER BY CASE meal_type WHEN 'breakfast' THEN 0 WHEN 'lunch' THEN 1 ELSE 2 END
            """,
            [user_id, day]
        )
        return [Order.from_row(row) for row in rows]

    def todays_orders(self, user_id: int) -> List[Order]:
        return self.orders_for_date(user_id, self.clock().date())

    # Admin

    def update_status(self, order_id: int, new_status: str, actor_id: int,
                      reason: Optional[str] = None) -> Order:
        """
        Admin status change

        Cancellation goes through cancel_order (cutoff gate and capacity
        release included); every other change must move forward along
        pending -> confirmed -> preparing -> out_for_delivery -> delivered.
        """
        new_status = OrderStatus(getattr(new_status, "value", new_status)).value
        if new_status == OrderStatus.CANCELLED.value:
            return self.cancel_order(None, order_id, reason, actor_id=actor_id)

        order = self._load(order_id)
        if order.status not in STATUS_FLOW or STATUS_FLOW.index(new_status) <= STATUS_FLOW.index(order.status):
            raise InvalidTransitionError(
                f"Cannot change order status from '{order.status}' to '{new_status}'",
                details={"order_id": order_id, "status": order.status, "requested": new_status}
            )

        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                "UPDATE orders SET status = ?, updated_at = now() WHERE id = ? AND status = ? RETURNING *",
                [new_status, order_id, order.status]
            )
            if row is None:
                raise InvalidTransitionError("Order status changed concurrently",
                                             details={"order_id": order_id})
            log_action(conn, "order_status_update", user_id=order.user_id, actor_id=actor_id, detail={
                "order_id": order_id, "from": order.status, "to": new_status
            })
        logger.info("order_status_updated", order_id=order_id, status=new_status, actor_id=actor_id)
        return Order.from_row(row)

    def update_payment_status(self, order_id: int, payment_status: str,
                              actor_id: Optional[int] = None) -> Order:
        payment_status = PaymentStatus(getattr(payment_status, "value", payment_status)).value
        order = self._load(order_id)
        paid_at = self.clock() if payment_status == PaymentStatus.PAID.value else order.paid_at
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                "UPDATE orders SET payment_status = ?, paid_at = ?, updated_at = now() WHERE id = ? RETURNING *",
                [payment_status, paid_at, order_id]
            )
            log_action(conn, "order_payment_status_update", user_id=order.user_id, actor_id=actor_id,
                       detail={"order_id": order_id, "from": order.payment_status, "to": payment_status})
        return Order.from_row(row)

    def status_counts(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Simple counters for the admin dashboard"""
        day = day or self.clock().date()
        with self.db.session() as conn:
            by_status = fetch_all(conn, "SELECT status, COUNT(*) AS n FROM orders GROUP BY status")
            today = fetch_all(
                conn,
                """
                SELECT meal_type, COUNT(*) AS n FROM orders
                WHERE order_date = ? AND status <> 'cancelled'
                GROUP BY meal_type
                """,
                [day]
            )
        counts = {s.value: 0 for s in OrderStatus}
        counts.update({r["status"]: r["n"] for r in by_status})
        meals = {m.value: 0 for m in MealType}
        meals.update({r["meal_type"]: r["n"] for r in today})
        return {"date": day.isoformat(), "orders_by_status": counts, "todays_orders_by_meal": meals,
                "total_orders": sum(counts.values())}
