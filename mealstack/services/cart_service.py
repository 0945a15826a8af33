"""
Shopping cart service
Cart lines capture the item price and name at add time. Lines are grouped by
(date, meal type, address); each group becomes one order at checkout and
carries one delivery charge.
"""

from collections import OrderedDict
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..config.settings import Settings
from ..core.database import DatabaseManager, fetch_all, fetch_one
from ..core.exceptions import (
    InvalidAddressError,
    InvalidDateError,
    ItemUnavailableError,
    NotFoundError,
    ValidationError,
)
from ..models.base import day_name
from ..models.cart import Cart, CartLine, CartSummary, DeliveryGroup
from ..models.order import DraftItem, MealType, OrderDraft
from .menu_service import MenuCatalog

logger = structlog.get_logger(__name__)


class CartService:
    def __init__(self, db: DatabaseManager, catalog: MenuCatalog, settings: Settings,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.catalog = catalog
        self.settings = settings
        self.clock = clock

    def _lines(self, conn, user_id: int) -> List[CartLine]:
        rows = fetch_all(
            conn,
            """
            SELECT * FROM cart_items WHERE user_id = ?
            ORDER BY order_date,
                     CASE meal_type WHEN 'breakfast' THEN 0 WHEN 'lunch' THEN 1 ELSE 2 END,
                     id
            """,
            [user_id]
        )
        return [CartLine.model_validate(row) for row in rows]

    def _get_line(self, conn, user_id: int, line_id: int) -> dict:
        row = fetch_one(conn, "SELECT * FROM cart_items WHERE id = ? AND user_id = ?", [line_id, user_id])
        if not row:
            raise NotFoundError("Cart item not found", details={"cart_item_id": line_id})
        return row

    def _check_owned_address(self, conn, user_id: int, address_id: Optional[int]):
        if address_id is None:
            return
        row = fetch_one(
            conn,
            "SELECT id FROM addresses WHERE id = ? AND user_id = ? AND is_active = TRUE",
            [address_id, user_id]
        )
        if not row:
            raise InvalidAddressError("Invalid address selected", details={"address_id": address_id})

    def get_cart(self, user_id: int) -> Cart:
        with self.db.session() as conn:
            lines = self._lines(conn, user_id)
        groups = self.group_lines(lines)
        subtotal = sum(line.line_total_cents for line in lines)
        delivery = sum(g.delivery_charge_cents for g in groups)
        summary = CartSummary(
            total_items=sum(line.quantity for line in lines),
            total_lines=len(lines),
            subtotal_cents=subtotal,
            delivery_charges_cents=delivery,
            total_cents=subtotal + delivery,
            delivery_groups=len(groups),
            missing_address_lines=sum(1 for line in lines if line.address_id is None),
        )
        return Cart(lines=lines, groups=groups, summary=summary)

    def group_lines(self, lines: List[CartLine]) -> List[DeliveryGroup]:
        """Bucket lines by (date, meal type, address), preserving cart order"""
        buckets: "OrderedDict[Tuple, DeliveryGroup]" = OrderedDict()
        for line in lines:
            key = (line.order_date, line.meal_type, line.address_id)
            group = buckets.get(key)
            if group is None:
                group = DeliveryGroup(
                    order_date=line.order_date,
                    day_of_week=line.day_of_week,
                    meal_type=line.meal_type,
                    address_id=line.address_id,
                    delivery_charge_cents=self.settings.delivery_charge_cents,
                )
                buckets[key] = group
            group.lines.append(line)
            group.subtotal_cents += line.line_total_cents
        for group in buckets.values():
            group.total_cents = group.subtotal_cents + group.delivery_charge_cents
        return list(buckets.values())

    def to_drafts(self, groups: List[DeliveryGroup]) -> List[OrderDraft]:
        """Checkout drafts for delivery groups, carrying the captured cart prices"""
        drafts = []
        for group in groups:
            if group.address_id is None:
                raise InvalidAddressError(
                    "Every cart item needs a delivery address before checkout",
                    details={"order_date": group.order_date.isoformat(), "meal_type": group.meal_type}
                )
            drafts.append(OrderDraft(
                order_date=group.order_date,
                meal_type=group.meal_type,
                address_id=group.address_id,
                items=[
                    DraftItem(menu_item_id=line.menu_item_id, quantity=line.quantity,
                              unit_price_cents=line.unit_price_cents)
                    for line in group.lines
                ],
                declared_total_cents=group.total_cents,
            ))
        return drafts

    def add_line(self, user_id: int, menu_item_id: int, order_date: date, meal_type,
                 quantity: int = 1, address_id: Optional[int] = None) -> CartLine:
        """Add an item; an identical (item, date, meal, address) line has its quantity increased"""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if order_date < self.clock().date():
            raise InvalidDateError("Cannot add items for past dates",
                                   details={"order_date": order_date.isoformat()})
        meal = MealType(getattr(meal_type, "value", meal_type)).value
        item = self.catalog.find_active_items([menu_item_id]).get(menu_item_id)
        if item is None:
            raise ItemUnavailableError([menu_item_id])

        with self.db.transaction() as conn:
            self._check_owned_address(conn, user_id, address_id)
            existing = fetch_one(
                conn,
                """
                SELECT id FROM cart_items
                WHERE user_id = ? AND menu_item_id = ? AND order_date = ? AND meal_type = ?
                  AND address_id IS NOT DISTINCT FROM ?
                """,
                [user_id, menu_item_id, order_date, meal, address_id]
            )
            if existing:
                row = fetch_one(
                    conn,
                    "UPDATE cart_items SET quantity = quantity + ?, updated_at = now() WHERE id = ? RETURNING *",
                    [quantity, existing["id"]]
                )
            else:
                row = fetch_one(
                    conn,
                    """
                    INSERT INTO cart_items(user_id, menu_item_id, order_date, day_of_week, meal_type, quantity,
                                           unit_price_cents, item_name, is_special_item, address_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    RETURNING *
                    """,
                    [user_id, menu_item_id, order_date, day_name(order_date), meal, quantity,
                     item.price_cents, item.name, item.is_special_item, address_id]
                )
        logger.info("cart_line_added", user_id=user_id, cart_item_id=row["id"], quantity=row["quantity"])
        return CartLine.model_validate(row)

    def update_quantity(self, user_id: int, line_id: int, quantity: int) -> CartLine:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        with self.db.transaction() as conn:
            self._get_line(conn, user_id, line_id)
            row = fetch_one(
                conn,
                "UPDATE cart_items SET quantity = ?, updated_at = now() WHERE id = ? RETURNING *",
                [quantity, line_id]
            )
        return CartLine.model_validate(row)

    def update_address(self, user_id: int, line_id: int, address_id: Optional[int]) -> CartLine:
        """Move a line to another address, merging into an identical line if one exists"""
        with self.db.transaction() as conn:
            line = self._get_line(conn, user_id, line_id)
            self._check_owned_address(conn, user_id, address_id)
            twin = fetch_one(
                conn,
                """
                SELECT id FROM cart_items
                WHERE user_id = ? AND menu_item_id = ? AND order_date = ? AND meal_type = ?
                  AND address_id IS NOT DISTINCT FROM ? AND id <> ?
                """,
                [user_id, line["menu_item_id"], line["order_date"], line["meal_type"], address_id, line_id]
            )
            if twin:
                row = fetch_one(
                    conn,
                    "UPDATE cart_items SET quantity = quantity + ?, updated_at = now() WHERE id = ? RETURNING *",
                    [line["quantity"], twin["id"]]
                )
                conn.execute("DELETE FROM cart_items WHERE id = ?", [line_id])
            else:
                row = fetch_one(
                    conn,
                    "UPDATE cart_items SET address_id = ?, updated_at = now() WHERE id = ? RETURNING *",
                    [address_id, line_id]
                )
        return CartLine.model_validate(row)

    def remove_line(self, user_id: int, line_id: int) -> None:
        with self.db.transaction() as conn:
            self._get_line(conn, user_id, line_id)
            conn.execute("DELETE FROM cart_items WHERE id = ?", [line_id])

    def remove_lines(self, user_id: int, line_ids: List[int]) -> int:
        if not line_ids:
            return 0
        with self.db.transaction() as conn:
            rows = fetch_all(
                conn,
                f"DELETE FROM cart_items WHERE user_id = ? AND id IN ({','.join('?' * len(line_ids))}) RETURNING id",
                [user_id] + list(line_ids)
            )
        return len(rows)

    def clear(self, user_id: int) -> int:
        with self.db.transaction() as conn:
            rows = fetch_all(conn, "DELETE FROM cart_items WHERE user_id = ? RETURNING id", [user_id])
        logger.info("cart_cleared", user_id=user_id, removed=len(rows))
        return len(rows)

    def clear_date(self, user_id: int, order_date: date) -> int:
        with self.db.transaction() as conn:
            rows = fetch_all(
                conn,
                "DELETE FROM cart_items WHERE user_id = ? AND order_date = ? RETURNING id",
                [user_id, order_date]
            )
        return len(rows)

    def clear_expired(self, user_id: Optional[int] = None) -> int:
        """Drop lines dated before today (for one user, or everyone)"""
        today = self.clock().date()
        query = "DELETE FROM cart_items WHERE order_date < ?"
        params: list = [today]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        with self.db.transaction() as conn:
            rows = fetch_all(conn, query + " RETURNING id", params)
        logger.info("cart_expired_lines_cleared", user_id=user_id, removed=len(rows))
        return len(rows)

    def group_line_ids(self, groups: List[DeliveryGroup]) -> Dict[int, List[int]]:
        """Map group position (1-based) to the ids of its cart lines"""
        return {n: [line.id for line in group.lines] for n, group in enumerate(groups, 1)}
