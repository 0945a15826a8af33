"""
Order data models
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin, load_json


class MealType(str, Enum):
    """Meal type, the unit of capacity and cutoff enforcement"""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class OrderStatus(str, Enum):
    """Order lifecycle status"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status as seen on an order"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# Statuses from which a customer (or admin) may still cancel
CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)

# Forward-only admin transitions; cancellation is handled separately
STATUS_FLOW = [
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PREPARING.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
    OrderStatus.DELIVERED.value,
]


class LineItem(BaseModel):
    """One priced line on an order"""
    menu_item_id: int = Field(..., description="Menu item ID")
    name: str = Field(..., description="Item name at order time")
    quantity: int = Field(..., ge=1, description="Quantity")
    unit_price_cents: int = Field(..., ge=0, description="Unit price (cents)")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


class DraftItem(BaseModel):
    """Requested line before catalog resolution"""
    menu_item_id: int
    quantity: int = Field(1, ge=1)
    # Price captured when the line was added to the cart; None means use the catalog price
    unit_price_cents: Optional[int] = Field(None, ge=0)


class OrderDraft(BaseModel):
    """Purchase intent for one (date, meal type, address) slot"""
    order_date: date
    meal_type: MealType
    items: List[DraftItem] = Field(..., min_length=1)
    address_id: int
    notes: Optional[str] = None
    declared_total_cents: Optional[int] = None


class Order(BaseEntity, TimestampMixin):
    """Persisted order"""
    id: int = Field(..., description="Order ID")
    order_number: str = Field(..., description="Public order number")
    user_id: int = Field(..., description="Owning user")
    order_date: date = Field(..., description="Delivery date")
    day_of_week: Optional[str] = None
    meal_type: MealType = Field(..., description="Meal type")
    selected_items: List[LineItem] = Field(default_factory=list, description="Regular items")
    special_items: List[LineItem] = Field(default_factory=list, description="Special / premium items")
    total_amount_cents: int = Field(..., description="Total incl. delivery (cents)")
    delivery_address: str = Field(..., description="Address text captured at order time")
    nearest_location: Optional[str] = Field(None, description="Landmark captured at order time")
    address_id: Optional[int] = None
    status: OrderStatus = Field(..., description="Lifecycle status")
    payment_status: PaymentStatus = Field(..., description="Payment status")
    payment_id: Optional[int] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Order":
        data = dict(row)
        data["selected_items"] = load_json(data.pop("selected_items_json", None), [])
        data["special_items"] = load_json(data.pop("special_items_json", None), [])
        return cls.model_validate(data)

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value
