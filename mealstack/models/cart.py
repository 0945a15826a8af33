"""
Shopping cart data models
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin
from .order import MealType


class CartLine(BaseEntity, TimestampMixin):
    """A pending selection; price and name are captured at add time"""
    id: int
    user_id: int
    menu_item_id: int
    order_date: date
    day_of_week: str
    meal_type: MealType
    quantity: int = Field(..., ge=1)
    unit_price_cents: int = Field(..., ge=0)
    item_name: str
    is_special_item: bool = False
    address_id: Optional[int] = None

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


class DeliveryGroup(BaseModel):
    """Cart lines that become exactly one order"""
    order_date: date
    day_of_week: str
    meal_type: MealType
    address_id: Optional[int] = None
    lines: List[CartLine] = Field(default_factory=list)
    subtotal_cents: int = 0
    delivery_charge_cents: int = 0
    total_cents: int = 0


class CartSummary(BaseModel):
    """Totals across the whole cart"""
    total_items: int = 0
    total_lines: int = 0
    subtotal_cents: int = 0
    delivery_charges_cents: int = 0
    total_cents: int = 0
    delivery_groups: int = 0
    missing_address_lines: int = 0


class Cart(BaseModel):
    lines: List[CartLine] = Field(default_factory=list)
    groups: List[DeliveryGroup] = Field(default_factory=list)
    summary: CartSummary = Field(default_factory=CartSummary)
