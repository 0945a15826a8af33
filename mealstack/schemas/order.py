"""
Order request/response schemas
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.order import DraftItem, MealType, OrderDraft, OrderStatus, PaymentStatus


class OrderItemRequest(BaseModel):
    """One requested line; the price always comes from the catalog"""
    menu_item_id: int = Field(..., description="Menu item ID")
    quantity: int = Field(1, ge=1, le=20, description="Quantity")


class PlaceOrderRequest(BaseModel):
    """Single order placement request"""
    order_date: date = Field(..., description="Delivery date")
    meal_type: MealType = Field(..., description="breakfast, lunch or dinner")
    items: List[OrderItemRequest] = Field(..., min_length=1, description="Requested items")
    address_id: int = Field(..., description="Verified delivery address ID")
    notes: Optional[str] = Field(None, max_length=1000, description="Delivery notes (stored up to 500 chars)")
    total_amount_cents: Optional[int] = Field(None, ge=0, description="Total shown to the customer, checked against the computed total")

    def to_draft(self) -> OrderDraft:
        return OrderDraft(
            order_date=self.order_date,
            meal_type=self.meal_type,
            items=[DraftItem(menu_item_id=i.menu_item_id, quantity=i.quantity) for i in self.items],
            address_id=self.address_id,
            notes=self.notes,
            declared_total_cents=self.total_amount_cents,
        )


class BulkOrderRequest(BaseModel):
    """Bulk checkout: one order per group"""
    groups: List[PlaceOrderRequest] = Field(..., min_length=1, max_length=50, description="Checkout groups")

    def to_drafts(self) -> List[OrderDraft]:
        return [g.to_draft() for g in self.groups]


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000, description="Cancellation reason (stored up to 200 chars)")


class OrderStatusUpdateRequest(BaseModel):
    """Admin status change"""
    status: OrderStatus = Field(..., description="New status")
    reason: Optional[str] = Field(None, max_length=1000, description="Reason, used when cancelling")


class PaymentStatusUpdateRequest(BaseModel):
    payment_status: PaymentStatus = Field(..., description="New payment status")
