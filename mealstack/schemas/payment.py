"""
Payment request schemas
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.order import OrderDraft
from .order import PlaceOrderRequest


class InitiatePaymentRequest(BaseModel):
    """Start a gateway payment for the live cart (or explicit groups)"""
    total_amount_cents: Optional[int] = Field(None, description="Amount shown to the customer; defaults to the cart total")
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO currency code")
    groups: Optional[List[PlaceOrderRequest]] = Field(None, description="Explicit checkout groups instead of the live cart")

    def to_drafts(self) -> Optional[List[OrderDraft]]:
        return None if self.groups is None else [g.to_draft() for g in self.groups]


class InitiateOrdersPaymentRequest(BaseModel):
    """Start a gateway payment for orders already placed with payment pending"""
    order_ids: List[int] = Field(..., min_length=1, max_length=50, description="Pending order IDs")
    total_amount_cents: Optional[int] = Field(None, description="Amount shown to the customer; defaults to the orders total")
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO currency code")


class ConfirmPaymentRequest(BaseModel):
    """Gateway checkout callback forwarded by the client"""
    gateway_order_id: str = Field(..., description="Gateway order ID")
    gateway_payment_id: str = Field(..., description="Gateway payment ID")
    signature: str = Field(..., description="Gateway signature")
    groups: Optional[List[PlaceOrderRequest]] = Field(None, description="Groups to create instead of the stored snapshot; must total the paid amount")

    def to_drafts(self) -> Optional[List[OrderDraft]]:
        return None if self.groups is None else [g.to_draft() for g in self.groups]


class PaymentFailureRequest(BaseModel):
    gateway_order_id: str = Field(..., description="Gateway order ID")
    reason: Optional[str] = Field(None, max_length=500, description="Failure reason")
    error: Optional[Dict[str, Any]] = Field(None, description="Raw gateway error payload")


class RefundRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Refund reason")
