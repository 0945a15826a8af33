"""
Subscription request schemas
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class CreateSubscriptionRequest(BaseModel):
    package_type: str = Field(..., min_length=1, max_length=100, description="Configured package key")
    package_title: str = Field(..., min_length=1, max_length=200, description="Title shown to the customer")
    price_cents: Optional[int] = Field(None, gt=0, description="Price shown to the customer, checked against the package")
    start_date: date = Field(..., description="First delivery date, tomorrow at the earliest")
    end_date: date = Field(..., description="Last delivery date")
    address_id: int = Field(..., description="Verified delivery address ID")
    special_instructions: Optional[str] = Field(None, max_length=1000, description="Instructions (stored up to 500 chars)")
    payment_method: Optional[str] = Field(None, max_length=50, description="Payment method label")


class SubscriptionPaymentRequest(BaseModel):
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO currency code")


class ConfirmSubscriptionPaymentRequest(BaseModel):
    gateway_order_id: str = Field(..., description="Gateway order ID")
    gateway_payment_id: str = Field(..., description="Gateway payment ID")
    signature: str = Field(..., description="Gateway signature")
