"""
Subscription data models
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .base import BaseEntity, TimestampMixin


class SubscriptionStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    PAYMENT_FAILED = "payment_failed"


# Statuses from which a gateway payment may be (re)started
PAYABLE_STATUSES = (SubscriptionStatus.PENDING_PAYMENT.value, SubscriptionStatus.PAYMENT_FAILED.value)


class Subscription(BaseEntity, TimestampMixin):
    """Prepaid meal package for a date range"""
    id: int = Field(..., description="Subscription ID")
    subscription_number: str = Field(..., description="Public subscription number")
    user_id: int = Field(..., description="Owning user")
    package_type: str = Field(..., description="Package key")
    package_title: str = Field(..., description="Package title shown to the customer")
    price_cents: int = Field(..., description="Package price (cents)")
    start_date: date
    end_date: date
    delivery_address: str = Field(..., description="Address text captured at creation")
    nearest_location: Optional[str] = None
    address_id: Optional[int] = None
    special_instructions: Optional[str] = None
    payment_method: str = "razorpay"
    status: SubscriptionStatus = SubscriptionStatus.PENDING_PAYMENT
    payment_id: Optional[int] = None
    activated_at: Optional[datetime] = None
