"""
Payment data models
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseEntity, TimestampMixin, load_json


class PaymentRecordStatus(str, Enum):
    """Gateway payment record status"""
    CREATED = "created"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentKind(str, Enum):
    """What a confirmed payment settles"""
    CHECKOUT = "checkout"  # cart groups, orders created on confirmation
    ORDERS = "orders"  # existing pending orders
    SUBSCRIPTION = "subscription"


class Payment(BaseEntity, TimestampMixin):
    """Payment record linking a gateway order to what it paid for"""
    id: int
    user_id: int
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount_cents: int
    currency: str = "INR"
    status: PaymentRecordStatus
    kind: PaymentKind = PaymentKind.CHECKOUT
    order_ids: List[int] = Field(default_factory=list)
    groups: List[Dict[str, Any]] = Field(default_factory=list, description="Checkout groups captured at initiation")
    subscription_id: Optional[int] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Payment":
        data = dict(row)
        data["order_ids"] = load_json(data.pop("order_ids_json", None), [])
        data["groups"] = load_json(data.pop("cart_snapshot_json", None), [])
        data.pop("gateway_signature", None)
        data.pop("response_json", None)
        return cls.model_validate(data)
