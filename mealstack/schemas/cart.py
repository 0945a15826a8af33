"""
Cart request schemas
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from ..models.order import MealType


class AddCartItemRequest(BaseModel):
    menu_item_id: int = Field(..., description="Menu item ID")
    order_date: date = Field(..., description="Delivery date")
    meal_type: MealType = Field(..., description="Meal type")
    quantity: int = Field(1, ge=1, le=50, description="Quantity")
    address_id: Optional[int] = Field(None, description="Delivery address (required before checkout)")


class UpdateCartQuantityRequest(BaseModel):
    quantity: int = Field(..., ge=1, le=50, description="New quantity")


class UpdateCartAddressRequest(BaseModel):
    address_id: Optional[int] = Field(None, description="Delivery address ID, null to unset")
