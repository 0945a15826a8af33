"""
Menu catalog request schemas
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.order import MealType


class MenuItemCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Item name")
    meal_type: MealType = Field(..., description="Meal type")
    price_cents: int = Field(..., ge=0, description="Unit price (cents)")
    is_special_item: bool = Field(False, description="Special / premium item")
    description: Optional[str] = Field(None, max_length=1000, description="Description")
    image_url: Optional[str] = Field(None, description="Image URL")


class MenuItemUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    meal_type: Optional[MealType] = None
    price_cents: Optional[int] = Field(None, ge=0)
    is_special_item: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class WeeklyMenuRequest(BaseModel):
    item_ids: List[int] = Field(..., description="Menu item IDs offered for the day and meal type")
