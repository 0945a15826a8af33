"""
Menu catalog data models
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin, load_json
from .order import MealType


class MenuItem(BaseEntity, TimestampMixin):
    """Catalog item"""
    id: int = Field(..., description="Menu item ID")
    name: str = Field(..., description="Name")
    meal_type: MealType = Field(..., description="Meal type the item is served at")
    price_cents: int = Field(..., ge=0, description="Unit price (cents)")
    is_special_item: bool = Field(False, description="Special / premium item")
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True


class WeeklyMenu(BaseModel):
    """Items offered for one weekday and meal type"""
    day_of_week: str
    meal_type: MealType
    item_ids: List[int] = Field(default_factory=list)
    items: List[MenuItem] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WeeklyMenu":
        return cls(
            day_of_week=row["day_of_week"],
            meal_type=row["meal_type"],
            item_ids=load_json(row.get("item_ids_json"), []),
        )
