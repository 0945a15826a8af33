"""
Capacity data models
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity


class SlotCapacity(BaseModel):
    """Booked vs. limit for one meal type on one date"""
    limit: int = Field(..., ge=0, description="Capacity limit")
    booked: int = Field(..., ge=0, description="Units booked")
    remaining: int = Field(..., ge=0, description="limit - booked")

    @classmethod
    def of(cls, limit: int, booked: int) -> "SlotCapacity":
        return cls(limit=limit, booked=booked, remaining=max(limit - booked, 0))


class CapacityRecord(BaseEntity):
    """Per-date capacity row"""
    date: date
    day_of_week: str
    breakfast: SlotCapacity
    lunch: SlotCapacity
    dinner: SlotCapacity
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CapacityRecord":
        return cls(
            date=row["date"],
            day_of_week=row["day_of_week"],
            breakfast=SlotCapacity.of(row["breakfast_capacity"], row["breakfast_booked"]),
            lunch=SlotCapacity.of(row["lunch_capacity"], row["lunch_booked"]),
            dinner=SlotCapacity.of(row["dinner_capacity"], row["dinner_booked"]),
            updated_at=row.get("updated_at"),
        )

    def slot(self, meal_type) -> SlotCapacity:
        return getattr(self, getattr(meal_type, "value", meal_type))
