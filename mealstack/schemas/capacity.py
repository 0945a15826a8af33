"""
Capacity request schemas
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class CapacityUpdateRequest(BaseModel):
    """New limits per meal type; omitted meal types are left unchanged"""
    breakfast: Optional[int] = Field(None, description="Breakfast limit")
    lunch: Optional[int] = Field(None, description="Lunch limit")
    dinner: Optional[int] = Field(None, description="Dinner limit")

    def to_limits(self) -> Dict[str, int]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class CapacityBulkRequest(CapacityUpdateRequest):
    """Apply the same limits to each of the next `days` dates"""
    days: int = Field(7, ge=1, le=30, description="Number of days starting today")

    def to_limits(self) -> Dict[str, int]:
        return {k: v for k, v in self.model_dump(exclude={"days"}).items() if v is not None}
