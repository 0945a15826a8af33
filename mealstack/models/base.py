"""
Base data models
Common model base classes, pagination and row helpers
"""

import json
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class TimestampMixin(BaseModel):
    """Timestamp mixin"""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BaseEntity(BaseModel):
    """Base entity model"""

    model_config = {"from_attributes": True, "use_enum_values": True}


class PaginationParams(BaseModel):
    """Pagination parameters"""
    page: int = Field(default=1, ge=1, description="Page number")
    size: int = Field(default=10, ge=1, le=100, description="Page size")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


def day_name(d: date) -> str:
    """Lower-case weekday name, the key used by weekly menus and capacity rows"""
    return d.strftime("%A").lower()


def load_json(value, default):
    """Decode a *_json column, tolerating NULL"""
    if value is None or value == "":
        return default
    if isinstance(value, (list, dict)):
        return value
    return json.loads(value)
