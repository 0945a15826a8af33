"""
User and address data models
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from .base import BaseEntity, TimestampMixin


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AddressType(str, Enum):
    HOME = "home"
    OFFICE = "office"


class User(BaseEntity):
    """User account (credentials live in the external auth service)"""
    id: int = Field(..., description="User ID")
    email: str = Field(..., description="Email")
    full_name: Optional[str] = Field(None, description="Full name")
    phone: Optional[str] = Field(None, description="Phone")
    role: UserRole = Field(UserRole.USER, description="Role")
    is_active: bool = Field(True, description="Account enabled")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class Address(BaseEntity, TimestampMixin):
    """User-owned delivery address"""
    id: int = Field(..., description="Address ID")
    user_id: int = Field(..., description="Owner")
    address_type: AddressType = Field(..., description="home or office")
    address: str = Field(..., description="Full address text")
    nearest_location: Optional[str] = Field(None, description="Nearest landmark")
    location_url: Optional[str] = Field(None, description="Map link")
    is_default: bool = False
    is_active: bool = True
    is_verified: bool = False
    verification_reason: Optional[str] = None
