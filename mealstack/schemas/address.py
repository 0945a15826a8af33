"""
Address request schemas
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..models.user import AddressType


class AddressCreateRequest(BaseModel):
    address_type: AddressType = Field(..., description="home or office")
    address: str = Field(..., min_length=1, max_length=500, description="Full address")
    nearest_location: Optional[str] = Field(None, max_length=200, description="Nearest landmark")
    location_url: Optional[str] = Field(None, max_length=500, description="Map link")
    is_default: bool = Field(False, description="Make this the default address")


class AddressUpdateRequest(BaseModel):
    address: Optional[str] = Field(None, min_length=1, max_length=500, description="Full address")
    nearest_location: Optional[str] = Field(None, max_length=200, description="Nearest landmark")
    location_url: Optional[str] = Field(None, max_length=500, description="Map link")
    is_default: Optional[bool] = Field(None, description="Make this the default address")


class AddressVerificationRequest(BaseModel):
    """Admin verification decision"""
    is_verified: bool = Field(..., description="Verified or rejected")
    reason: Optional[str] = Field(None, max_length=500, description="Reason shown to the user")
