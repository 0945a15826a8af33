from typing import Any, Dict

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error envelope"""
    success: bool = Field(False, description="Always false")
    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Extra context")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error_code": "CAPACITY_EXCEEDED",
                "message": "No lunch capacity left for 2024-01-15",
                "details": {"date": "2024-01-15", "meal_type": "lunch", "requested": 1}
            }
        }
    }


# Documented on every API route
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Business rule violation"},
    401: {"model": ErrorResponse, "description": "Missing or invalid bearer token"},
    403: {"model": ErrorResponse, "description": "Admin access required"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    409: {"model": ErrorResponse, "description": "Capacity or state conflict"},
}
