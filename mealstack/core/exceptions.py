"""
Custom exception classes
Every failure a request can hit is one of these; the error handler turns
them into a rejected response, never a crashed worker.
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """Base class for application errors"""

    default_code = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(BaseApplicationError):
    """Database failure"""
    default_code = "DATABASE_ERROR"


class ConcurrencyError(BaseApplicationError):
    """Concurrent modification conflict"""
    default_code = "CONCURRENCY_CONFLICT"


class AuthenticationError(BaseApplicationError):
    """Missing or invalid credentials"""
    default_code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(BaseApplicationError):
    """Authenticated but not allowed"""
    default_code = "PERMISSION_DENIED"


class ValidationError(BaseApplicationError):
    """Request data failed validation"""
    default_code = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Resource does not exist (or is not visible to the caller)"""
    default_code = "NOT_FOUND"


class InvalidDateError(ValidationError):
    """Order date outside the allowed ordering window"""
    default_code = "INVALID_DATE"


class OrderWindowClosedError(BaseApplicationError):
    """Same-day cutoff for the meal type has passed"""
    default_code = "ORDER_WINDOW_CLOSED"


class InvalidAddressError(BaseApplicationError):
    """Address missing, inactive, unverified or owned by someone else"""
    default_code = "INVALID_ADDRESS"


class ItemUnavailableError(BaseApplicationError):
    """One or more menu items are missing or inactive"""
    default_code = "ITEM_UNAVAILABLE"

    def __init__(self, missing_ids):
        missing = sorted(set(missing_ids))
        super().__init__(
            f"Menu items no longer available: {', '.join(str(i) for i in missing)}",
            details={"missing_ids": missing},
        )
        self.missing_ids = missing


class CapacityExceededError(BaseApplicationError):
    """Meal slot is fully booked"""
    default_code = "CAPACITY_EXCEEDED"


class InvalidCapacityError(BaseApplicationError):
    """Capacity limit below what is already booked"""
    default_code = "INVALID_CAPACITY"


class InvalidTransitionError(BaseApplicationError):
    """Status change not allowed from the current status"""
    default_code = "INVALID_TRANSITION"


class PaymentVerificationFailedError(BaseApplicationError):
    """Gateway signature did not match"""
    default_code = "PAYMENT_VERIFICATION_FAILED"


class DuplicateOrderNumberError(BaseApplicationError):
    """Generated order number collided with an existing one"""
    default_code = "DUPLICATE_ORDER_NUMBER"


class GatewayError(BaseApplicationError):
    """Payment gateway unreachable or rejected the request"""
    default_code = "GATEWAY_ERROR"
