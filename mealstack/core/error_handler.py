"""
Unified error handling
Standard error envelope plus the exception handlers registered on the app.

- every BaseApplicationError maps to an HTTP status through its error code
- unexpected exceptions are logged (structlog + audit table) and surface as 500
"""

import json
import traceback
from typing import Any, Dict, Optional

import structlog
from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .exceptions import BaseApplicationError

logger = structlog.get_logger(__name__)


class ErrorResponse:
    """Standard error response"""

    def __init__(self, error_code: str, message: str,
                 details: Optional[Dict[str, Any]] = None,
                 http_status: int = 400):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }

    def to_json_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.http_status,
            content=jsonable_encoder(self.to_dict())
        )


class ErrorHandler:
    """Global error handler"""

    # Error code -> HTTP status
    ERROR_CODE_STATUS_MAP = {
        "VALIDATION_ERROR": 400,
        "AUTHENTICATION_REQUIRED": 401,
        "PERMISSION_DENIED": 403,
        "NOT_FOUND": 404,
        "INTERNAL_ERROR": 500,
        "DATABASE_ERROR": 500,
        "CONCURRENCY_CONFLICT": 409,

        # Ordering
        "INVALID_DATE": 400,
        "ORDER_WINDOW_CLOSED": 400,
        "INVALID_ADDRESS": 400,
        "ITEM_UNAVAILABLE": 400,
        "DUPLICATE_ORDER_NUMBER": 409,
        "INVALID_TRANSITION": 409,

        # Capacity
        "CAPACITY_EXCEEDED": 409,
        "INVALID_CAPACITY": 400,

        # Payments
        "PAYMENT_VERIFICATION_FAILED": 400,
        "GATEWAY_ERROR": 502,
    }

    @classmethod
    def handle_application_error(cls, error: BaseApplicationError) -> ErrorResponse:
        http_status = cls.ERROR_CODE_STATUS_MAP.get(error.error_code, 400)
        return ErrorResponse(
            error_code=error.error_code,
            message=error.message,
            details=error.details,
            http_status=http_status
        )

    @classmethod
    def handle_http_exception(cls, error: HTTPException) -> ErrorResponse:
        return ErrorResponse(
            error_code="HTTP_ERROR",
            message=str(error.detail),
            details={"status_code": error.status_code},
            http_status=error.status_code
        )

    @classmethod
    def handle_validation_error(cls, error: Exception) -> ErrorResponse:
        """Pydantic / FastAPI request validation failures"""
        errors = error.errors() if hasattr(error, "errors") else str(error)
        return ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed",
            details={"validation_errors": errors},
            http_status=422
        )

    @classmethod
    def handle_unknown_error(cls, error: Exception, db=None) -> ErrorResponse:
        error_details = {
            "type": type(error).__name__,
            "message": str(error),
            "traceback": traceback.format_exc()
        }
        logger.error("unhandled_error", error_type=error_details["type"], error=error_details["message"])
        cls._log_system_error(db, error_details)

        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="Internal server error",
            details={"error_type": type(error).__name__},
            http_status=500
        )

    @classmethod
    def _log_system_error(cls, db, error_details: Dict[str, Any]):
        """Write the failure into the audit table"""
        if db is None:
            return
        try:
            with db.session() as conn:
                conn.execute(
                    "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
                    [None, None, "system_error", json.dumps(error_details)]
                )
        except Exception as e:
            # The audit table itself is unavailable; structlog is all we have
            logger.error("audit_write_failed", error=str(e))


def _request_db(request: Request):
    container = getattr(request.app.state, "container", None)
    return getattr(container, "db", None)


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    error_response = ErrorHandler.handle_application_error(exc)
    logger.info(
        "request_rejected",
        path=request.url.path,
        error_code=exc.error_code,
        status=error_response.http_status,
    )
    return error_response.to_json_response()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_response = ErrorHandler.handle_http_exception(exc)
    return error_response.to_json_response()


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error_response = ErrorHandler.handle_validation_error(exc)
    return error_response.to_json_response()


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error_response = ErrorHandler.handle_unknown_error(exc, _request_db(request))
    return error_response.to_json_response()


def create_success_response(data: Any = None, message: str = "OK") -> Dict[str, Any]:
    """Standard success envelope"""
    response = {
        "success": True,
        "message": message
    }

    if data is not None:
        response["data"] = data

    return response


def create_paginated_response(items: list, total: int, page: int,
                              page_size: int, message: str = "OK") -> Dict[str, Any]:
    """Paginated success envelope"""
    return {
        "success": True,
        "message": message,
        "data": {
            "items": items,
            "pagination": {
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": (total + page_size - 1) // page_size
            }
        }
    }
