"""
Error Handling Module for EduPortal Billing

Application exceptions carry a stable error code and an HTTP status.
Every error leaves the API in the same envelope:

    {"detail": {"code": ..., "message": ..., "timestamp": ..., "field"?: ..., "details"?: ...}}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("eduportal.errors")


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class ErrorCode(str, Enum):
    """Error codes returned in the response envelope"""

    # 400
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    SIGNATURE_MISMATCH = "SIGNATURE_MISMATCH"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"

    # 401 / 403
    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_INVALID = "TOKEN_INVALID"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"

    # 404 / 409
    NOT_FOUND = "NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # 5xx
    PAYMENT_GATEWAY_ERROR = "PAYMENT_GATEWAY_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base class; subclasses fix the status code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.field = field
        self.headers = headers
        self.original_error = original_error
        super().__init__(message)


class ValidationException(AppException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, field=field)


# ============================================================================
# Identity
# ============================================================================

class AuthenticationException(AppException):
    """No usable credentials. Sent with a bearer challenge."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(
        self,
        message: str = "Not authenticated",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
    ):
        super().__init__(code, message, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationException(AppException):
    """Authenticated, but not allowed."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        code: ErrorCode = ErrorCode.FORBIDDEN,
        required: Optional[str] = None,
    ):
        super().__init__(code, message, details={"required": required} if required else None)


# ============================================================================
# Resources
# ============================================================================

class NotFoundException(AppException):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource_type: str, message: str, code: ErrorCode = ErrorCode.NOT_FOUND):
        super().__init__(code, message, details={"resource_type": resource_type})


class OrderNotFoundException(NotFoundException):
    """No order with this provider id belongs to the caller"""

    def __init__(self, provider_order_id: str):
        super().__init__(
            "Order",
            f"Order with ID '{provider_order_id}' not found",
            code=ErrorCode.ORDER_NOT_FOUND,
        )


class NoActiveSubscriptionException(NotFoundException):
    def __init__(self):
        super().__init__(
            "Subscription",
            "No active subscription found",
            code=ErrorCode.NO_ACTIVE_SUBSCRIPTION,
        )


class ConflictException(AppException):
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        field: Optional[str] = None,
    ):
        super().__init__(code, message, field=field)


# ============================================================================
# Payments
# ============================================================================

class SignatureMismatchException(AppException):
    """Payment or webhook signature did not verify"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid payment signature"):
        super().__init__(ErrorCode.SIGNATURE_MISMATCH, message)


class AlreadyProcessedException(AppException):
    """Order was already paid; the request is a duplicate or a replay"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, provider_order_id: str):
        super().__init__(
            ErrorCode.ALREADY_PROCESSED,
            "Payment already processed for this order",
            details={"provider_order_id": provider_order_id},
        )


class PaymentGatewayException(AppException):
    """Payment provider API failure. Safe to retry order creation with a new receipt."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            ErrorCode.PAYMENT_GATEWAY_ERROR,
            message,
            details={**(details or {}), "service": "Razorpay"},
            original_error=original_error,
        )


# ============================================================================
# Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"code": code.value, "message": message, "timestamp": _timestamp()}
    if field:
        body["field"] = field
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"detail": body}, headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.code.value} on {request.method} {request.url.path}: {exc.message}",
        exc_info=exc.original_error,
    )
    return create_error_response(
        exc.code, exc.message, exc.status_code,
        details=exc.details, field=exc.field, headers=exc.headers,
    )


_HTTP_CODES = {
    400: ErrorCode.INVALID_INPUT,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_INPUT,
    409: ErrorCode.RESOURCE_CONFLICT,
}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework-raised errors (unknown route, bad method) in the same envelope."""
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {message}")
    return create_error_response(
        _HTTP_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        message,
        exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation failures are 400, not FastAPI's 422."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"{len(errors)} validation errors on {request.method} {request.url.path}")
    return create_error_response(
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        status.HTTP_400_BAD_REQUEST,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)

    if isinstance(exc, IntegrityError):
        detail = str(exc.orig).lower() if exc.orig else ""
        if "unique" in detail or "duplicate" in detail:
            return create_error_response(
                ErrorCode.DUPLICATE_ENTRY,
                "A record with this value already exists",
                status.HTTP_409_CONFLICT,
            )
    return create_error_response(
        ErrorCode.DATABASE_ERROR,
        "A database error occurred",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )
    # Internal details are never exposed
    return create_error_response(
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred. Please try again later.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
