"""
Error handler middleware and custom exceptions.

Provides consistent error responses and custom exception classes
for common application errors. Business rejections from the booking engine
use their own body shape: {"status": "rejected", "reason", "message"}.
"""
import logging
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from runafit.lib.logging import get_logger
from runafit.lib.request_context import get_correlation_id
from runafit.services.errors import (
    BookingEngineError,
    DuplicateRecord,
    InvalidInput,
    NotPermitted,
    RecordNotFound,
)
from runafit.services.outcomes import CONFLICT_REASONS, FailureReason, USER_MESSAGES

logger = get_logger(__name__)


# Custom exception classes
class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id},
        )


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class ConflictException(AppException):
    """Resource conflict exception."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details or {},
        )


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"errors": errors or {}},
        )


class BookingRejectedException(AppException):
    """A booking or cancellation the engine turned down for a business reason."""

    def __init__(self, reason: FailureReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(
            message=message or USER_MESSAGES[reason],
            status_code=(
                status.HTTP_409_CONFLICT if reason in CONFLICT_REASONS
                else status.HTTP_422_UNPROCESSABLE_ENTITY
            ),
            details={"reason": reason.value},
        )


class StoreUnavailableException(AppException):
    """The database could not be reached; the outcome of the request is unknown."""

    def __init__(self, message: str = "Service temporarily unavailable, please try again later"):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def to_app_exception(exc: BookingEngineError) -> AppException:
    """Map an engine error that escaped a service onto its HTTP counterpart."""
    if isinstance(exc, RecordNotFound):
        return NotFoundException(exc.resource, exc.resource_id)
    if isinstance(exc, InvalidInput):
        return ValidationException(exc.message, exc.errors)
    if isinstance(exc, DuplicateRecord):
        return ConflictException(exc.message, exc.details)
    if isinstance(exc, NotPermitted):
        return ForbiddenException(exc.message)
    return AppException(str(exc))


# Exception handlers
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handler for custom application exceptions.

    Returns consistent error response with correlation ID.
    """
    correlation_id = get_correlation_id(request) or "unknown"

    if isinstance(exc, BookingRejectedException):
        # Expected business outcome, not a system error
        logger.info(
            f"Booking rejected: {exc.reason.value}",
            extra={
                "correlation_id": correlation_id,
                "path": request.url.path,
                "reason": exc.reason.value,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "rejected",
                "reason": exc.reason.value,
                "message": exc.message,
                "correlation_id": correlation_id,
            },
        )

    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"Application error: {exc.message}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )

    response_content = {
        "error": exc.message,
        "correlation_id": correlation_id,
    }
    if exc.details:
        response_content["details"] = exc.details

    return JSONResponse(
        status_code=exc.status_code,
        content=response_content,
    )


async def engine_exception_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    """Handler for engine errors raised by the admin services."""
    return await app_exception_handler(request, to_app_exception(exc))


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handler for Pydantic validation errors.

    Formats validation errors in a consistent way.
    """
    correlation_id = get_correlation_id(request) or "unknown"

    errors = []
    for error in exc.errors():
        errors.append({
            "loc": list(error["loc"]),
            "msg": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        "Validation error",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "errors": errors,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "correlation_id": correlation_id,
            "details": {"errors": errors},
        },
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handler for Starlette HTTP exceptions.

    Provides consistent format for HTTP errors.
    """
    correlation_id = get_correlation_id(request) or "unknown"

    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "correlation_id": correlation_id,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "correlation_id": correlation_id,
        },
        headers=getattr(exc, "headers", None),
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """
    Handler for database connectivity failures.

    Not retried: the write may or may not have been applied.
    """
    correlation_id = get_correlation_id(request) or "unknown"

    logger.error(
        "Store unavailable",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True,
    )

    unavailable = StoreUnavailableException()
    return JSONResponse(
        status_code=unavailable.status_code,
        content={
            "error": unavailable.message,
            "correlation_id": correlation_id,
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for unhandled exceptions.

    Logs full stack trace and returns generic error message.
    """
    correlation_id = get_correlation_id(request) or "unknown"

    logger.error(
        f"Unhandled exception: {exc}",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "correlation_id": correlation_id,
        },
    )
