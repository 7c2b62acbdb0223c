"""Global exception handlers rendering errors in the ApiResponse envelope."""

import uuid
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gateway.config import settings
from gateway.exceptions import GatewayError, RateLimitExceededError
from gateway.logging.config import get_logger
from gateway.schemas.api import ApiError, ApiResponse, ResponseMeta

logger = get_logger(__name__)


def create_error_response(
    error_code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error_code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code
        details: Additional error details
        request_id: Request correlation ID for tracing
        headers: Extra response headers

    Returns:
        JSONResponse carrying an ApiResponse envelope
    """
    request_id = request_id or str(uuid.uuid4())
    envelope = ApiResponse(
        success=False,
        error=ApiError(code=error_code, message=message, details=details or None),
        meta=ResponseMeta(request_id=request_id),
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.to_wire(),
        headers={"X-Request-ID": request_id, **(headers or {})},
    )


async def gateway_exception_handler(
    request: Request, exc: GatewayError
) -> JSONResponse:
    """
    Handle GatewayError raised outside the dispatcher (admin routes, deps).

    Args:
        request: FastAPI request
        exc: GatewayError instance

    Returns:
        JSONResponse with error details
    """
    headers = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)

    return create_error_response(
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        request_id=getattr(request.state, "correlation_id", None),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic validation errors from FastAPI.

    Args:
        request: FastAPI request
        exc: RequestValidationError from Pydantic

    Returns:
        JSONResponse with one entry per invalid field
    """
    validation_errors = []
    messages = []
    for error in exc.errors():
        # Skip the 'body' prefix for cleaner field paths
        field_parts = [str(loc) for loc in error["loc"] if loc != "body"]
        field = ".".join(field_parts) if field_parts else "request"
        msg = "Field is required" if error["type"] == "missing" else error["msg"]
        validation_errors.append({"field": field, "message": msg, "type": error["type"]})
        messages.append(f"{field}: {msg}")

    summary = messages[0] if messages else "Invalid request data"
    if len(messages) > 1:
        summary += f" (and {len(messages) - 1} more errors)"

    return create_error_response(
        error_code="VALIDATION_ERROR",
        message=summary,
        status_code=status.HTTP_400_BAD_REQUEST,
        details={"validation_errors": validation_errors},
        request_id=getattr(request.state, "correlation_id", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Logs the full traceback; details reach the caller only outside production.

    Args:
        request: FastAPI request
        exc: Any unhandled exception

    Returns:
        JSONResponse with INTERNAL_ERROR
    """
    correlation_id = getattr(request.state, "correlation_id", None)
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        exc_info=exc,
        extra={
            "correlation_id": correlation_id,
            "context": {
                "exception_type": type(exc).__name__,
                "method": request.method,
                "path": request.url.path,
            },
        },
    )

    details = None
    if not settings.is_production:
        details = {"error": str(exc), "type": type(exc).__name__}

    return create_error_response(
        error_code="INTERNAL_ERROR",
        message="An internal error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        details=details,
        request_id=correlation_id,
    )
