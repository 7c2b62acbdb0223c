"""Request validation middleware."""

import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.config import settings
from gateway.handlers.exception_handler import create_error_response


class RequestSizeValidationMiddleware(BaseHTTPMiddleware):
    """
    Reject oversized requests before the body is read.

    Returns 413 PAYLOAD_TOO_LARGE based on the Content-Length header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Validate request size and process request.

        Args:
            request: The incoming request
            call_next: The next middleware/handler in the chain

        Returns:
            The handler response, or a 413 error response
        """
        correlation_id = (
            getattr(request.state, "correlation_id", None)
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )
        request.state.correlation_id = correlation_id

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                size = 0
            max_size = settings.max_request_size_bytes
            if size > max_size:
                max_kb = max_size / 1024
                return create_error_response(
                    error_code="PAYLOAD_TOO_LARGE",
                    message=f"Request size {size / 1024:.1f}KB exceeds maximum {max_kb:.0f}KB",
                    status_code=413,
                    details={"request_size": size, "max_size": max_size},
                    request_id=correlation_id,
                )

        return await call_next(request)
