"""Request logging middleware with correlation ID support."""

import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.logging.config import get_logger

logger = get_logger(__name__)


def _get_or_generate_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    return existing or request.headers.get("X-Request-ID") or str(uuid.uuid4())


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every HTTP request and response.

    - Propagates or assigns the X-Request-ID correlation id
    - Logs start, completion (status, latency, key id) and failures
    - Never logs credentials; only the key id resolved by the gateway route
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process the request and add logging.

        Args:
            request: The incoming request
            call_next: The next middleware/handler in the chain

        Returns:
            The response from the handler
        """
        correlation_id = _get_or_generate_correlation_id(request)
        request.state.correlation_id = correlation_id

        start_time = time.perf_counter()
        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "context": {
                    "method": request.method,
                    "path": request.url.path,
                    "client_host": request.client.host if request.client else None,
                },
            },
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed with exception",
                exc_info=exc,
                extra={
                    "correlation_id": correlation_id,
                    "context": {
                        "method": request.method,
                        "path": request.url.path,
                        "response_time_ms": round(
                            (time.perf_counter() - start_time) * 1000, 2
                        ),
                    },
                },
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "context": {
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "response_time_ms": round(
                        (time.perf_counter() - start_time) * 1000, 2
                    ),
                    "api_key_id": getattr(request.state, "api_key_id", None),
                },
            },
        )

        response.headers["X-Request-ID"] = correlation_id
        return response
