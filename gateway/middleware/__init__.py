"""Middleware components for request processing."""

from gateway.middleware.logging import LoggingMiddleware
from gateway.middleware.rate_limit import RateLimiter
from gateway.middleware.request_validation import RequestSizeValidationMiddleware

__all__ = [
    "LoggingMiddleware",
    "RateLimiter",
    "RequestSizeValidationMiddleware",
]
