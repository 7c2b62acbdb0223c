"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from gateway.config import settings
from gateway.exceptions import GatewayError
from gateway.handlers.exception_handler import (
    gateway_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from gateway.logging.config import configure_logging
from gateway.middleware.logging import LoggingMiddleware
from gateway.middleware.request_validation import RequestSizeValidationMiddleware
from gateway.routes import admin, external_api, status
from gateway.services.container import GatewayServices

DESCRIPTION = """
## External API Gateway

Authenticated, rate-limited access to owner-scoped business resources, with
signed webhook notifications for domain events.

### Authentication

```
Authorization: Bearer sk_<key_id>_<secret>
```

or `X-API-Key: sk_<key_id>_<secret>`. Keys are issued through the admin API
or `scripts/manage_api_keys.py`.

### Rate Limits

Every response carries `X-RateLimit-Limit`, `X-RateLimit-Remaining` and
`X-RateLimit-Reset`; 429 responses add `Retry-After`.

### Webhooks

Deliveries are POSTed with `X-Webhook-Signature: sha256=<hex>`, an HMAC-SHA256
of the raw body keyed with the webhook secret.
"""


def create_app(services: GatewayServices | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built service container (tests inject their own)

    Returns:
        Configured FastAPI app
    """
    services = services or GatewayServices()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.start()
        try:
            yield
        finally:
            await services.stop()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.services = services

    # Last added runs first: logging wraps size validation
    app.add_middleware(RequestSizeValidationMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(external_api.router)
    app.include_router(admin.router)
    app.include_router(status.router)

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """API information."""
        return {
            "message": f"Welcome to {settings.api_title}",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/status",
        }

    return app


configure_logging()
app = create_app()
