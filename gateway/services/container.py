"""Service container wiring the gateway components together."""

import time
from typing import Optional

from gateway.auth.credential_store import CredentialStore
from gateway.logging.config import get_logger
from gateway.middleware.rate_limit import RateLimiter
from gateway.repositories.resource_repository import ResourceBackend, ResourceRepository
from gateway.services.delivery import DeliveryEngine
from gateway.services.dispatcher import RequestDispatcher
from gateway.services.handlers import ResourceHandlers
from gateway.services.webhook_service import WebhookRegistry

logger = get_logger(__name__)


class GatewayServices:
    """
    Owns the long-lived gateway components.

    Created once per application; `start` and `stop` bracket the
    background tasks of the rate limiter and the delivery engine.
    """

    def __init__(
        self,
        credentials: Optional[CredentialStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        engine: Optional[DeliveryEngine] = None,
        registry: Optional[WebhookRegistry] = None,
        backend: Optional[ResourceBackend] = None,
    ) -> None:
        self.credentials = credentials or CredentialStore()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.engine = engine or DeliveryEngine()
        self.registry = registry or WebhookRegistry(self.engine)
        self.handlers = ResourceHandlers(backend or ResourceRepository(), self.registry)
        self.dispatcher = RequestDispatcher(
            self.credentials, self.rate_limiter, self.handlers, self.registry
        )
        self.started_at: Optional[float] = None

    @property
    def uptime_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        return round(time.monotonic() - self.started_at, 3)

    async def start(self, load_webhooks: bool = True) -> None:
        """Start background tasks and warm the webhook registry."""
        await self.rate_limiter.start()
        await self.engine.start()
        if load_webhooks:
            try:
                await self.registry.load()
            except Exception:
                logger.exception("Failed to load webhooks at start-up")
        self.started_at = time.monotonic()
        logger.info("Gateway services started")

    async def stop(self) -> None:
        """Drain pending work and cancel background tasks."""
        await self.dispatcher.aclose()
        await self.credentials.aclose()
        await self.engine.stop()
        await self.rate_limiter.stop()
        logger.info("Gateway services stopped")
