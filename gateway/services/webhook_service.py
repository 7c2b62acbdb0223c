"""Webhook registry: subscription management and event fan-out."""

import secrets
import uuid
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from gateway.config import settings
from gateway.exceptions import NotFoundError
from gateway.logging.config import get_logger
from gateway.models.webhook import RetryPolicy, WebhookConfig, WebhookEvent
from gateway.repositories.webhook_repository import WebhookRepository
from gateway.schemas.webhook import CreateWebhookRequest, UpdateWebhookRequest
from gateway.services.delivery import DeliveryEngine, DeliveryJob

logger = get_logger(__name__)


def generate_webhook_secret() -> str:
    """Generate a random shared secret for signing payloads."""
    return secrets.token_urlsafe(32)


class WebhookRegistry:
    """
    Read-mostly registry of webhook subscriptions.

    Writers build a new dict and swap it in; `trigger` iterates over
    whatever snapshot it started with.
    """

    def __init__(
        self,
        engine: DeliveryEngine,
        repository: Optional[WebhookRepository] = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            engine: Delivery engine that receives matched deliveries
            repository: Webhook persistence (defaults to DynamoDB)
        """
        self.engine = engine
        self.repository = repository or WebhookRepository()
        self._webhooks: Dict[str, WebhookConfig] = {}

    async def load(self) -> int:
        """Warm the registry from the repository; returns the count loaded."""
        webhooks = await self.repository.list_all()
        self._webhooks = {w.webhook_id: w for w in webhooks}
        logger.info(
            "Webhook registry loaded", extra={"context": {"count": len(webhooks)}}
        )
        return len(webhooks)

    async def register(
        self, request: CreateWebhookRequest, owner_id: Optional[str] = None
    ) -> WebhookConfig:
        """
        Store a new subscription.

        A secret is generated when the request does not supply one.

        Args:
            request: Validated creation request
            owner_id: Owning principal; None for internal subscriptions

        Returns:
            The stored WebhookConfig (including its secret)
        """
        now = datetime.now(UTC)
        webhook = WebhookConfig(
            webhook_id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=request.name,
            url=request.url,
            events=request.events,
            secret=request.secret or generate_webhook_secret(),
            is_active=request.is_active,
            retry_policy=request.retry_policy
            or RetryPolicy(
                max_retries=settings.webhook_default_max_retries,
                backoff_multiplier=settings.webhook_default_backoff_multiplier,
            ),
            filters=request.filters,
            headers=request.headers,
            created_at=now,
            updated_at=now,
        )
        await self.repository.save(webhook)
        self._webhooks = {**self._webhooks, webhook.webhook_id: webhook}

        logger.info(
            "Webhook registered",
            extra={
                "context": {
                    "webhook_id": webhook.webhook_id,
                    "owner_id": owner_id,
                    "events": [str(e) for e in webhook.events],
                }
            },
        )
        return webhook

    def get(self, webhook_id: str, owner_id: Optional[str] = None) -> WebhookConfig:
        """
        Fetch a subscription, scoped to an owner when one is given.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        webhook = self._webhooks.get(webhook_id)
        if webhook is None or (owner_id is not None and webhook.owner_id != owner_id):
            raise NotFoundError(
                message="Webhook not found", resource="webhooks", resource_id=webhook_id
            )
        return webhook

    def list(self, owner_id: Optional[str] = None) -> List[WebhookConfig]:
        """List subscriptions, newest first, optionally for one owner."""
        webhooks = [
            w
            for w in self._webhooks.values()
            if owner_id is None or w.owner_id == owner_id
        ]
        return sorted(webhooks, key=lambda w: w.created_at, reverse=True)

    async def update(
        self,
        webhook_id: str,
        request: UpdateWebhookRequest,
        owner_id: Optional[str] = None,
    ) -> WebhookConfig:
        """
        Apply a partial update.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        current = self.get(webhook_id, owner_id)
        changes = request.model_dump(exclude_unset=True)
        updated = WebhookConfig(
            **{
                **current.model_dump(),
                **changes,
                "updated_at": datetime.now(UTC),
            }
        )
        await self.repository.save(updated)
        self._webhooks = {**self._webhooks, webhook_id: updated}

        logger.info(
            "Webhook updated",
            extra={"context": {"webhook_id": webhook_id, "fields": sorted(changes)}},
        )
        return updated

    async def delete(self, webhook_id: str, owner_id: Optional[str] = None) -> None:
        """
        Remove a subscription.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        self.get(webhook_id, owner_id)
        webhooks = dict(self._webhooks)
        del webhooks[webhook_id]
        self._webhooks = webhooks
        await self.repository.delete(webhook_id)
        logger.info("Webhook deleted", extra={"context": {"webhook_id": webhook_id}})

    def matching(
        self, event: WebhookEvent, data: Any, owner_id: Optional[str] = None
    ) -> List[WebhookConfig]:
        """
        Active subscriptions that should receive an event.

        A webhook with an owner only sees events raised for that owner;
        webhooks without an owner see every event.
        """
        return [
            w
            for w in list(self._webhooks.values())
            if w.subscribes_to(event)
            and w.matches_filters(data)
            and (w.owner_id is None or w.owner_id == owner_id)
        ]

    async def trigger(
        self, event: WebhookEvent, data: Any, owner_id: Optional[str] = None
    ) -> int:
        """
        Fan an event out to every matching subscription.

        Args:
            event: Event type
            data: Event payload data
            owner_id: Principal the event belongs to

        Returns:
            Number of deliveries queued
        """
        timestamp = datetime.now(UTC)
        queued = 0
        for webhook in self.matching(event, data, owner_id):
            job = DeliveryJob(
                webhook=webhook, event=event, data=data, timestamp=timestamp
            )
            if await self.engine.enqueue(job):
                queued += 1

        logger.debug(
            "Event triggered",
            extra={"context": {"event": event, "owner_id": owner_id, "queued": queued}},
        )
        return queued
