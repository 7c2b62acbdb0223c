"""Webhook subscription repository for DynamoDB operations."""

from typing import List, Optional

from gateway.config import settings
from gateway.models.webhook import WebhookConfig
from gateway.repositories.base import BaseRepository


class WebhookRepository(BaseRepository):
    """Repository for webhook configurations in DynamoDB."""

    def __init__(self, table_name: str | None = None) -> None:
        """Initialize WebhookRepository with webhooks table."""
        super().__init__(table_name or settings.dynamodb_table_webhooks)

    async def save(self, webhook: WebhookConfig) -> WebhookConfig:
        """Create or fully replace a webhook configuration."""
        await self.put_item(webhook.model_dump(mode="json"))
        return webhook

    async def get_by_id(self, webhook_id: str) -> Optional[WebhookConfig]:
        """Get a webhook configuration by ID."""
        item = await self.get_item({"webhook_id": webhook_id})
        if item:
            return WebhookConfig(**item)
        return None

    async def list_all(self) -> List[WebhookConfig]:
        """Load every stored webhook configuration."""
        items = await self.scan_all()
        return [WebhookConfig(**item) for item in items]

    async def delete(self, webhook_id: str) -> bool:
        """Delete a webhook configuration; False if it did not exist."""
        return await self.delete_item(
            {"webhook_id": webhook_id},
            condition_expression="attribute_exists(webhook_id)",
        )
