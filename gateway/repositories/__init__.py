"""Repository layer for DynamoDB operations."""

from gateway.repositories.api_key_repository import ApiKeyRepository
from gateway.repositories.resource_repository import (
    ResourceBackend,
    ResourceRepository,
)
from gateway.repositories.webhook_repository import WebhookRepository

__all__ = [
    "ApiKeyRepository",
    "ResourceBackend",
    "ResourceRepository",
    "WebhookRepository",
]
