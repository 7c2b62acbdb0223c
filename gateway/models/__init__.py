"""Data models for the External API Gateway."""

from gateway.models.api_key import REDACTED_KEY, ApiKey, ApiKeyView, RateCeiling
from gateway.models.permissions import Action, Permission, Resource
from gateway.models.rate_limit import (
    Quota,
    RateLimitCounter,
    RateLimitResult,
    RateLimitRule,
    RateLimitStats,
    Tier,
)
from gateway.models.webhook import (
    DeliveryAttempt,
    DeliveryStatus,
    RetryPolicy,
    WebhookConfig,
    WebhookEvent,
    WebhookPayload,
)

__all__ = [
    "Action",
    "ApiKey",
    "ApiKeyView",
    "DeliveryAttempt",
    "DeliveryStatus",
    "Permission",
    "Quota",
    "REDACTED_KEY",
    "RateCeiling",
    "RateLimitCounter",
    "RateLimitResult",
    "RateLimitRule",
    "RateLimitStats",
    "Resource",
    "RetryPolicy",
    "Tier",
    "WebhookConfig",
    "WebhookEvent",
    "WebhookPayload",
]
