"""Webhook subscription and delivery models."""

from datetime import datetime
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, field_validator

_URL_ADAPTER = TypeAdapter(HttpUrl)


class WebhookEvent(StrEnum):
    """Domain events a webhook can subscribe to."""

    PROPERTY_CREATED = "property.created"
    PROPERTY_UPDATED = "property.updated"
    PROPERTY_DELETED = "property.deleted"
    OFFER_CREATED = "offer.created"
    OFFER_UPDATED = "offer.updated"
    OFFER_STATUS_CHANGED = "offer.status_changed"
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_COMPLETED = "task.completed"
    COMMUNICATION_SENT = "communication.sent"
    DOCUMENT_UPLOADED = "document.uploaded"


class RetryPolicy(BaseModel):
    """
    Delivery retry policy.

    Attributes:
        max_retries: Total delivery attempts before giving up
        backoff_multiplier: Delay before attempt n+1 is multiplier**n seconds
    """

    max_retries: int = Field(default=3, ge=1, le=10)
    backoff_multiplier: float = Field(default=2.0, gt=0, le=60)


class WebhookConfig(BaseModel):
    """
    Registered webhook subscription.

    Attributes:
        webhook_id: Unique identifier
        owner_id: Owning principal (None for internal subscriptions)
        name: Display name
        url: Target URL receiving POSTed payloads
        events: Subscribed event types
        secret: Shared secret used to sign payloads
        is_active: Inactive webhooks never receive deliveries
        retry_policy: Retry/backoff policy
        filters: Optional field-equality filters on the event data
        headers: Optional extra headers sent with each delivery
    """

    webhook_id: str
    owner_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    url: str
    events: List[WebhookEvent] = Field(..., min_length=1)
    secret: str = Field(..., min_length=1)
    is_active: bool = True
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    filters: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL."""
        _URL_ADAPTER.validate_python(v)
        return v

    def subscribes_to(self, event: WebhookEvent) -> bool:
        """Whether the webhook is active and subscribed to an event."""
        return self.is_active and event in self.events

    def matches_filters(self, data: Any) -> bool:
        """All configured filters must equal the matching field on the data."""
        if not self.filters:
            return True
        if not isinstance(data, dict):
            return False
        return all(
            key in data and data[key] == value
            for key, value in self.filters.items()
        )

    def redacted(self) -> Dict[str, Any]:
        """JSON-ready view without the shared secret."""
        return self.model_dump(mode="json", exclude={"secret"})


class WebhookPayload(BaseModel):
    """JSON body POSTed to subscribers."""

    model_config = ConfigDict(populate_by_name=True)

    event: WebhookEvent
    data: Any = None
    timestamp: datetime
    webhook_id: str = Field(..., alias="webhookId")
    attempt: int = Field(..., ge=1)

    def to_body(self) -> bytes:
        """Serialize to the exact bytes that get signed and sent."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


class DeliveryStatus(StrEnum):
    """States of a single delivery attempt."""

    PENDING = "pending"
    SENT = "sent"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"


class DeliveryAttempt(BaseModel):
    """Ephemeral record of one delivery try."""

    webhook_id: str
    event: WebhookEvent
    attempt: int
    timestamp: datetime
    signature: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    status_code: Optional[int] = None
    error: Optional[str] = None
    retry_in_seconds: Optional[float] = None
