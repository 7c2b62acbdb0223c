"""Pydantic schemas for the admin API."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from gateway.models.api_key import RateCeiling
from gateway.models.permissions import Permission
from gateway.models.webhook import WebhookEvent


class IssueKeyRequest(BaseModel):
    """Request to issue a new API key."""

    owner_id: str = Field(..., min_length=1, description="Owning principal id")
    name: str = Field(..., min_length=1, max_length=255)
    permissions: List[Permission] = Field(default_factory=list)
    rate_ceiling: Optional[RateCeiling] = None
    expires_at: Optional[datetime] = None


class EmitEventRequest(BaseModel):
    """Internal domain event to fan out to subscribed webhooks."""

    event: WebhookEvent
    data: Any = Field(default_factory=dict)
    owner_id: Optional[str] = None


class EmitEventResponse(BaseModel):
    """Number of deliveries queued for an emitted event."""

    event: WebhookEvent
    deliveries: int
