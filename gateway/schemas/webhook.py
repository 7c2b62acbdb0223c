"""Pydantic schemas for webhook registration requests."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from gateway.models.webhook import RetryPolicy, WebhookEvent


class CreateWebhookRequest(BaseModel):
    """
    Request schema for registering a webhook.

    A secret is generated when omitted.
    """

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., description="Absolute http(s) URL")
    events: List[WebhookEvent] = Field(..., min_length=1)
    secret: Optional[str] = Field(None, min_length=16)
    is_active: bool = True
    retry_policy: Optional[RetryPolicy] = None
    filters: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None


# Optional on the webhook itself, so an explicit null clears them
CLEARABLE_FIELDS = frozenset({"filters", "headers"})


class UpdateWebhookRequest(BaseModel):
    """
    Partial update of a webhook; omitted fields keep their value.

    `filters` and `headers` may be set to null to clear them; any other
    field sent as null is rejected.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = None
    events: Optional[List[WebhookEvent]] = Field(None, min_length=1)
    secret: Optional[str] = Field(None, min_length=16)
    is_active: Optional[bool] = None
    retry_policy: Optional[RetryPolicy] = None
    filters: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "UpdateWebhookRequest":
        """Refuse explicit nulls for fields a webhook must always have."""
        nulls = sorted(
            name
            for name in self.model_fields_set - CLEARABLE_FIELDS
            if getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self
