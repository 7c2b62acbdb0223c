"""Pydantic schemas for gateway requests and responses."""

from datetime import UTC, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ApiRequest(BaseModel):
    """
    Inbound request as seen by the dispatcher.

    Attributes:
        method: HTTP method (upper-cased)
        path: Resource path, e.g. `/properties/123`
        headers: Request headers
        query: Optional query parameters
        body: Optional decoded JSON body
        api_key: Presented API key token (may be empty)
    """

    method: str
    path: str
    headers: Dict[str, str] = Field(default_factory=dict)
    query: Optional[Dict[str, str]] = None
    body: Optional[Any] = None
    api_key: str = ""

    @field_validator("method")
    @classmethod
    def upper_method(cls, v: str) -> str:
        """Normalize the HTTP method."""
        return v.strip().upper()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiError(_CamelModel):
    """Structured error with a stable code."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ResponseMeta(_CamelModel):
    """Timing and rate-limit metadata attached to every response."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    request_id: str
    processing_time_ms: Optional[float] = None
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[datetime] = None
    rate_limit_limit: Optional[int] = None


class ApiResponse(_CamelModel):
    """Envelope returned for every gateway call."""

    success: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None
    meta: ResponseMeta
    # Internal bookkeeping for the HTTP layer; not part of the wire format
    created: bool = Field(default=False, exclude=True)
    key_id: Optional[str] = Field(default=None, exclude=True)

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
