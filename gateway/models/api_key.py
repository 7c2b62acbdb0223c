"""API Key model for DynamoDB."""

from datetime import UTC, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from gateway.models.permissions import Action, Permission, Resource

REDACTED_KEY = "[REDACTED]"


class RateCeiling(BaseModel):
    """Per-key request ceiling; it can only tighten endpoint rules."""

    max_requests: int = Field(default=1000, gt=0, description="Requests per window")
    window_seconds: int = Field(default=3600, gt=0, description="Window length")


class ApiKey(BaseModel):
    """
    API Key model for authentication.

    Attributes:
        key_id: Unique identifier (hex UUID), also embedded in the token
        name: Human-readable display name
        key_hash: Bcrypt hash of the full token
        owner_id: Principal that owns the key and the data it reaches
        permissions: Granted (resource, actions) pairs
        rate_ceiling: Per-key request ceiling
        created_at: Creation time
        last_used_at: Last successful validation
        expires_at: Optional expiry
        is_active: False once revoked
    """

    key_id: str = Field(..., description="Unique key identifier")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    key_hash: str = Field(..., description="Bcrypt hash of API key")
    owner_id: str = Field(..., description="Owning principal id")
    permissions: List[Permission] = Field(default_factory=list)
    rate_ceiling: RateCeiling = Field(default_factory=RateCeiling)
    created_at: datetime = Field(..., description="Creation timestamp")
    last_used_at: Optional[datetime] = Field(None, description="Last use")
    expires_at: Optional[datetime] = Field(None, description="Optional expiry")
    is_active: bool = Field(default=True, description="Active flag")

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "key_id": "3f1c2b9a7d8e4f60a1b2c3d4e5f60718",
                "name": "CRM sync",
                "key_hash": "$2b$12$...",
                "owner_id": "user-123",
                "permissions": [
                    {"resource": "properties", "actions": ["read", "list"]}
                ],
                "rate_ceiling": {"max_requests": 1000, "window_seconds": 3600},
                "created_at": "2025-11-11T12:00:00Z",
                "last_used_at": None,
                "expires_at": None,
                "is_active": True,
            }
        }

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the key is past its expiry."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= now

    def permission_for(self, resource: Resource) -> Optional[Permission]:
        """Return the permission entry for a resource, if any."""
        for permission in self.permissions:
            if permission.resource == resource:
                return permission
        return None

    def can(self, resource: Resource, action: Action) -> bool:
        """Check the permission set; absence of an entry is an implicit deny."""
        permission = self.permission_for(resource)
        return permission is not None and permission.allows(action)

    def to_view(self, key: str = REDACTED_KEY) -> "ApiKeyView":
        """Build the public representation of this key."""
        return ApiKeyView(
            key_id=self.key_id,
            name=self.name,
            key=key,
            owner_id=self.owner_id,
            permissions=self.permissions,
            rate_ceiling=self.rate_ceiling,
            created_at=self.created_at,
            last_used_at=self.last_used_at,
            expires_at=self.expires_at,
            is_active=self.is_active,
        )


class ApiKeyView(BaseModel):
    """Public shape of an API key; `key` is plaintext only right after issue."""

    key_id: str
    name: str
    key: str = REDACTED_KEY
    owner_id: str
    permissions: List[Permission]
    rate_ceiling: RateCeiling
    created_at: datetime
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool
