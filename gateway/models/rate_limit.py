"""Rate limiting rules, counters and results."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import List, Optional

from pydantic import BaseModel, Field


class Tier(StrEnum):
    """Counter tiers evaluated per request."""

    SUSTAINED = "sustained"
    BURST = "burst"


class Quota(BaseModel):
    """A request ceiling over a fixed window."""

    max_requests: int = Field(..., gt=0)
    window_ms: int = Field(..., gt=0)


class RateLimitRule(BaseModel):
    """
    Endpoint rule keyed by `METHOD /normalized/path` (or `default`).

    Attributes:
        key: Rule key, may contain single-segment `*` wildcards
        sustained: Longer-window quota
        burst: Optional short-window, stricter quota
    """

    key: str
    sustained: Quota
    burst: Optional[Quota] = None


@dataclass
class RateLimitCounter:
    """Ephemeral fixed-window counter (epoch seconds)."""

    count: int
    reset_time: float


class RateLimitResult(BaseModel):
    """Outcome of a rate limit evaluation."""

    allowed: bool
    remaining: int = Field(..., ge=0)
    reset_time: datetime
    limit: int
    retry_after: Optional[int] = None
    rule_key: str = "default"
    tier: Tier = Tier.SUSTAINED


class LimitedEndpoint(BaseModel):
    """Rule key with its number of blocked requests."""

    endpoint: str
    blocked: int


class RateLimitStats(BaseModel):
    """Aggregated rate limiting statistics since start-up."""

    total_requests: int = 0
    blocked_requests: int = 0
    active_limits: int = 0
    top_limited_endpoints: List[LimitedEndpoint] = Field(default_factory=list)
