"""Two-tier fixed-window rate limiter with per-endpoint rules."""

import asyncio
import math
import re
import time
from collections import Counter
from datetime import UTC, datetime
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from gateway.config import settings
from gateway.logging.config import get_logger
from gateway.models.api_key import ApiKey
from gateway.models.rate_limit import (
    LimitedEndpoint,
    Quota,
    RateLimitCounter,
    RateLimitResult,
    RateLimitRule,
    RateLimitStats,
    Tier,
)

logger = get_logger(__name__)

DEFAULT_RULE_KEY = "default"


def _rule(key: str, sustained: int, burst: int) -> RateLimitRule:
    return RateLimitRule(
        key=key,
        sustained=Quota(max_requests=sustained, window_ms=60_000),
        burst=Quota(max_requests=burst, window_ms=10_000),
    )


DEFAULT_RATE_LIMIT_RULES: List[RateLimitRule] = [
    _rule(DEFAULT_RULE_KEY, 100, 20),
    _rule("GET /properties", 300, 50),
    _rule("GET /offers", 200, 30),
    _rule("POST /properties", 50, 10),
    _rule("POST /offers", 30, 5),
    _rule("PUT /offers/*", 100, 20),
    _rule("GET /analytics", 20, 5),
]

_ID_SEGMENT_PATTERNS = [
    re.compile(r"^\d+$"),
    re.compile(
        r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
    ),
    re.compile(r"^[0-9a-fA-F]{16,}$"),
    # Prefixed opaque ids such as ext_1a2b3c or sk_9f8e...
    re.compile(r"^[a-z]+_(?=[A-Za-z0-9_-]*\d)[A-Za-z0-9_-]+$"),
]


def normalize_path(path: str) -> str:
    """
    Normalize a request path for rule matching.

    The query string and empty segments are dropped and id-like segments
    (numbers, UUIDs, long hex strings, prefixed ids) become `*`.

    Args:
        path: Raw request path

    Returns:
        Normalized path, always starting with `/`
    """
    segments = [s for s in path.split("?", 1)[0].split("/") if s]
    normalized = [
        "*" if any(p.match(s) for p in _ID_SEGMENT_PATTERNS) else s
        for s in segments
    ]
    return "/" + "/".join(normalized)


def _compile_wildcard(key: str) -> Pattern[str]:
    # Each `*` stands for exactly one path segment
    parts = [r"[^/]+" if part == "*" else re.escape(part) for part in key.split("/")]
    return re.compile("/".join(parts))


class RateLimiter:
    """
    In-memory rate limiter.

    Each (key_id, rule_key, tier) pair owns a fixed-window counter. `check`
    never suspends, so the read-compare-increment sequence is atomic with
    respect to other coroutines on the event loop.
    """

    def __init__(
        self,
        rules: Optional[List[RateLimitRule]] = None,
        clock: Optional[Callable[[], float]] = None,
        sweep_interval: Optional[float] = None,
        stats_interval: Optional[float] = None,
    ) -> None:
        """
        Initialize the limiter.

        Args:
            rules: Endpoint rules; must contain a `default` rule
            clock: Returns epoch seconds; injectable for tests
            sweep_interval: Seconds between expired-counter sweeps
            stats_interval: Seconds between statistics log lines
        """
        rules = rules if rules is not None else DEFAULT_RATE_LIMIT_RULES
        self._rules: Dict[str, RateLimitRule] = {rule.key: rule for rule in rules}
        if DEFAULT_RULE_KEY not in self._rules:
            raise ValueError("Rate limit rules must include a 'default' rule")
        self._wildcards: List[Tuple[Pattern[str], RateLimitRule]] = [
            (_compile_wildcard(rule.key), rule)
            for rule in rules
            if "*" in rule.key
        ]

        self._clock = clock or time.time
        self._sweep_interval = (
            sweep_interval or settings.rate_limit_sweep_interval_seconds
        )
        self._stats_interval = (
            stats_interval or settings.rate_limit_stats_interval_seconds
        )

        self._counters: Dict[Tuple[str, str, Tier], RateLimitCounter] = {}
        self._total_requests = 0
        self._blocked_requests = 0
        self._blocked_by_rule: Counter[str] = Counter()
        self._tasks: List[asyncio.Task] = []
        self._running = False

    def resolve_rule(self, method: str, path: str) -> RateLimitRule:
        """
        Find the rule for a request.

        Exact `METHOD /normalized/path` match first, then wildcard rules,
        then the default rule.
        """
        key = f"{method.upper()} {normalize_path(path)}"
        rule = self._rules.get(key)
        if rule is not None:
            return rule
        for pattern, candidate in self._wildcards:
            if pattern.fullmatch(key):
                return candidate
        return self._rules[DEFAULT_RULE_KEY]

    def check(self, api_key: ApiKey, method: str, path: str) -> RateLimitResult:
        """
        Evaluate and, if admitted, count a request.

        The burst tier is checked first. A request denied by either tier
        increments neither counter.

        Args:
            api_key: Validated key making the request
            method: HTTP method
            path: Request path

        Returns:
            RateLimitResult describing the decision
        """
        now = self._clock()
        rule = self.resolve_rule(method, path)
        self._total_requests += 1

        ceiling = api_key.rate_ceiling
        limit = min(rule.sustained.max_requests, ceiling.max_requests)
        window_ms = max(rule.sustained.window_ms, ceiling.window_seconds * 1000)

        burst_counter = None
        if rule.burst is not None:
            burst_counter = self._counter(
                api_key.key_id, rule.key, Tier.BURST, rule.burst.window_ms, now
            )
            if burst_counter.count >= rule.burst.max_requests:
                return self._deny(
                    api_key, rule.key, Tier.BURST, rule.burst.max_requests,
                    burst_counter, now,
                )

        sustained_counter = self._counter(
            api_key.key_id, rule.key, Tier.SUSTAINED, window_ms, now
        )
        if sustained_counter.count >= limit:
            return self._deny(
                api_key, rule.key, Tier.SUSTAINED, limit, sustained_counter, now
            )

        if burst_counter is not None:
            burst_counter.count += 1
        sustained_counter.count += 1

        return RateLimitResult(
            allowed=True,
            remaining=max(0, limit - sustained_counter.count),
            reset_time=datetime.fromtimestamp(sustained_counter.reset_time, UTC),
            limit=limit,
            rule_key=rule.key,
            tier=Tier.SUSTAINED,
        )

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Delete every counter whose window has elapsed.

        Returns:
            Number of counters removed
        """
        now = self._clock() if now is None else now
        expired = [k for k, c in self._counters.items() if now >= c.reset_time]
        for key in expired:
            del self._counters[key]
        if expired:
            logger.debug(
                "Swept expired rate limit counters",
                extra={"context": {"removed": len(expired)}},
            )
        return len(expired)

    def stats(self, top: int = 5) -> RateLimitStats:
        """Aggregate statistics since start-up."""
        return RateLimitStats(
            total_requests=self._total_requests,
            blocked_requests=self._blocked_requests,
            active_limits=len(self._counters),
            top_limited_endpoints=[
                LimitedEndpoint(endpoint=endpoint, blocked=blocked)
                for endpoint, blocked in self._blocked_by_rule.most_common(top)
            ],
        )

    @property
    def active_counters(self) -> int:
        return len(self._counters)

    async def start(self) -> None:
        """Start the sweep and statistics background tasks."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._sweep_loop()),
            asyncio.create_task(self._stats_loop()),
        ]

    async def stop(self) -> None:
        """Cancel background tasks; nothing mutates counters afterwards."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def _counter(
        self, key_id: str, rule_key: str, tier: Tier, window_ms: int, now: float
    ) -> RateLimitCounter:
        key = (key_id, rule_key, tier)
        counter = self._counters.get(key)
        if counter is None or now >= counter.reset_time:
            counter = RateLimitCounter(count=0, reset_time=now + window_ms / 1000)
            self._counters[key] = counter
        return counter

    def _deny(
        self,
        api_key: ApiKey,
        rule_key: str,
        tier: Tier,
        limit: int,
        counter: RateLimitCounter,
        now: float,
    ) -> RateLimitResult:
        retry_after = max(1, math.ceil(counter.reset_time - now))
        self._blocked_requests += 1
        self._blocked_by_rule[rule_key] += 1

        logger.warning(
            "Rate limit exceeded",
            extra={
                "context": {
                    "key_id": api_key.key_id,
                    "rule": rule_key,
                    "tier": tier,
                    "limit": limit,
                    "retry_after": retry_after,
                }
            },
        )
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_time=datetime.fromtimestamp(counter.reset_time, UTC),
            limit=limit,
            retry_after=retry_after,
            rule_key=rule_key,
            tier=tier,
        )

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    async def _stats_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._stats_interval)
            stats = self.stats()
            if stats.total_requests > 0:
                logger.info(
                    "Rate limit statistics",
                    extra={"context": stats.model_dump()},
                )
