"""Credential store: issue, validate, revoke and list API keys."""

import asyncio
from datetime import UTC, datetime
from collections import Counter
from typing import Callable, Dict, List, Optional, Set

from gateway.auth.api_key import (
    fingerprint_api_key,
    generate_api_key,
    generate_key_id,
    hash_api_key,
    parse_api_key,
    verify_api_key,
)
from gateway.config import settings
from gateway.exceptions import NotFoundError
from gateway.logging.config import get_logger
from gateway.models.api_key import ApiKey, ApiKeyView, RateCeiling
from gateway.models.permissions import Permission
from gateway.repositories.api_key_repository import ApiKeyRepository

logger = get_logger(__name__)


class CredentialStore:
    """
    Owns API key lifecycle and the validation cache.

    The cache is keyed by the SHA256 fingerprint of the presented token and
    holds the validated ApiKey. A reverse index (key_id -> fingerprints) lets
    `revoke` evict every cached copy before it returns.
    """

    def __init__(
        self,
        repository: Optional[ApiKeyRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            repository: Key persistence (defaults to DynamoDB)
            clock: Returns the current UTC time; injectable for tests
        """
        self.repository = repository or ApiKeyRepository()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cache: Dict[str, ApiKey] = {}
        self._fingerprints: Dict[str, Set[str]] = {}
        # Key ids fenced off from caching while a revoke or a racing lookup runs
        self._revoked: Set[str] = set()
        self._revoking: Set[str] = set()
        self._lookups: Counter = Counter()
        self._touch_tasks: Set[asyncio.Task] = set()

    async def issue(
        self,
        owner_id: str,
        name: str,
        permissions: List[Permission],
        rate_ceiling: Optional[RateCeiling] = None,
        expires_at: Optional[datetime] = None,
    ) -> ApiKeyView:
        """
        Create a new key and return its plaintext exactly once.

        Args:
            owner_id: Principal that will own the key
            name: Display name
            permissions: Granted permissions
            rate_ceiling: Optional per-key ceiling (settings default otherwise)
            expires_at: Optional expiry

        Returns:
            ApiKeyView whose `key` is the plaintext token
        """
        key_id = generate_key_id()
        plaintext = generate_api_key(key_id)
        key_hash = await asyncio.to_thread(hash_api_key, plaintext)

        api_key = ApiKey(
            key_id=key_id,
            name=name,
            key_hash=key_hash,
            owner_id=owner_id,
            permissions=permissions,
            rate_ceiling=rate_ceiling
            or RateCeiling(
                max_requests=settings.default_key_max_requests,
                window_seconds=settings.default_key_window_seconds,
            ),
            created_at=self._clock(),
            expires_at=expires_at,
        )
        await self.repository.create(api_key)

        logger.info(
            "API key issued",
            extra={
                "context": {
                    "key_id": key_id,
                    "owner_id": owner_id,
                    "permissions": [str(p) for p in permissions],
                }
            },
        )
        return api_key.to_view(key=plaintext)

    async def validate(self, presented: str) -> Optional[ApiKey]:
        """
        Resolve a presented token to an active, unexpired key.

        Args:
            presented: Token from the request

        Returns:
            The ApiKey, or None if unknown, inactive or expired
        """
        if not presented:
            return None

        now = self._clock()
        fingerprint = fingerprint_api_key(presented)

        cached = self._cache.get(fingerprint)
        if cached is not None:
            if not self._usable(cached, now):
                self._evict(cached.key_id)
                return None
            self._schedule_touch(cached.key_id, now)
            return cached

        key_id = parse_api_key(presented)
        if key_id is None:
            return None

        self._lookups[key_id] += 1
        try:
            api_key = await self.repository.get_by_id(key_id)
            verified = api_key is not None and await asyncio.to_thread(
                verify_api_key, presented, api_key.key_hash
            )
        finally:
            self._lookups[key_id] -= 1
            # The key may have been revoked while the lookup was in flight
            fenced = key_id in self._revoked
            if self._lookups[key_id] <= 0:
                del self._lookups[key_id]
                self._release_fence(key_id)

        if not verified or fenced or not self._usable(api_key, now):
            return None

        self._cache[fingerprint] = api_key
        self._fingerprints.setdefault(key_id, set()).add(fingerprint)
        self._schedule_touch(key_id, now)
        return api_key

    async def revoke(self, key_id: str, owner_id: str) -> None:
        """
        Deactivate a key owned by `owner_id`.

        Cached copies are evicted before the store is updated, so no
        validation after this call can succeed.

        Raises:
            NotFoundError: If the key does not exist or has another owner
        """
        existing = await self.repository.get_by_id(key_id)
        if existing is None or existing.owner_id != owner_id:
            raise NotFoundError(
                message="API key not found", resource="api_keys", resource_id=key_id
            )

        self._revoked.add(key_id)
        self._revoking.add(key_id)
        self._evict(key_id)
        try:
            updated = await self.repository.set_active(key_id, owner_id, False)
        finally:
            self._revoking.discard(key_id)
            self._release_fence(key_id)

        if not updated:
            raise NotFoundError(
                message="API key not found", resource="api_keys", resource_id=key_id
            )

        logger.info(
            "API key revoked",
            extra={"context": {"key_id": key_id, "owner_id": owner_id}},
        )

    async def list(self, owner_id: str) -> List[ApiKeyView]:
        """List an owner's keys with the secret redacted."""
        keys = await self.repository.list_by_owner(owner_id)
        return [api_key.to_view() for api_key in keys]

    async def aclose(self) -> None:
        """Wait for pending last-used updates."""
        if self._touch_tasks:
            await asyncio.gather(*self._touch_tasks, return_exceptions=True)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def _usable(self, api_key: ApiKey, now: datetime) -> bool:
        return api_key.is_active and not api_key.is_expired(now)

    def _release_fence(self, key_id: str) -> None:
        if key_id not in self._revoking and not self._lookups.get(key_id):
            self._revoked.discard(key_id)

    def _evict(self, key_id: str) -> None:
        for fingerprint in self._fingerprints.pop(key_id, set()):
            self._cache.pop(fingerprint, None)

    def _schedule_touch(self, key_id: str, used_at: datetime) -> None:
        task = asyncio.create_task(self._touch(key_id, used_at))
        self._touch_tasks.add(task)
        task.add_done_callback(self._touch_tasks.discard)

    async def _touch(self, key_id: str, used_at: datetime) -> None:
        try:
            await self.repository.touch_last_used(key_id, used_at)
        except Exception as e:
            logger.warning(
                "Failed to update last_used_at",
                extra={"context": {"key_id": key_id, "error": str(e)}},
            )
