"""Shared fixtures: fast bcrypt, a controllable clock and in-memory stores."""

import uuid
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from gateway.auth.api_key import generate_api_key, generate_key_id, hash_api_key
from gateway.config import settings
from gateway.models.api_key import ApiKey, RateCeiling
from gateway.models.permissions import Action, Permission, Resource
from gateway.repositories.resource_repository import IMMUTABLE_FIELDS, ResourceBackend


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryApiKeyRepository:
    """Dict-backed stand-in for ApiKeyRepository."""

    def __init__(self) -> None:
        self.keys: Dict[str, ApiKey] = {}
        self.get_calls = 0
        self.touched: List[Tuple[str, datetime]] = []

    async def create(self, api_key: ApiKey) -> ApiKey:
        self.keys[api_key.key_id] = api_key
        return api_key

    async def get_by_id(self, key_id: str) -> Optional[ApiKey]:
        self.get_calls += 1
        api_key = self.keys.get(key_id)
        return api_key.model_copy() if api_key else None

    async def list_by_owner(self, owner_id: str) -> List[ApiKey]:
        keys = [k for k in self.keys.values() if k.owner_id == owner_id]
        return sorted(keys, key=lambda k: k.created_at, reverse=True)

    async def set_active(self, key_id: str, owner_id: str, is_active: bool) -> bool:
        api_key = self.keys.get(key_id)
        if api_key is None or api_key.owner_id != owner_id:
            return False
        self.keys[key_id] = api_key.model_copy(update={"is_active": is_active})
        return True

    async def touch_last_used(self, key_id: str, used_at: datetime) -> None:
        self.touched.append((key_id, used_at))


class InMemoryResourceBackend(ResourceBackend):
    """Dict-backed ResourceBackend keyed by (resource, id)."""

    def __init__(self) -> None:
        self.records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self._sequence = 0

    def seed(self, resource: str, owner_id: str, **fields: Any) -> Dict[str, Any]:
        self._sequence += 1
        record = {
            "id": fields.pop("id", str(uuid.uuid4())),
            "owner_id": owner_id,
            "created_at": f"2025-01-01T00:00:{self._sequence:02d}+00:00",
            **fields,
        }
        self.records[(resource, record["id"])] = record
        return record

    async def get(self, resource, item_id, owner_id):
        self.calls.append(("get", resource, owner_id))
        record = self.records.get((resource, item_id))
        if record is None or record["owner_id"] != owner_id:
            return None
        return dict(record)

    async def list_owned(self, resource, owner_id):
        self.calls.append(("list", resource, owner_id))
        records = [
            dict(r)
            for (res, _), r in self.records.items()
            if res == resource and r["owner_id"] == owner_id
        ]
        return sorted(records, key=lambda r: r["created_at"], reverse=True)

    async def create(self, resource, owner_id, attributes):
        self.calls.append(("create", resource, owner_id))
        fields = {k: v for k, v in attributes.items() if k not in IMMUTABLE_FIELDS}
        return dict(self.seed(resource, owner_id, **fields))

    async def update(self, resource, item_id, owner_id, changes):
        self.calls.append(("update", resource, owner_id))
        record = self.records.get((resource, item_id))
        if record is None or record["owner_id"] != owner_id:
            return None
        before = dict(record)
        record.update({k: v for k, v in changes.items() if k not in IMMUTABLE_FIELDS})
        return before, dict(record)

    async def delete(self, resource, item_id, owner_id):
        self.calls.append(("delete", resource, owner_id))
        record = self.records.get((resource, item_id))
        if record is None or record["owner_id"] != owner_id:
            return False
        del self.records[(resource, item_id)]
        return True


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep bcrypt cheap in tests."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key_repo() -> InMemoryApiKeyRepository:
    return InMemoryApiKeyRepository()


@pytest.fixture
def backend() -> InMemoryResourceBackend:
    return InMemoryResourceBackend()


@pytest.fixture
def make_api_key() -> Callable[..., ApiKey]:
    """Factory for ApiKey models (no real hash unless `plaintext` is wanted)."""

    def _make(
        permissions: Optional[Dict[Resource, List[Action]]] = None,
        max_requests: int = 1000,
        window_seconds: int = 60,
        owner_id: str = "owner-1",
        **overrides: Any,
    ) -> ApiKey:
        perms = [
            Permission(resource=resource, actions=actions)
            for resource, actions in (permissions or {}).items()
        ]
        values: Dict[str, Any] = {
            "key_id": generate_key_id(),
            "name": "test key",
            "key_hash": "$2b$04$notarealhashnotarealhashnotarealhashnotarealhash12",
            "owner_id": owner_id,
            "permissions": perms,
            "rate_ceiling": RateCeiling(
                max_requests=max_requests, window_seconds=window_seconds
            ),
            "created_at": datetime.now(UTC),
        }
        values.update(overrides)
        return ApiKey(**values)

    return _make


@pytest.fixture
def stored_key(
    key_repo: InMemoryApiKeyRepository,
) -> Callable[..., Tuple[str, ApiKey]]:
    """Store a key with a real hash in the in-memory repo; returns (token, key)."""

    def _store(**overrides: Any) -> Tuple[str, ApiKey]:
        key_id = generate_key_id()
        token = generate_api_key(key_id)
        values: Dict[str, Any] = {
            "key_id": key_id,
            "name": "stored key",
            "key_hash": hash_api_key(token),
            "owner_id": "owner-1",
            "permissions": [],
            "created_at": datetime.now(UTC),
        }
        values.update(overrides)
        api_key = ApiKey(**values)
        key_repo.keys[key_id] = api_key
        return token, api_key

    return _store
