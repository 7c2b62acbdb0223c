"""Unit tests for ApiKeyRepository."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from gateway.models.api_key import ApiKey
from gateway.models.permissions import Action, Permission, Resource
from gateway.repositories.api_key_repository import ApiKeyRepository


@pytest.fixture
def repository(mock_session) -> ApiKeyRepository:
    """Create ApiKeyRepository bound to the mock table."""
    return mock_session(ApiKeyRepository(table_name="test-api-keys"))


@pytest.fixture
def api_key() -> ApiKey:
    """Create a test API key."""
    return ApiKey(
        key_id="3f1c2b9a7d8e4f60a1b2c3d4e5f60718",
        name="CRM sync",
        key_hash="$2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/Lew",
        owner_id="owner-1",
        permissions=[Permission(resource=Resource.PROPERTIES, actions=[Action.READ])],
        created_at=datetime(2025, 1, 1, 12, 0, tzinfo=UTC),
    )


def stored_item(**overrides) -> dict:
    item = {
        "key_id": "3f1c2b9a7d8e4f60a1b2c3d4e5f60718",
        "name": "CRM sync",
        "key_hash": "$2b$12$hash",
        "owner_id": "owner-1",
        "permissions": [{"resource": "properties", "actions": ["read"]}],
        "rate_ceiling": {"max_requests": Decimal("1000"), "window_seconds": Decimal("3600")},
        "created_at": "2025-01-01T12:00:00+00:00",
        "is_active": True,
    }
    item.update(overrides)
    return item


@pytest.mark.asyncio
async def test_create_api_key(repository, table, api_key) -> None:
    """Test that keys are stored as JSON-ready items without null fields."""
    result = await repository.create(api_key)

    assert result == api_key
    item = table.put_item.await_args.kwargs["Item"]
    assert item["key_id"] == api_key.key_id
    assert item["key_hash"] == api_key.key_hash
    assert item["permissions"] == [{"resource": "properties", "actions": ["read"]}]
    assert item["created_at"] == "2025-01-01T12:00:00Z"
    assert "last_used_at" not in item
    assert "expires_at" not in item


@pytest.mark.asyncio
async def test_uses_configured_table(repository, api_key) -> None:
    """Test that the repository opens its own table."""
    await repository.create(api_key)

    dynamodb = await repository.session.resource.return_value.__aenter__()
    dynamodb.Table.assert_awaited_with("test-api-keys")


@pytest.mark.asyncio
async def test_get_by_id(repository, table) -> None:
    """Test retrieving an API key by ID, converting Decimals back."""
    table.get_item.return_value = {"Item": stored_item()}

    result = await repository.get_by_id("3f1c2b9a7d8e4f60a1b2c3d4e5f60718")

    assert result is not None
    assert result.owner_id == "owner-1"
    assert result.rate_ceiling.max_requests == 1000
    assert result.can(Resource.PROPERTIES, Action.READ)
    table.get_item.assert_awaited_once_with(
        Key={"key_id": "3f1c2b9a7d8e4f60a1b2c3d4e5f60718"}
    )


@pytest.mark.asyncio
async def test_get_by_id_not_found(repository) -> None:
    """Test retrieving non-existent API key."""
    assert await repository.get_by_id("nonexistent-key-id") is None


@pytest.mark.asyncio
async def test_list_by_owner_follows_pagination(repository, table) -> None:
    """Test that every scan page is read and results are newest first."""
    table.scan.side_effect = [
        {
            "Items": [stored_item(key_id="a" * 32, created_at="2025-01-01T00:00:00+00:00")],
            "LastEvaluatedKey": {"key_id": "a" * 32},
        },
        {"Items": [stored_item(key_id="b" * 32, created_at="2025-02-01T00:00:00+00:00")]},
    ]

    keys = await repository.list_by_owner("owner-1")

    assert [k.key_id for k in keys] == ["b" * 32, "a" * 32]
    first_call, second_call = table.scan.await_args_list
    assert first_call.kwargs["ExpressionAttributeValues"] == {":owner_id": "owner-1"}
    assert second_call.kwargs["ExclusiveStartKey"] == {"key_id": "a" * 32}


@pytest.mark.asyncio
async def test_set_active_is_owner_conditional(repository, table) -> None:
    """Test that deactivation is guarded by the owner id."""
    table.update_item.return_value = {"Attributes": stored_item(is_active=False)}

    assert await repository.set_active("a" * 32, "owner-1", False) is True

    params = table.update_item.await_args.kwargs
    assert params["ConditionExpression"] == "owner_id = :owner_id"
    assert params["ExpressionAttributeValues"] == {
        ":is_active": False,
        ":owner_id": "owner-1",
    }


@pytest.mark.asyncio
async def test_set_active_wrong_owner(
    repository, table, conditional_check_failed
) -> None:
    """Test that a failed ownership condition reports False."""
    table.update_item.side_effect = conditional_check_failed

    assert await repository.set_active("a" * 32, "owner-2", False) is False


@pytest.mark.asyncio
async def test_touch_last_used(repository, table) -> None:
    """Test the last-used timestamp update."""
    used_at = datetime(2025, 3, 1, 8, 30, tzinfo=UTC)

    await repository.touch_last_used("a" * 32, used_at)

    params = table.update_item.await_args.kwargs
    assert params["UpdateExpression"] == "SET last_used_at = :used_at"
    assert params["ExpressionAttributeValues"] == {":used_at": used_at.isoformat()}
