"""Fixtures replacing the aioboto3 session with an in-process mock table."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError


@pytest.fixture
def table() -> AsyncMock:
    """Mock DynamoDB Table; configure return values per test."""
    table = AsyncMock()
    table.get_item.return_value = {}
    table.scan.return_value = {"Items": []}
    table.query.return_value = {"Items": []}
    table.update_item.return_value = {"Attributes": {}}
    return table


@pytest.fixture
def mock_session(table):
    """Factory wiring a repository's session to the mock table."""

    def _attach(repository):
        dynamodb = MagicMock()
        dynamodb.Table = AsyncMock(return_value=table)
        resource_cm = MagicMock()
        resource_cm.__aenter__ = AsyncMock(return_value=dynamodb)
        resource_cm.__aexit__ = AsyncMock(return_value=False)
        repository.session = MagicMock()
        repository.session.resource.return_value = resource_cm
        return repository

    return _attach


@pytest.fixture
def conditional_check_failed() -> ClientError:
    """ClientError raised when a condition expression fails."""
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "failed"}},
        "UpdateItem",
    )
