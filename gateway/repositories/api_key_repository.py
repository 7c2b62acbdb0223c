"""API Key repository for DynamoDB operations."""

from datetime import datetime
from typing import List, Optional

from gateway.config import settings
from gateway.models.api_key import ApiKey
from gateway.repositories.base import BaseRepository


class ApiKeyRepository(BaseRepository):
    """
    Repository for API Key operations in DynamoDB.

    Only hashes are ever stored; the plaintext token never reaches this layer.
    """

    def __init__(self, table_name: str | None = None) -> None:
        """Initialize ApiKeyRepository with api_keys table."""
        super().__init__(table_name or settings.dynamodb_table_api_keys)

    async def create(self, api_key: ApiKey) -> ApiKey:
        """
        Create a new API key in DynamoDB.

        Args:
            api_key: ApiKey model to store

        Returns:
            The created ApiKey
        """
        await self.put_item(api_key.model_dump(mode="json"))
        return api_key

    async def get_by_id(self, key_id: str) -> Optional[ApiKey]:
        """
        Get API key by ID.

        Args:
            key_id: API key partition key

        Returns:
            ApiKey if found, None otherwise
        """
        item = await self.get_item({"key_id": key_id})
        if item:
            return ApiKey(**item)
        return None

    async def list_by_owner(self, owner_id: str) -> List[ApiKey]:
        """
        List every key owned by a principal, newest first.

        Args:
            owner_id: Owning principal id

        Returns:
            List of ApiKey models
        """
        items = await self.scan_all(
            FilterExpression="owner_id = :owner_id",
            ExpressionAttributeValues={":owner_id": owner_id},
        )
        keys = [ApiKey(**item) for item in items]
        return sorted(keys, key=lambda k: k.created_at, reverse=True)

    async def set_active(self, key_id: str, owner_id: str, is_active: bool) -> bool:
        """
        Flip the active flag of a key owned by a principal.

        Args:
            key_id: Key to update
            owner_id: Required owner of the key
            is_active: New flag value

        Returns:
            False if the key does not exist or belongs to someone else
        """
        updated = await self.update_item(
            key={"key_id": key_id},
            update_expression="SET is_active = :is_active",
            expression_values={":is_active": is_active, ":owner_id": owner_id},
            condition_expression="owner_id = :owner_id",
        )
        return updated is not None

    async def touch_last_used(self, key_id: str, used_at: datetime) -> None:
        """
        Record the last successful validation time.

        Args:
            key_id: Key to update
            used_at: Validation timestamp
        """
        await self.update_item(
            key={"key_id": key_id},
            update_expression="SET last_used_at = :used_at",
            expression_values={":used_at": used_at.isoformat()},
            condition_expression="attribute_exists(key_id)",
        )
