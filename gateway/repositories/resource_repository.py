"""Generic, owner-scoped resource backend."""

import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Iterable

from gateway.config import settings
from gateway.repositories.base import BaseRepository

# Fields a caller can never overwrite
IMMUTABLE_FIELDS = frozenset({"id", "owner_id", "created_at", "updated_at", "resource"})


class ResourceBackend(ABC):
    """
    Read/create/update calls against the business data store.

    Every call takes the owner id; implementations must only ever return or
    modify records belonging to that owner.
    """

    @abstractmethod
    async def get(
        self, resource: str, item_id: str, owner_id: str
    ) -> dict[str, Any] | None:
        """Fetch one record owned by `owner_id`."""

    @abstractmethod
    async def list_owned(self, resource: str, owner_id: str) -> list[dict[str, Any]]:
        """List records owned by `owner_id`, newest first."""

    @abstractmethod
    async def create(
        self, resource: str, owner_id: str, attributes: dict[str, Any]
    ) -> dict[str, Any]:
        """Create a record owned by `owner_id`."""

    @abstractmethod
    async def update(
        self, resource: str, item_id: str, owner_id: str, changes: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]] | None:
        """Apply changes; returns (before, after) or None if not found."""

    @abstractmethod
    async def delete(self, resource: str, item_id: str, owner_id: str) -> bool:
        """Delete a record; False if not found."""

    async def count(
        self, resource: str, owner_id: str, statuses: Iterable[str] | None = None
    ) -> int:
        """Count owned records, optionally restricted to some statuses."""
        records = await self.list_owned(resource, owner_id)
        if statuses is None:
            return len(records)
        wanted = set(statuses)
        return sum(1 for record in records if record.get("status") in wanted)


class ResourceRepository(BaseRepository, ResourceBackend):
    """
    DynamoDB implementation of the resource backend.

    A single table keyed by (resource, id); ownership lives in `owner_id`
    and is enforced with filter and condition expressions.
    """

    def __init__(self, table_name: str | None = None) -> None:
        super().__init__(table_name or settings.dynamodb_table_resources)

    @staticmethod
    def _strip(item: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in item.items() if k != "resource"}

    async def get(
        self, resource: str, item_id: str, owner_id: str
    ) -> dict[str, Any] | None:
        item = await self.get_item({"resource": resource, "id": item_id})
        if not item or item.get("owner_id") != owner_id:
            return None
        return self._strip(item)

    async def list_owned(self, resource: str, owner_id: str) -> list[dict[str, Any]]:
        items = await self.query_all(
            KeyConditionExpression="#r = :resource",
            FilterExpression="owner_id = :owner_id",
            ExpressionAttributeNames={"#r": "resource"},
            ExpressionAttributeValues={":resource": resource, ":owner_id": owner_id},
        )
        records = [self._strip(item) for item in items]
        return sorted(records, key=lambda r: r.get("created_at", ""), reverse=True)

    async def create(
        self, resource: str, owner_id: str, attributes: dict[str, Any]
    ) -> dict[str, Any]:
        now = datetime.now(UTC).isoformat()
        record = {
            k: v for k, v in attributes.items() if k not in IMMUTABLE_FIELDS
        }
        record.update(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        await self.put_item({**record, "resource": resource})
        return record

    async def update(
        self, resource: str, item_id: str, owner_id: str, changes: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]] | None:
        before = await self.get(resource, item_id, owner_id)
        if before is None:
            return None

        fields = {k: v for k, v in changes.items() if k not in IMMUTABLE_FIELDS}
        fields["updated_at"] = datetime.now(UTC).isoformat()

        # A null value removes the attribute; items never store nulls
        names: dict[str, str] = {}
        values: dict[str, Any] = {":owner_id": owner_id}
        assignments = []
        removals = []
        for index, (field, value) in enumerate(fields.items()):
            names[f"#f{index}"] = field
            if value is None:
                removals.append(f"#f{index}")
            else:
                values[f":v{index}"] = value
                assignments.append(f"#f{index} = :v{index}")

        update_expression = "SET " + ", ".join(assignments)
        if removals:
            update_expression += " REMOVE " + ", ".join(removals)

        after = await self.update_item(
            key={"resource": resource, "id": item_id},
            update_expression=update_expression,
            expression_values=values,
            expression_names=names,
            condition_expression="owner_id = :owner_id",
        )
        if after is None:
            return None
        return before, self._strip(after)

    async def delete(self, resource: str, item_id: str, owner_id: str) -> bool:
        return await self.delete_item(
            {"resource": resource, "id": item_id},
            condition_expression="owner_id = :owner_id",
            expression_values={":owner_id": owner_id},
        )
