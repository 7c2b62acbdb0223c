"""Base repository class with common DynamoDB operations."""

import json
from decimal import Decimal
from typing import Any

import aioboto3
from botocore.exceptions import ClientError

from gateway.config import settings
from gateway.logging.config import get_logger

logger = get_logger(__name__)


def get_dynamodb_config() -> dict[str, Any]:
    """
    Build DynamoDB resource configuration based on environment.

    With IAM roles only the region is passed. For LocalStack the
    endpoint_url and explicit credentials are included.

    Returns:
        Dictionary of aioboto3 resource parameters
    """
    config: dict[str, Any] = {"region_name": settings.aws_region}

    if settings.dynamodb_endpoint_url:
        config["endpoint_url"] = settings.dynamodb_endpoint_url

    if settings.aws_access_key_id:
        config["aws_access_key_id"] = settings.aws_access_key_id
    if settings.aws_secret_access_key:
        config["aws_secret_access_key"] = settings.aws_secret_access_key
    # Session token is required for temporary credentials
    if settings.aws_session_token:
        config["aws_session_token"] = settings.aws_session_token

    return config


def to_item(data: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a JSON-ready dict into a DynamoDB item.

    DynamoDB rejects floats and empty strings in some positions, so numbers
    go through Decimal and None values are dropped.

    Args:
        data: JSON-compatible dictionary

    Returns:
        Item safe to pass to put_item
    """
    cleaned = {key: value for key, value in data.items() if value is not None}
    return json.loads(json.dumps(cleaned, default=str), parse_float=Decimal)


def from_item(value: Any) -> Any:
    """Recursively convert DynamoDB Decimals back into int/float."""
    if isinstance(value, list):
        return [from_item(v) for v in value]
    if isinstance(value, dict):
        return {k: from_item(v) for k, v in value.items()}
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class BaseRepository:
    """
    Base repository providing common DynamoDB operations.

    All repository methods are async and use aioboto3 for
    non-blocking database operations.
    """

    def __init__(self, table_name: str) -> None:
        """
        Initialize repository with table name.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.session = aioboto3.Session()

    async def put_item(self, item: dict[str, Any]) -> None:
        """
        Put item into DynamoDB table.

        Args:
            item: Dictionary representing the item to store
        """
        async with self.session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
            table = await dynamodb.Table(self.table_name)
            await table.put_item(Item=to_item(item))

    async def get_item(self, key: dict[str, Any]) -> dict[str, Any] | None:
        """
        Get item from DynamoDB table by key.

        Args:
            key: Dictionary with partition key and optionally sort key

        Returns:
            Item dictionary or None if not found
        """
        async with self.session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
            table = await dynamodb.Table(self.table_name)
            response = await table.get_item(Key=key)
            item = response.get("Item")
            return from_item(item) if item else None

    async def delete_item(
        self,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_values: dict[str, Any] | None = None,
    ) -> bool:
        """
        Delete item from DynamoDB table.

        Args:
            key: Dictionary with partition key and optionally sort key
            condition_expression: Optional guard, e.g. an ownership check
            expression_values: Values for the condition expression

        Returns:
            False if the condition failed, True otherwise
        """
        params: dict[str, Any] = {"Key": key}
        if condition_expression:
            params["ConditionExpression"] = condition_expression
        if expression_values:
            params["ExpressionAttributeValues"] = to_item(expression_values)

        async with self.session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
            table = await dynamodb.Table(self.table_name)
            try:
                await table.delete_item(**params)
            except ClientError as e:
                if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                    return False
                raise
            return True

    async def update_item(
        self,
        key: dict[str, Any],
        update_expression: str,
        expression_values: dict[str, Any],
        expression_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Update item in DynamoDB table.

        Args:
            key: Dictionary with partition key and optionally sort key
            update_expression: DynamoDB update expression
            expression_values: Values for the update expression
            expression_names: Optional attribute name mappings for reserved keywords
            condition_expression: Optional guard evaluated atomically

        Returns:
            Updated item attributes, or None if the condition failed
        """
        async with self.session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
            table = await dynamodb.Table(self.table_name)
            update_params: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": to_item(expression_values),
                "ReturnValues": "ALL_NEW",
            }
            if expression_names:
                update_params["ExpressionAttributeNames"] = expression_names
            if condition_expression:
                update_params["ConditionExpression"] = condition_expression

            try:
                response = await table.update_item(**update_params)
            except ClientError as e:
                if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                    return None
                raise
            return from_item(response.get("Attributes", {}))

    async def scan_all(self, **scan_kwargs: Any) -> list[dict[str, Any]]:
        """
        Scan the whole table, following pagination.

        Args:
            **scan_kwargs: Extra scan parameters (FilterExpression, ...)

        Returns:
            All matching items
        """
        items: list[dict[str, Any]] = []
        async with self.session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
            table = await dynamodb.Table(self.table_name)
            params = dict(scan_kwargs)
            while True:
                response = await table.scan(**params)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                params["ExclusiveStartKey"] = last_key
        return from_item(items)

    async def query_all(self, **query_kwargs: Any) -> list[dict[str, Any]]:
        """
        Query the table, following pagination.

        Args:
            **query_kwargs: Query parameters (KeyConditionExpression, ...)

        Returns:
            All matching items
        """
        items: list[dict[str, Any]] = []
        async with self.session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
            table = await dynamodb.Table(self.table_name)
            params = dict(query_kwargs)
            while True:
                response = await table.query(**params)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                params["ExclusiveStartKey"] = last_key
        return from_item(items)
