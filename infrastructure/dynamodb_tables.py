"""Script to create the gateway's DynamoDB tables for LocalStack or AWS."""

import asyncio
from typing import Any, List, Tuple

import aioboto3
from botocore.exceptions import ClientError

from gateway.config import settings
from gateway.repositories.base import get_dynamodb_config

# (attribute name, key type) pairs; every key attribute is a string
KeySchema = List[Tuple[str, str]]


def table_definitions() -> List[Tuple[str, KeySchema]]:
    """
    Tables required by the gateway.

    Returns:
        (table name, key schema) pairs
    """
    return [
        (settings.dynamodb_table_api_keys, [("key_id", "HASH")]),
        (settings.dynamodb_table_webhooks, [("webhook_id", "HASH")]),
        (settings.dynamodb_table_resources, [("resource", "HASH"), ("id", "RANGE")]),
    ]


async def create_table(dynamodb: Any, table_name: str, key_schema: KeySchema) -> bool:
    """
    Create a pay-per-request table unless it already exists.

    Args:
        dynamodb: DynamoDB resource
        table_name: Name of the table
        key_schema: Partition (and optional sort) key

    Returns:
        True if the table was created, False if it already existed
    """
    try:
        table = await dynamodb.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": name, "KeyType": key_type}
                for name, key_type in key_schema
            ],
            AttributeDefinitions=[
                {"AttributeName": name, "AttributeType": "S"}
                for name, _ in key_schema
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        await table.wait_until_exists()
        print(f"✓ Created table: {table_name}")
        return True
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            print(f"→ Table already exists: {table_name}")
            return False
        raise


async def main() -> None:
    """Create all required DynamoDB tables."""
    print("Creating DynamoDB tables...")
    print(f"Region: {settings.aws_region}")
    print(f"Endpoint: {settings.dynamodb_endpoint_url or 'AWS'}")
    print()

    session = aioboto3.Session()
    async with session.resource("dynamodb", **get_dynamodb_config()) as dynamodb:
        for table_name, key_schema in table_definitions():
            await create_table(dynamodb, table_name, key_schema)

    print()
    print("✓ All tables created successfully!")


if __name__ == "__main__":
    asyncio.run(main())
