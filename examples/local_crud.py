from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass

import boto3

from dynamowrap_py import (
    DuplicateKeyError,
    DynamoDbProvider,
    InMemoryStubProvider,
    ProviderSettings,
    TableStoreProvider,
    attempt,
)


@dataclass(frozen=True)
class Note:
    Id: int
    Value: int


async def exercise(provider: TableStoreProvider, table_name: str) -> None:
    await provider.put_item(table_name, Note(Id=1, Value=10))
    await provider.put_item(table_name, Note(Id=2, Value=20))

    try:
        await provider.put_item(table_name, Note(Id=1, Value=11), unique_keys=True)
    except DuplicateKeyError as err:
        print("duplicate:", err)

    await provider.update_item(table_name, {"Id": 2, "Value": 21})
    print("batch:", await provider.get_batch_items(table_name, [{"Id": 1}, {"Id": 2}, {"Id": 3}], Note))

    outcome = await attempt(provider.update_item(table_name, {"Id": 404, "Value": 0}))
    print("update of missing key:", outcome.kind)


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

    print("-- in-memory stub")
    asyncio.run(exercise(InMemoryStubProvider.for_table("notes", "Id"), "notes"))

    settings = ProviderSettings.from_env()
    if settings.endpoint_url is None:
        print("DYNAMODB_ENDPOINT is not set; skipping DynamoDB Local")
        return

    print("-- DynamoDB Local")
    client = boto3.client(
        "dynamodb",
        endpoint_url=settings.endpoint_url,
        region_name=settings.region or "us-east-1",
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
    )
    table_name = f"dynamowrap_py_example_{uuid.uuid4().hex[:12]}"
    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "Id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "Id", "AttributeType": "N"}],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)
    try:
        asyncio.run(exercise(DynamoDbProvider(client), table_name))
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
