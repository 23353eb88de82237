from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from .mocks import ANY, FakeDynamoDBClient, InMemoryDynamoDBClient, client_error


def describe_table_response(
    table_name: str,
    keys: str | Sequence[str],
    types: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    names = [keys] if isinstance(keys, str) else list(keys)
    types = types or {}
    key_schema = [
        {"AttributeName": name, "KeyType": "HASH" if i == 0 else "RANGE"} for i, name in enumerate(names)
    ]
    return {
        "Table": {
            "TableName": table_name,
            "TableStatus": "ACTIVE",
            "KeySchema": key_schema,
            "AttributeDefinitions": [
                {"AttributeName": name, "AttributeType": types.get(name, "S")} for name in names
            ],
        }
    }


def create_memory_table(
    client: InMemoryDynamoDBClient,
    table_name: str,
    keys: str | Sequence[str],
    types: Mapping[str, str] | None = None,
) -> None:
    desc = describe_table_response(table_name, keys, types)["Table"]
    client.create_table(
        TableName=table_name,
        KeySchema=desc["KeySchema"],
        AttributeDefinitions=desc["AttributeDefinitions"],
        BillingMode="PAY_PER_REQUEST",
    )


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "InMemoryDynamoDBClient",
    "client_error",
    "create_memory_table",
    "describe_table_response",
]
