from __future__ import annotations

import asyncio

import pytest
from botocore.exceptions import ClientError

from dynamowrap_py import TableNotFoundError
from dynamowrap_py.mocks import FakeDynamoDBClient
from dynamowrap_py.schema import (
    DynamoDbKeySchemaResolver,
    KeySchema,
    StaticKeySchemaResolver,
    describe_key_schema,
)
from dynamowrap_py.testkit import client_error, describe_table_response


def test_from_description_orders_hash_before_range() -> None:
    resp = {
        "Table": {
            "KeySchema": [
                {"AttributeName": "SK", "KeyType": "RANGE"},
                {"AttributeName": "PK", "KeyType": "HASH"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "N"},
                {"AttributeName": "gsiKey", "AttributeType": "S"},
            ],
        }
    }

    schema = KeySchema.from_description("tbl", resp)

    assert schema.attribute_names == ("PK", "SK")
    assert dict(schema.attribute_types) == {"PK": "S", "SK": "N"}


def test_key_schema_requires_a_key() -> None:
    with pytest.raises(ValueError, match="at least one key"):
        KeySchema("tbl", ())


def test_missing_treats_none_as_absent() -> None:
    schema = KeySchema("tbl", ("PK", "SK"))

    assert schema.missing({"PK": "a", "SK": 0}) == ()
    assert schema.missing({"PK": None}) == ("PK", "SK")
    assert schema.key_of({"PK": "a", "SK": 1, "other": 2}) == {"PK": "a", "SK": 1}


def test_describe_key_schema_maps_missing_table() -> None:
    client = FakeDynamoDBClient()
    client.expect("describe_table", {"TableName": "tbl"}, error=client_error("ResourceNotFoundException"))

    with pytest.raises(TableNotFoundError) as excinfo:
        describe_key_schema(client, "tbl")

    assert excinfo.value.table_name == "tbl"


def test_describe_key_schema_leaves_other_errors_to_the_caller() -> None:
    client = FakeDynamoDBClient()
    client.expect("describe_table", error=client_error("AccessDeniedException", "no"))

    with pytest.raises(ClientError):
        describe_key_schema(client, "tbl")


def test_dynamodb_resolver_caches_per_table() -> None:
    client = FakeDynamoDBClient()
    client.expect("describe_table", {"TableName": "a"}, response=describe_table_response("a", "Id"))
    client.expect("describe_table", {"TableName": "b"}, response=describe_table_response("b", ["P", "S"]))
    resolver = DynamoDbKeySchemaResolver(client)

    async def run() -> list[KeySchema]:
        return [
            await resolver.resolve("a"),
            await resolver.resolve("a"),
            await resolver.resolve("b"),
        ]

    first, again, other = asyncio.run(run())

    assert first is again
    assert other.attribute_names == ("P", "S")
    client.assert_no_pending()


def test_static_resolver() -> None:
    resolver = StaticKeySchemaResolver({"Test": "Id", "Orders": ["CustomerId", "OrderId"]})

    assert resolver.table_names == ("Test", "Orders")
    assert resolver.resolve("Orders").attribute_names == ("CustomerId", "OrderId")
    with pytest.raises(TableNotFoundError):
        resolver.resolve("Missing")
