from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from dynamowrap_py.aws_errors import error_code
from dynamowrap_py.mocks import request_mismatches
from dynamowrap_py.testkit import (
    ANY,
    FakeDynamoDBClient,
    InMemoryDynamoDBClient,
    client_error,
    create_memory_table,
    describe_table_response,
)


def test_fake_client_matches_expected_requests() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"TableName": "t", "Item": ANY}, response={"ok": True})

    assert client.put_item(TableName="t", Item={"Id": {"N": "1"}}) == {"ok": True}
    client.assert_no_pending()
    assert client.calls[0][0] == "put_item"


def test_fake_client_rejects_mismatches() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"TableName": "t"})
    with pytest.raises(AssertionError, match="expected 't'"):
        client.put_item(TableName="other")

    client.expect("describe_table")
    with pytest.raises(AssertionError, match="update_item called while describe_table was scripted"):
        client.update_item(TableName="t")

    with pytest.raises(AssertionError, match="unscripted batch_get_item call"):
        client.batch_get_item(RequestItems={})


def test_fake_client_asserts_pending_calls() -> None:
    client = FakeDynamoDBClient()
    client.expect("batch_get_item")
    assert client.pending == ("batch_get_item",)
    with pytest.raises(AssertionError, match="never made: batch_get_item"):
        client.assert_no_pending()


def test_describe_table_response_shape() -> None:
    resp = describe_table_response("t", ["P", "S"], {"S": "N"})

    assert resp["Table"]["KeySchema"] == [
        {"AttributeName": "P", "KeyType": "HASH"},
        {"AttributeName": "S", "KeyType": "RANGE"},
    ]
    assert resp["Table"]["AttributeDefinitions"] == [
        {"AttributeName": "P", "AttributeType": "S"},
        {"AttributeName": "S", "AttributeType": "N"},
    ]


def test_memory_client_put_conditions_and_batch_get() -> None:
    client = InMemoryDynamoDBClient()
    create_memory_table(client, "t", "Id", {"Id": "N"})

    client.put_item(TableName="t", Item={"Id": {"N": "1"}, "v": {"S": "a"}})
    with pytest.raises(ClientError) as excinfo:
        client.put_item(
            TableName="t",
            Item={"Id": {"N": "1.0"}},
            ConditionExpression="attribute_not_exists(#u0)",
            ExpressionAttributeNames={"#u0": "Id"},
        )
    assert error_code(excinfo.value) == "ConditionalCheckFailedException"

    resp = client.batch_get_item(RequestItems={"t": {"Keys": [{"Id": {"N": "1"}}, {"Id": {"N": "2"}}]}})
    assert resp["Responses"]["t"] == [{"Id": {"N": "1"}, "v": {"S": "a"}}]


def test_memory_client_update_sets_fields() -> None:
    client = InMemoryDynamoDBClient()
    create_memory_table(client, "t", "Id", {"Id": "N"})
    client.put_item(TableName="t", Item={"Id": {"N": "1"}, "a": {"N": "1"}})

    client.update_item(
        TableName="t",
        Key={"Id": {"N": "1"}},
        UpdateExpression="SET #f0 = :f0",
        ConditionExpression="attribute_exists(#k0)",
        ExpressionAttributeNames={"#k0": "Id", "#f0": "b"},
        ExpressionAttributeValues={":f0": {"S": "x"}},
    )

    resp = client.batch_get_item(RequestItems={"t": {"Keys": [{"Id": {"N": "1"}}]}})
    assert resp["Responses"]["t"] == [{"Id": {"N": "1"}, "a": {"N": "1"}, "b": {"S": "x"}}]


def test_memory_client_reports_backend_style_errors() -> None:
    client = InMemoryDynamoDBClient()
    create_memory_table(client, "t", "Id", {"Id": "N"})

    cases = [
        (lambda: client.describe_table(TableName="missing"), "ResourceNotFoundException"),
        (lambda: client.put_item(TableName="t", Item={"v": {"S": "a"}}), "ValidationException"),
        (lambda: client.put_item(TableName="t", Item={"Id": {"S": "1"}}), "ValidationException"),
        (lambda: create_memory_table(client, "t", "Id"), "ResourceInUseException"),
        (
            lambda: client.batch_get_item(RequestItems={"t": {"Keys": [{"Id": {"N": "1"}}, {"Id": {"N": "1"}}]}}),
            "ValidationException",
        ),
    ]
    for call, code in cases:
        with pytest.raises(ClientError) as excinfo:
            call()
        assert error_code(excinfo.value) == code


def test_client_error_helper() -> None:
    err = client_error("Throttling", "slow", "BatchGetItem")
    assert err.operation_name == "BatchGetItem"
    assert error_code(err) == "Throttling"


def test_fake_client_only_scripts_provider_operations() -> None:
    client = FakeDynamoDBClient()

    with pytest.raises(ValueError, match="scan"):
        client.expect("scan")
    with pytest.raises(AttributeError):
        client.query(TableName="t")


def test_request_mismatches_reports_every_difference() -> None:
    expected = {"TableName": "t", "Item": ANY, "Keys": [{"Id": {"N": "1"}}], "ReturnValues": "NONE"}
    actual = {"TableName": "u", "Item": {"x": 1}, "Keys": [{"Id": {"N": "2"}}], "Extra": True}

    assert request_mismatches(expected, actual) == [
        "TableName: expected 't', got 'u'",
        "Keys[0].Id.N: expected '1', got '2'",
        "ReturnValues: missing",
    ]
