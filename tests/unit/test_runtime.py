from __future__ import annotations

import logging

import pytest
from botocore.exceptions import EndpointConnectionError

from dynamowrap_py.config import ProviderSettings
from dynamowrap_py.mocks import FakeDynamoDBClient
from dynamowrap_py.runtime import (
    AwsCallMetric,
    create_boto3_config,
    create_dynamodb_client,
    instrument_dynamodb_client,
    log_call_metric,
)
from dynamowrap_py.testkit import client_error


class FakeSession:
    def __init__(self, client: object) -> None:
        self.client_obj = client
        self.calls: list[tuple[str, dict[str, object]]] = []

    def client(self, service_name: str, **kwargs: object) -> object:
        self.calls.append((service_name, kwargs))
        return self.client_obj


def test_default_config_makes_a_single_attempt() -> None:
    cfg = create_boto3_config()

    assert cfg.retries == {"total_max_attempts": 1, "mode": "standard"}
    assert (cfg.connect_timeout, cfg.read_timeout) == (1.0, 3.0)


def test_config_follows_settings() -> None:
    cfg = create_boto3_config(ProviderSettings(connect_timeout=2.0, read_timeout=4.0, max_attempts=5))

    assert cfg.connect_timeout == 2.0
    assert cfg.read_timeout == 4.0
    assert cfg.retries["total_max_attempts"] == 5


def test_instrumented_client_reports_table_and_outcome() -> None:
    metrics: list[AwsCallMetric] = []
    client = FakeDynamoDBClient()
    wrapped = instrument_dynamodb_client(client, metrics.append)

    client.expect("put_item", response={})
    wrapped.put_item(TableName="Test", Item={})

    client.expect("update_item", error=client_error("ConditionalCheckFailedException", "failed"))
    with pytest.raises(Exception, match="ConditionalCheckFailed"):
        wrapped.update_item(TableName="Test", Key={})

    client.expect("batch_get_item", error=EndpointConnectionError(endpoint_url="http://localhost:1"))
    with pytest.raises(EndpointConnectionError):
        wrapped.batch_get_item(RequestItems={"B": {}, "A": {}})

    assert [(m.operation, m.table_name, m.error_code) for m in metrics] == [
        ("put_item", "Test", None),
        ("update_item", "Test", "ConditionalCheckFailedException"),
        ("batch_get_item", "A,B", "EndpointConnectionError"),
    ]
    assert [m.ok for m in metrics] == [True, False, False]
    assert all(m.seconds >= 0 for m in metrics)
    assert wrapped.calls is client.calls


def test_log_call_metric_logs_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="dynamowrap_py.runtime"):
        log_call_metric(
            AwsCallMetric(operation="put_item", table_name="Test", seconds=0.25, error_code="Throttling")
        )

    assert "put_item on 'Test' failed (Throttling) in 0.250s" in caplog.text


def test_create_dynamodb_client_applies_settings() -> None:
    fake = FakeDynamoDBClient()
    sess = FakeSession(fake)
    settings = ProviderSettings(
        region="eu-west-1",
        endpoint_url="http://localhost:8000",
        connect_timeout=2.0,
        read_timeout=5.0,
        max_attempts=4,
    )

    client = create_dynamodb_client(settings, session=sess)

    assert client is fake
    ((service, kwargs),) = sess.calls
    assert service == "dynamodb"
    assert kwargs["region_name"] == "eu-west-1"
    assert kwargs["endpoint_url"] == "http://localhost:8000"
    cfg = kwargs["config"]
    assert cfg.read_timeout == 5.0  # type: ignore[attr-defined]
    assert cfg.retries["total_max_attempts"] == 4  # type: ignore[attr-defined]


def test_create_dynamodb_client_wraps_when_metrics_requested() -> None:
    metrics: list[AwsCallMetric] = []
    fake = FakeDynamoDBClient()
    fake.expect("describe_table", response={})

    client = create_dynamodb_client(ProviderSettings(), session=FakeSession(fake), metrics=metrics.append)
    client.describe_table(TableName="t")

    assert client is not fake
    assert [(m.operation, m.table_name) for m in metrics] == [("describe_table", "t")]
