from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from .aws_errors import error_code
from .config import ProviderSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCallMetric:
    """One DynamoDB client call as seen by :func:`instrument_dynamodb_client`.

    ``error_code`` is the DynamoDB error code for service errors, the exception
    class name for transport failures, and ``None`` on success.
    """

    operation: str
    table_name: str | None
    seconds: float
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None


def log_call_metric(metric: AwsCallMetric) -> None:
    logger.debug(
        "%s on %r %s in %.3fs",
        metric.operation,
        metric.table_name,
        "ok" if metric.ok else f"failed ({metric.error_code})",
        metric.seconds,
    )


def create_boto3_config(settings: ProviderSettings | None = None) -> Config:
    # total_max_attempts counts the first call, so 1 disables botocore retries.
    settings = settings or ProviderSettings()
    return Config(
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        retries={"total_max_attempts": settings.max_attempts, "mode": "standard"},
    )


def _table_of(request: Mapping[str, Any]) -> str | None:
    if "TableName" in request:
        return str(request["TableName"])
    items = request.get("RequestItems")
    if isinstance(items, Mapping) and items:
        return ",".join(sorted(str(name) for name in items))
    return None


class InstrumentedDynamoDbClient:
    """Proxy that reports an :class:`AwsCallMetric` for every client call."""

    def __init__(self, client: Any, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr
        return functools.partial(self._call, name, attr)

    def _call(self, operation: str, method: Callable[..., Any], /, **request: Any) -> Any:
        started = time.perf_counter()
        code: str | None = None
        try:
            return method(**request)
        except ClientError as err:
            code = error_code(err) or "ClientError"
            raise
        except Exception as err:
            code = type(err).__name__
            raise
        finally:
            self._on_call(
                AwsCallMetric(
                    operation=operation,
                    table_name=_table_of(request),
                    seconds=time.perf_counter() - started,
                    error_code=code,
                )
            )


def instrument_dynamodb_client(client: Any, on_call: Callable[[AwsCallMetric], None]) -> Any:
    return InstrumentedDynamoDbClient(client, on_call)


def create_dynamodb_client(
    settings: ProviderSettings | None = None,
    *,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
) -> Any:
    settings = settings or ProviderSettings()
    sess = session or boto3.session.Session(region_name=settings.region)
    client = cast(Any, sess).client(
        "dynamodb",
        region_name=settings.region,
        endpoint_url=settings.endpoint_url,
        config=create_boto3_config(settings),
    )
    if metrics is not None:
        client = instrument_dynamodb_client(client, metrics)
    return client
