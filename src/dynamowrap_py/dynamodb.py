from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .aws_errors import map_backend_error
from .codec import (
    decode_item,
    encode_item,
    encode_key_value,
    encode_value,
    key_text,
    require_shape,
    to_record,
)
from .config import ProviderSettings
from .errors import GetDataFailedError
from .provider import UniqueKeys, normalize_unique_keys, require_key_attributes
from .runtime import AwsCallMetric, create_boto3_config, create_dynamodb_client
from .schema import DynamoDbKeySchemaResolver, KeySchema

logger = logging.getLogger(__name__)


class DynamoDbProvider:
    """Table store provider backed by a boto3 DynamoDB client.

    Key schemas are read with ``DescribeTable`` the first time a table is used
    and cached for the lifetime of the provider. Uniqueness and existence checks
    are delegated to DynamoDB condition expressions; the provider keeps no other
    state and never retries on its own. Blocking client calls run in a worker
    thread so the coroutines do not stall the event loop.
    """

    def __init__(self, client: Any | None = None) -> None:
        self._client: Any = client or boto3.client("dynamodb", config=create_boto3_config())
        self._schemas = DynamoDbKeySchemaResolver(self._client)

    @classmethod
    def from_settings(
        cls,
        settings: ProviderSettings | None = None,
        *,
        session: Any | None = None,
        metrics: Callable[[AwsCallMetric], None] | None = None,
    ) -> DynamoDbProvider:
        settings = settings or ProviderSettings.from_env()
        return cls(create_dynamodb_client(settings, session=session, metrics=metrics))

    async def key_schema(self, table_name: str) -> KeySchema:
        """Resolve (and cache) the key schema of ``table_name``.

        A missing table raises :class:`TableNotFoundError`. Any other describe
        failure is a read failure and raises :class:`GetDataFailedError`.
        """
        try:
            return await self._schemas.resolve(table_name)
        except (ClientError, BotoCoreError) as err:
            raise map_backend_error(err, operation="batch_get_item", table_name=table_name) from err

    async def put_item(self, table_name: str, item: Any, unique_keys: UniqueKeys = None) -> None:
        record = to_record(item)
        try:
            schema = await self._schemas.resolve(table_name)
            require_key_attributes(schema, record, context="saving data")
            req = self._build_put_request(schema, record, normalize_unique_keys(unique_keys, schema))
            logger.debug("put_item %r (condition=%s)", table_name, req.get("ConditionExpression"))
            await asyncio.to_thread(self._client.put_item, **req)
        except (ClientError, BotoCoreError) as err:
            raise map_backend_error(err, operation="put_item", table_name=table_name) from err

    async def update_item(self, table_name: str, item: Any) -> None:
        record = to_record(item)
        try:
            schema = await self._schemas.resolve(table_name)
            require_key_attributes(schema, record, context="saving data")
            req = self._build_update_request(schema, record)
            logger.debug("update_item %r (%s)", table_name, req.get("UpdateExpression", "no fields"))
            await asyncio.to_thread(self._client.update_item, **req)
        except (ClientError, BotoCoreError) as err:
            raise map_backend_error(err, operation="update_item", table_name=table_name) from err

    async def get_batch_items[T](
        self,
        table_name: str,
        keys: Sequence[Any],
        shape: type[T] = dict,  # type: ignore[assignment]
    ) -> list[T]:
        require_shape(shape)
        records = [to_record(key) for key in keys]
        try:
            schema = await self._schemas.resolve(table_name)
            for record in records:
                require_key_attributes(schema, record, context="query")
            if not records:
                return []

            request_keys = self._build_batch_keys(schema, records)
            logger.debug("batch_get_item %r (%d keys)", table_name, len(request_keys))
            resp = await asyncio.to_thread(
                self._client.batch_get_item,
                RequestItems={table_name: {"Keys": request_keys}},
            )
        except (ClientError, BotoCoreError) as err:
            raise map_backend_error(err, operation="batch_get_item", table_name=table_name) from err

        unprocessed = resp.get("UnprocessedKeys", {}).get(table_name, {}).get("Keys") or []
        if unprocessed:
            raise GetDataFailedError(
                f"The source '{table_name}' left {len(unprocessed)} of {len(request_keys)} keys unprocessed.",
                table_name=table_name,
            )

        # The first record that does not fit the shape fails the whole batch.
        return [decode_item(item, shape) for item in resp.get("Responses", {}).get(table_name, [])]

    def _build_put_request(
        self, schema: KeySchema, record: Mapping[str, Any], unique: tuple[str, ...]
    ) -> dict[str, Any]:
        req: dict[str, Any] = {"TableName": schema.table_name, "Item": encode_item(record)}
        if unique:
            names = {f"#u{i}": name for i, name in enumerate(unique)}
            req["ConditionExpression"] = " AND ".join(f"attribute_not_exists({ref})" for ref in names)
            req["ExpressionAttributeNames"] = names
        return req

    def _build_update_request(self, schema: KeySchema, record: Mapping[str, Any]) -> dict[str, Any]:
        names = {f"#k{i}": name for i, name in enumerate(schema.attribute_names)}
        values: dict[str, Any] = {}
        set_parts: list[str] = []

        fields = [(name, value) for name, value in record.items() if name not in schema.attribute_names]
        for i, (name, value) in enumerate(fields):
            names[f"#f{i}"] = name
            values[f":f{i}"] = encode_value(value)
            set_parts.append(f"#f{i} = :f{i}")

        req: dict[str, Any] = {
            "TableName": schema.table_name,
            "Key": {name: encode_value(record[name]) for name in schema.attribute_names},
            "ConditionExpression": " AND ".join(
                f"attribute_exists(#k{i})" for i in range(len(schema.attribute_names))
            ),
            "ExpressionAttributeNames": names,
            "ReturnValues": "NONE",
        }
        if set_parts:
            req["UpdateExpression"] = "SET " + ", ".join(set_parts)
            req["ExpressionAttributeValues"] = values
        return req

    def _build_batch_keys(
        self, schema: KeySchema, records: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, dict[str, str]]]:
        out: list[dict[str, dict[str, str]]] = []
        seen: set[tuple[tuple[str, str, str], ...]] = set()
        for record in records:
            key = {name: encode_key_value(record[name]) for name in schema.attribute_names}
            # DynamoDB rejects a batch that names the same key twice.
            marker = tuple((name, *av, key_text(record[name])) for name, av in key.items())
            if marker in seen:
                continue
            seen.add(marker)
            out.append(key)
        return out
