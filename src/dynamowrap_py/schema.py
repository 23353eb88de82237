from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import error_code
from .errors import TableNotFoundError

logger = logging.getLogger(__name__)

_KEY_TYPE_ORDER = {"HASH": 0, "RANGE": 1}


@dataclass(frozen=True)
class KeySchema:
    table_name: str
    attribute_names: tuple[str, ...]
    attribute_types: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.attribute_names:
            raise ValueError(f"table {self.table_name!r} must define at least one key attribute")

    def missing(self, record: Mapping[str, Any]) -> tuple[str, ...]:
        return tuple(name for name in self.attribute_names if record.get(name) is None)

    def key_of(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return {name: record[name] for name in self.attribute_names}

    @classmethod
    def from_description(cls, table_name: str, description: Mapping[str, Any]) -> KeySchema:
        table = description.get("Table", {})
        elements = sorted(
            table.get("KeySchema", []),
            key=lambda el: _KEY_TYPE_ORDER.get(str(el.get("KeyType", "")), len(_KEY_TYPE_ORDER)),
        )
        names = tuple(str(el["AttributeName"]) for el in elements)
        types = {
            str(d["AttributeName"]): str(d["AttributeType"])
            for d in table.get("AttributeDefinitions", [])
            if d.get("AttributeName") in names
        }
        return cls(table_name=table_name, attribute_names=names, attribute_types=types)


def describe_key_schema(client: Any, table_name: str) -> KeySchema:
    """Read the key schema of ``table_name`` from the table descriptor.

    Raises :class:`TableNotFoundError` when the table does not exist. Any other
    ``ClientError`` or ``BotoCoreError`` is left to the caller, which knows
    whether it happened on the read or the write path.
    """
    try:
        resp = client.describe_table(TableName=table_name)
    except ClientError as err:
        if error_code(err) == "ResourceNotFoundException":
            raise TableNotFoundError(
                f"Not found the source '{table_name}'.", table_name=table_name, cause=err
            ) from err
        raise

    schema = KeySchema.from_description(table_name, resp)
    logger.debug("resolved key schema for %r: %s", table_name, schema.attribute_names)
    return schema


class DynamoDbKeySchemaResolver:
    def __init__(self, client: Any) -> None:
        self._client = client
        self._cache: dict[str, KeySchema] = {}

    async def resolve(self, table_name: str) -> KeySchema:
        cached = self._cache.get(table_name)
        if cached is not None:
            return cached

        schema = await asyncio.to_thread(describe_key_schema, self._client, table_name)
        # First resolution wins; a table's key schema never changes for this resolver.
        return self._cache.setdefault(table_name, schema)


class StaticKeySchemaResolver:
    def __init__(self, tables: Mapping[str, str | Sequence[str]]) -> None:
        self._schemas: dict[str, KeySchema] = {}
        for table_name, keys in tables.items():
            names = (keys,) if isinstance(keys, str) else tuple(keys)
            self._schemas[table_name] = KeySchema(table_name=table_name, attribute_names=names)

    @property
    def table_names(self) -> tuple[str, ...]:
        return tuple(self._schemas)

    def resolve(self, table_name: str) -> KeySchema:
        schema = self._schemas.get(table_name)
        if schema is None:
            raise TableNotFoundError(f"Not found the source '{table_name}'.", table_name=table_name)
        return schema
