from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, MutableMapping, Sequence
from contextlib import AbstractContextManager
from typing import Any

from .codec import (
    decode_item,
    dumps_attributes,
    dumps_row,
    encode_item,
    key_text,
    loads_row,
    require_shape,
    to_record,
)
from .errors import DuplicateKeyError, NotExistKeyError
from .provider import UniqueKeys, normalize_unique_keys, require_key_attributes
from .schema import KeySchema, StaticKeySchemaResolver

logger = logging.getLogger(__name__)


def row_key(schema: KeySchema, record: Mapping[str, Any]) -> str:
    """Synthetic storage key, e.g. ``Id-7``.

    Composite parts are joined with ``|``; ``\\`` and ``|`` inside a part are
    backslash-escaped so distinct keys never share a row.
    """
    return "|".join(_escape(f"{name}-{key_text(record[name])}") for name in schema.attribute_names)


def _escape(part: str) -> str:
    return part.replace("\\", "\\\\").replace("|", "\\|")


class MemoryTableStore:
    """Process-local tables of DynamoDB JSON rows plus their static key schemas.

    ``storage`` may hand in row dicts per table; they are adopted as-is, so the
    caller can inspect what the stub wrote.
    """

    def __init__(
        self,
        tables: Mapping[str, str | Sequence[str]],
        storage: Mapping[str, MutableMapping[str, str]] | None = None,
    ) -> None:
        self.schemas = StaticKeySchemaResolver(tables)
        storage = storage or {}

        unknown = sorted(set(storage) - set(self.schemas.table_names))
        if unknown:
            raise ValueError(f"storage given for undeclared tables: {unknown}")

        self._rows: dict[str, MutableMapping[str, str]] = {
            name: storage[name] if name in storage else {} for name in self.schemas.table_names
        }

    def rows(self, table_name: str) -> MutableMapping[str, str]:
        self.schemas.resolve(table_name)
        return self._rows[table_name]


class InMemoryStubProvider:
    """In-memory stand-in for :class:`~dynamowrap_py.dynamodb.DynamoDbProvider`.

    One lock guards the whole store: writes run their existence/uniqueness
    check and their write under it, and batch reads copy the matching rows under
    it before decoding. Pass ``lock`` to observe or replace the locking.
    """

    def __init__(self, store: MemoryTableStore, *, lock: AbstractContextManager[Any] | None = None) -> None:
        self._store = store
        self._lock: AbstractContextManager[Any] = lock if lock is not None else threading.Lock()

    @classmethod
    def for_table(
        cls,
        table_name: str,
        key_names: str | Sequence[str],
        storage: MutableMapping[str, str] | None = None,
        *,
        lock: AbstractContextManager[Any] | None = None,
    ) -> InMemoryStubProvider:
        store = MemoryTableStore(
            {table_name: key_names},
            {table_name: storage} if storage is not None else None,
        )
        return cls(store, lock=lock)

    @property
    def store(self) -> MemoryTableStore:
        return self._store

    async def put_item(self, table_name: str, item: Any, unique_keys: UniqueKeys = None) -> None:
        record = to_record(item)
        schema = self._store.schemas.resolve(table_name)
        require_key_attributes(schema, record, context="saving data")
        unique = normalize_unique_keys(unique_keys, schema)
        key = row_key(schema, record)
        row = dumps_row(record)

        with self._lock:
            rows = self._store.rows(table_name)
            existing = rows.get(key)
            if unique and existing is not None:
                stored = loads_row(existing)
                if any(name in stored for name in unique):
                    raise DuplicateKeyError(
                        f"The source '{table_name}' has already contained data with keys "
                        f"'{', '.join(unique)}'.",
                        table_name=table_name,
                    )
            rows[key] = row

        logger.debug("stored %r in %r", key, table_name)

    async def update_item(self, table_name: str, item: Any) -> None:
        record = to_record(item)
        schema = self._store.schemas.resolve(table_name)
        require_key_attributes(schema, record, context="saving data")
        key = row_key(schema, record)
        fields = encode_item(record)

        with self._lock:
            rows = self._store.rows(table_name)
            existing = rows.get(key)
            if existing is None:
                raise NotExistKeyError(
                    f"The source '{table_name}' has not contained data with keys "
                    f"'{', '.join(schema.attribute_names)}'.",
                    table_name=table_name,
                )
            merged = loads_row(existing)
            merged.update(fields)
            rows[key] = dumps_attributes(merged)

        logger.debug("merged %d fields into %r in %r", len(record), key, table_name)

    async def get_batch_items[T](
        self,
        table_name: str,
        keys: Sequence[Any],
        shape: type[T] = dict,  # type: ignore[assignment]
    ) -> list[T]:
        require_shape(shape)
        records = [to_record(k) for k in keys]
        schema = self._store.schemas.resolve(table_name)
        for record in records:
            require_key_attributes(schema, record, context="query")
        wanted = list(dict.fromkeys(row_key(schema, record) for record in records))

        with self._lock:
            rows = self._store.rows(table_name)
            snapshot = [rows[key] for key in wanted if key in rows]

        # The first row that does not fit the shape fails the whole batch.
        return [decode_item(loads_row(text), shape) for text in snapshot]
