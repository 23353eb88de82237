from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .errors import PrimaryKeyMissingError
from .schema import KeySchema

UniqueKeys = Sequence[str] | str | bool | None


@runtime_checkable
class TableStoreProvider(Protocol):
    """Typed put / update / batch-get access to a key-addressed table store.

    Items are mappings or dataclass instances. Every failure surfaces as one of
    the :class:`~dynamowrap_py.errors.DynamowrapPyError` subclasses.
    """

    async def put_item(self, table_name: str, item: Any, unique_keys: UniqueKeys = None) -> None: ...

    async def update_item(self, table_name: str, item: Any) -> None: ...

    async def get_batch_items[T](
        self,
        table_name: str,
        keys: Sequence[Any],
        shape: type[T] = dict,  # type: ignore[assignment]
    ) -> list[T]: ...


def normalize_unique_keys(unique_keys: UniqueKeys, schema: KeySchema) -> tuple[str, ...]:
    """Collapse the accepted ``unique_keys`` forms into one tuple of names.

    ``True`` means "the table's own key attributes"; a string is a single
    attribute name; ``None``, ``False`` and empty sequences disable the check.
    """
    if unique_keys is None or unique_keys is False:
        return ()
    if unique_keys is True:
        return schema.attribute_names
    if isinstance(unique_keys, str):
        if not unique_keys:
            raise ValueError("unique_keys must not be an empty string")
        return (unique_keys,)
    if not isinstance(unique_keys, Sequence):
        raise ValueError(f"unsupported unique_keys: {unique_keys!r}")

    names: list[str] = []
    for name in unique_keys:
        if not isinstance(name, str) or not name:
            raise ValueError(f"unique_keys must contain attribute names, got {name!r}")
        if name not in names:
            names.append(name)
    return tuple(names)


def require_key_attributes(schema: KeySchema, record: Mapping[str, Any], *, context: str) -> None:
    missing = schema.missing(record)
    if missing:
        raise PrimaryKeyMissingError(
            f"Not found the primary key '{', '.join(missing)}' in {context}.",
            missing=missing,
            table_name=schema.table_name,
        )
