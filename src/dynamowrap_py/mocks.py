from __future__ import annotations

import copy
import re
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from unittest.mock import ANY

from botocore.exceptions import ClientError

# Operations the providers issue; anything else is a test bug.
OPERATIONS = frozenset({"describe_table", "put_item", "update_item", "batch_get_item"})

RequestCheck = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def request_mismatches(expected: Any, actual: Any, path: str = "") -> list[str]:
    """List where ``actual`` departs from ``expected``.

    Mappings are compared as subsets (extra request keys are fine), lists
    element by element, and ``unittest.mock.ANY`` matches anything.
    """
    if expected is ANY:
        return []
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return [f"{path or '<request>'}: expected a map, got {actual!r}"]
        out: list[str] = []
        for key, value in expected.items():
            where = f"{path}.{key}" if path else str(key)
            if key not in actual:
                out.append(f"{where}: missing")
            else:
                out.extend(request_mismatches(value, actual[key], where))
        return out
    if isinstance(expected, list) and isinstance(actual, list) and len(expected) == len(actual):
        out = []
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            out.extend(request_mismatches(e, a, f"{path}[{i}]"))
        return out
    if expected != actual:
        return [f"{path or '<request>'}: expected {expected!r}, got {actual!r}"]
    return []


@dataclass(frozen=True)
class ScriptedCall:
    operation: str
    check: RequestCheck | None = None
    response: Mapping[str, Any] | None = None
    error: Exception | None = None

    def answer(self, request: Mapping[str, Any]) -> dict[str, Any]:
        if callable(self.check):
            self.check(request)
        elif self.check is not None:
            problems = request_mismatches(self.check, request)
            if problems:
                raise AssertionError(f"{self.operation} request differs: " + "; ".join(problems))
        if self.error is not None:
            raise self.error
        return dict(self.response or {})


class FakeDynamoDBClient:
    """DynamoDB client double that replays calls scripted with :meth:`expect`.

    Calls must arrive in the scripted order. Every request is recorded in
    ``calls`` as ``(operation, request)`` before it is checked.
    """

    def __init__(self) -> None:
        self._script: deque[ScriptedCall] = deque()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        operation: str,
        check: RequestCheck | None = None,
        *,
        response: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"unsupported operation {operation!r}")
        self._script.append(ScriptedCall(operation, check, response, error))

    @property
    def pending(self) -> tuple[str, ...]:
        return tuple(call.operation for call in self._script)

    def assert_no_pending(self) -> None:
        if self._script:
            raise AssertionError(f"scripted calls never made: {', '.join(self.pending)}")

    def __getattr__(self, name: str) -> Callable[..., dict[str, Any]]:
        if name not in OPERATIONS:
            raise AttributeError(name)

        def call(**request: Any) -> dict[str, Any]:
            self.calls.append((name, dict(request)))
            if not self._script:
                raise AssertionError(f"unscripted {name} call")
            scripted = self._script.popleft()
            if scripted.operation != name:
                raise AssertionError(f"{name} called while {scripted.operation} was scripted")
            return scripted.answer(request)

        return call


_CONDITION_RE = re.compile(r"^(attribute_exists|attribute_not_exists)\((#\w+)\)$")
_SET_RE = re.compile(r"^(#\w+) = (:\w+)$")


@dataclass
class _FakeTable:
    name: str
    key_names: tuple[str, ...]
    key_types: dict[str, str]
    description: dict[str, Any]
    items: dict[tuple[tuple[str, str], ...], dict[str, Any]] = field(default_factory=dict)

    def key_of(self, attributes: Mapping[str, Any], operation: str) -> tuple[tuple[str, str], ...]:
        parts: list[tuple[str, str]] = []
        for name in self.key_names:
            av = attributes.get(name)
            if not isinstance(av, Mapping) or len(av) != 1:
                raise client_error(
                    "ValidationException",
                    f"One or more parameter values were invalid: Missing the key {name} in the item",
                    operation,
                )
            ((kind, raw),) = av.items()
            expected = self.key_types.get(name, kind)
            if kind != expected:
                raise client_error(
                    "ValidationException",
                    "The provided key element does not match the schema",
                    operation,
                )
            text = format(Decimal(raw).normalize(), "f") if kind == "N" else str(raw)
            parts.append((name, text))
        return tuple(parts)


class InMemoryDynamoDBClient:
    """Stateful stand-in for a boto3 DynamoDB client.

    It understands the subset of requests the providers issue: condition
    expressions made of ``attribute_exists``/``attribute_not_exists`` over name
    placeholders joined with ``AND``, ``SET``-only update expressions, and
    single-page batch reads. Items are kept in attribute-value form.
    """

    def __init__(self) -> None:
        self._tables: dict[str, _FakeTable] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def create_table(
        self,
        *,
        TableName: str,
        KeySchema: list[dict[str, str]],
        AttributeDefinitions: list[dict[str, str]] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self.calls.append(("create_table", {"TableName": TableName, "KeySchema": KeySchema, **kwargs}))
        if TableName in self._tables:
            raise client_error("ResourceInUseException", f"Table already exists: {TableName}", "CreateTable")

        ordered = sorted(KeySchema, key=lambda el: 0 if el["KeyType"] == "HASH" else 1)
        definitions = list(AttributeDefinitions or [])
        description = {
            "TableName": TableName,
            "TableStatus": "ACTIVE",
            "KeySchema": [dict(el) for el in KeySchema],
            "AttributeDefinitions": [dict(d) for d in definitions],
        }
        self._tables[TableName] = _FakeTable(
            name=TableName,
            key_names=tuple(el["AttributeName"] for el in ordered),
            key_types={d["AttributeName"]: d["AttributeType"] for d in definitions},
            description=description,
        )
        return {"TableDescription": copy.deepcopy(description)}

    def describe_table(self, *, TableName: str) -> dict[str, Any]:
        self.calls.append(("describe_table", {"TableName": TableName}))
        table = self._table(TableName, "DescribeTable")
        return {"Table": copy.deepcopy(table.description)}

    def put_item(
        self,
        *,
        TableName: str,
        Item: Mapping[str, Any],
        ConditionExpression: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self.calls.append(("put_item", {"TableName": TableName, "Item": Item, **kwargs}))
        table = self._table(TableName, "PutItem")
        key = table.key_of(Item, "PutItem")
        self._check(ConditionExpression, ExpressionAttributeNames or {}, table.items.get(key), "PutItem")
        table.items[key] = copy.deepcopy(dict(Item))
        return {}

    def update_item(
        self,
        *,
        TableName: str,
        Key: Mapping[str, Any],
        UpdateExpression: str | None = None,
        ConditionExpression: str | None = None,
        ExpressionAttributeNames: Mapping[str, str] | None = None,
        ExpressionAttributeValues: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self.calls.append(("update_item", {"TableName": TableName, "Key": Key, **kwargs}))
        table = self._table(TableName, "UpdateItem")
        key = table.key_of(Key, "UpdateItem")
        names = ExpressionAttributeNames or {}
        existing = table.items.get(key)
        self._check(ConditionExpression, names, existing, "UpdateItem")

        updated = copy.deepcopy(existing) if existing is not None else copy.deepcopy(dict(Key))
        for name, value in self._parse_set(UpdateExpression, names, ExpressionAttributeValues or {}):
            updated[name] = copy.deepcopy(value)
        table.items[key] = updated
        return {}

    def batch_get_item(self, *, RequestItems: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
        self.calls.append(("batch_get_item", {"RequestItems": RequestItems}))
        responses: dict[str, list[dict[str, Any]]] = {}
        for table_name, request in RequestItems.items():
            table = self._table(table_name, "BatchGetItem")
            keys = [table.key_of(k, "BatchGetItem") for k in request.get("Keys", [])]
            if len(set(keys)) != len(keys):
                raise client_error(
                    "ValidationException", "Provided list of item keys contains duplicates", "BatchGetItem"
                )
            responses[table_name] = [copy.deepcopy(table.items[k]) for k in keys if k in table.items]
        return {"Responses": responses, "UnprocessedKeys": {}}

    def _table(self, table_name: str, operation: str) -> _FakeTable:
        table = self._tables.get(table_name)
        if table is None:
            raise client_error(
                "ResourceNotFoundException",
                f"Requested resource not found: Table: {table_name} not found",
                operation,
            )
        return table

    def _check(
        self,
        expression: str | None,
        names: Mapping[str, str],
        existing: Mapping[str, Any] | None,
        operation: str,
    ) -> None:
        if not expression:
            return
        for clause in expression.split(" AND "):
            match = _CONDITION_RE.match(clause.strip())
            if match is None:
                raise client_error("ValidationException", f"unsupported condition: {clause}", operation)
            fn, ref = match.groups()
            present = existing is not None and names[ref] in existing
            if (fn == "attribute_exists") != present:
                raise client_error(
                    "ConditionalCheckFailedException", "The conditional request failed", operation
                )

    def _parse_set(
        self,
        expression: str | None,
        names: Mapping[str, str],
        values: Mapping[str, Any],
    ) -> list[tuple[str, Any]]:
        if not expression:
            return []
        if not expression.startswith("SET "):
            raise client_error("ValidationException", f"unsupported update: {expression}", "UpdateItem")

        out: list[tuple[str, Any]] = []
        for part in expression[len("SET ") :].split(", "):
            match = _SET_RE.match(part.strip())
            if match is None:
                raise client_error("ValidationException", f"unsupported update: {part}", "UpdateItem")
            name_ref, value_ref = match.groups()
            out.append((names[name_ref], values[value_ref]))
        return out
