from __future__ import annotations

import base64
import json
import types
from collections.abc import Mapping, Sequence
from dataclasses import asdict, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union, cast, get_args, get_origin, get_type_hints

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

from .errors import IncorrectDataFormatError

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

_NUMBER_TYPES = (int, float, Decimal)


def is_number(value: Any) -> bool:
    return isinstance(value, _NUMBER_TYPES) and not isinstance(value, bool)


def to_record(item: Any) -> dict[str, Any]:
    """Normalise a caller item (mapping or dataclass instance) into a plain dict."""
    if isinstance(item, Mapping):
        return {str(k): v for k, v in item.items()}
    if is_dataclass(item) and not isinstance(item, type):
        return asdict(item)
    raise TypeError(f"item must be a mapping or a dataclass instance, got {type(item).__name__}")


def _to_storable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str, bytes, bytearray, Decimal, Binary)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return _to_storable(value.value)
    if isinstance(value, Mapping):
        return {str(k): _to_storable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        if not value:
            return None
        return {_to_storable(v) for v in value}
    if is_dataclass(value) and not isinstance(value, type):
        return _to_storable(asdict(value))
    if isinstance(value, Sequence):
        return [_to_storable(v) for v in value]
    return value


def encode_value(value: Any) -> dict[str, Any]:
    return cast(dict[str, Any], _serializer.serialize(_to_storable(value)))


def encode_item(record: Mapping[str, Any]) -> dict[str, Any]:
    return {name: encode_value(value) for name, value in record.items()}


def encode_key_value(value: Any) -> dict[str, str]:
    # Numeric vs string is decided by the value's type, never by its content:
    # the string "7" stays a string key.
    if is_number(value):
        return {"N": _number_text(value)}
    return {"S": str(value)}


def key_text(value: Any) -> str:
    if is_number(value):
        return _canonical_number(value)
    return str(value)


def _number_text(value: int | float | Decimal) -> str:
    if isinstance(value, int):
        return str(value)
    return str(Decimal(str(value)))


def _canonical_number(value: int | float | Decimal) -> str:
    if isinstance(value, int):
        return str(value)
    return format(Decimal(str(value)).normalize(), "f")


def decode_attributes(attributes: Mapping[str, Any]) -> dict[str, Any]:
    return {name: _deserializer.deserialize(av) for name, av in attributes.items()}


def decode_item[T](attributes: Mapping[str, Any], shape: type[T]) -> T:
    try:
        record = decode_attributes(attributes)
    except (TypeError, ValueError, ArithmeticError) as err:
        raise IncorrectDataFormatError(f"malformed attribute map: {err}", cause=err) from err
    return decode_record(record, shape)


def decode_record[T](record: Mapping[str, Any], shape: type[T]) -> T:
    """Coerce a plain record into ``shape``.

    ``shape`` is either a dataclass type, whose fields are coerced according to
    their annotations, or ``dict``/``Any`` for a plain record. Fields the shape
    does not declare are ignored. Values that cannot be coerced raise
    :class:`IncorrectDataFormatError`.
    """
    require_shape(shape)

    try:
        if is_dataclass(shape):
            return cast(T, _build_dataclass(shape, record))
        return cast(T, _plain(dict(record)))
    except (TypeError, ValueError, ArithmeticError) as err:
        name = getattr(shape, "__name__", repr(shape))
        raise IncorrectDataFormatError(
            f"'{name}' and object '{_preview(record)}' have a different data format", cause=err
        ) from err


def dumps_row(record: Mapping[str, Any]) -> str:
    """Serialise a record as DynamoDB JSON, e.g. ``{"Id":{"N":"7"}}``.

    Values go through :func:`encode_item`, so numbers keep their exact decimal
    text and a stub row decodes to what the remote store would return.
    """
    return dumps_attributes(encode_item(record))


def dumps_attributes(attributes: Mapping[str, Any]) -> str:
    return json.dumps({name: _av_to_json(av) for name, av in attributes.items()}, separators=(",", ":"))


def loads_row(text: str) -> dict[str, Any]:
    """Parse a DynamoDB JSON row back into an attribute map."""
    try:
        data = json.loads(text)
    except ValueError as err:
        raise IncorrectDataFormatError(f"stored row is not valid JSON: {_preview(text)}", cause=err) from err
    if not isinstance(data, dict):
        raise IncorrectDataFormatError(f"stored row is not an object: {_preview(data)}")
    try:
        return {str(name): _av_from_json(av) for name, av in data.items()}
    except (TypeError, ValueError) as err:
        raise IncorrectDataFormatError(f"stored row is not DynamoDB JSON: {_preview(text)}", cause=err) from err


def _av_to_json(av: Mapping[str, Any]) -> dict[str, Any]:
    ((kind, value),) = av.items()
    if kind == "B":
        return {"B": _b64encode(value)}
    if kind == "BS":
        return {"BS": [_b64encode(v) for v in value]}
    if kind == "L":
        return {"L": [_av_to_json(v) for v in value]}
    if kind == "M":
        return {"M": {k: _av_to_json(v) for k, v in value.items()}}
    return {kind: value}


def _av_from_json(av: Any) -> dict[str, Any]:
    if not isinstance(av, dict) or len(av) != 1:
        raise ValueError(f"attribute value must be a single-key map, got {_preview(av)}")

    ((kind, value),) = av.items()
    if kind == "B":
        return {"B": base64.b64decode(value, validate=True)}
    if kind == "BS":
        return {"BS": [base64.b64decode(v, validate=True) for v in value]}
    if kind == "L":
        if not isinstance(value, list):
            raise ValueError("L must be a list")
        return {"L": [_av_from_json(v) for v in value]}
    if kind == "M":
        if not isinstance(value, dict):
            raise ValueError("M must be a map")
        return {"M": {str(k): _av_from_json(v) for k, v in value.items()}}
    return {str(kind): value}


def _b64encode(value: Any) -> str:
    raw = value.value if isinstance(value, Binary) else value
    return base64.b64encode(bytes(raw)).decode("ascii")


def require_shape(shape: Any) -> None:
    if shape is Any or shape is dict or shape is Mapping:
        return
    if isinstance(shape, type) and is_dataclass(shape):
        return
    raise TypeError(f"shape must be a dataclass type or dict, got {shape!r}")


def _preview(value: Any, limit: int = 200) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Binary):
        return value.value
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, set):
        return {_plain(v) for v in value}
    return value


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return get_type_hints(cls)
    except (NameError, TypeError, AttributeError):
        # Unresolvable forward references decode as untyped values.
        return {name: Any for name in getattr(cls, "__annotations__", {})}


def _build_dataclass(cls: type, data: Any) -> Any:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected an object for {cls.__name__}, got {type(data).__name__}")

    hints = _type_hints(cls)
    kwargs: dict[str, Any] = {}
    for dc_field in fields(cls):
        if not dc_field.init or dc_field.name not in data:
            continue
        try:
            kwargs[dc_field.name] = _coerce(data[dc_field.name], hints.get(dc_field.name, Any))
        except (TypeError, ValueError, ArithmeticError) as err:
            raise ValueError(f"{cls.__name__}.{dc_field.name}: {err}") from err

    return cls(**kwargs)


def _coerce(value: Any, annotation: Any) -> Any:
    if annotation is Any or annotation is object:
        return _plain(value)

    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return _coerce_union(value, get_args(annotation))

    if value is None:
        raise TypeError("null value for a non-optional field")

    if annotation is bool:
        if not isinstance(value, bool):
            raise TypeError(f"expected bool, got {type(value).__name__}")
        return value

    if annotation is int:
        number = _require_number(value, "int")
        if number != number.to_integral_value():
            raise ValueError(f"expected an integral number, got {value}")
        return int(number)

    if annotation is float:
        return float(_require_number(value, "float"))

    if annotation is Decimal:
        return _require_number(value, "Decimal")

    if annotation is str:
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        return value

    if annotation is datetime:
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str):
            raise TypeError(f"expected an ISO-8601 datetime string, got {type(value).__name__}")
        return datetime.fromisoformat(value)

    if annotation is date:
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            raise TypeError(f"expected an ISO-8601 date string, got {type(value).__name__}")
        return date.fromisoformat(value)

    if annotation is bytes:
        if isinstance(value, Binary):
            return value.value
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str):
            return base64.b64decode(value, validate=True)
        raise TypeError(f"expected bytes, got {type(value).__name__}")

    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return annotation(_plain(value))

    if isinstance(annotation, type) and is_dataclass(annotation):
        return _build_dataclass(annotation, value)

    if origin in (list, Sequence, tuple, set, frozenset):
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise TypeError(f"expected a collection, got {type(value).__name__}")
        args = get_args(annotation)
        if origin is tuple and args and args[-1] is not Ellipsis:
            return _coerce_fixed_tuple(list(value), args)
        elem = args[0] if args else Any
        items = [_coerce(v, elem) for v in value]
        if origin is tuple:
            return tuple(items)
        if origin is set or origin is frozenset:
            return origin(items)
        return items

    if origin in (dict, Mapping) or annotation in (dict, Mapping):
        if not isinstance(value, Mapping):
            raise TypeError(f"expected an object, got {type(value).__name__}")
        args = get_args(annotation)
        elem = args[1] if len(args) == 2 else Any
        return {k: _coerce(v, elem) for k, v in value.items()}

    if annotation in (list, tuple, set):
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise TypeError(f"expected a collection, got {type(value).__name__}")
        return annotation(_plain(v) for v in value)

    if isinstance(annotation, type) and not isinstance(value, annotation):
        raise TypeError(f"expected {annotation.__name__}, got {type(value).__name__}")
    return value


def _coerce_union(value: Any, args: tuple[Any, ...]) -> Any:
    if value is None:
        if type(None) in args:
            return None
        raise TypeError("null value for a non-optional field")

    last: Exception | None = None
    for arg in args:
        if arg is type(None):
            continue
        try:
            return _coerce(value, arg)
        except (TypeError, ValueError, ArithmeticError) as err:
            last = err
    raise TypeError(f"value {value!r} matches none of the union members") from last


def _require_number(value: Any, expected: str) -> Decimal:
    if not is_number(value):
        raise TypeError(f"expected {expected}, got {type(value).__name__}")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _coerce_fixed_tuple(values: list[Any], args: tuple[Any, ...]) -> tuple[Any, ...]:
    # tuple[int, str] is positional; tuple[int, ...] is handled as a sequence.
    if len(values) != len(args):
        raise ValueError(f"expected {len(args)} items, got {len(values)}")
    return tuple(_coerce(v, arg) for v, arg in zip(values, args, strict=True))
