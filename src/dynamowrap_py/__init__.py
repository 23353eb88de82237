from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .errors import (
    DuplicateKeyError,
    DynamowrapPyError,
    ErrorKind,
    GetDataFailedError,
    IncorrectDataFormatError,
    NotExistKeyError,
    Outcome,
    PrimaryKeyMissingError,
    SaveDataFailedError,
    TableNotFoundError,
    attempt,
)
from .provider import TableStoreProvider, UniqueKeys

if TYPE_CHECKING:
    from .codec import decode_item, decode_record, encode_item, encode_key_value, to_record
    from .config import ProviderSettings, load_table_keys
    from .dynamodb import DynamoDbProvider
    from .memory import InMemoryStubProvider, MemoryTableStore
    from .runtime import (
        AwsCallMetric,
        create_boto3_config,
        create_dynamodb_client,
        instrument_dynamodb_client,
        log_call_metric,
    )
    from .schema import KeySchema, describe_key_schema


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except Exception:
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name == "DynamoDbProvider":
        from .dynamodb import DynamoDbProvider

        return DynamoDbProvider
    if name in {"InMemoryStubProvider", "MemoryTableStore"}:
        from . import memory

        return getattr(memory, name)
    if name in {"KeySchema", "describe_key_schema"}:
        from . import schema

        return getattr(schema, name)
    if name in {"decode_item", "decode_record", "encode_item", "encode_key_value", "to_record"}:
        from . import codec

        return getattr(codec, name)
    if name in {"ProviderSettings", "load_table_keys"}:
        from . import config

        return getattr(config, name)
    if name in {
        "AwsCallMetric",
        "create_boto3_config",
        "create_dynamodb_client",
        "instrument_dynamodb_client",
        "log_call_metric",
    }:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "AwsCallMetric",
    "attempt",
    "create_boto3_config",
    "create_dynamodb_client",
    "decode_item",
    "decode_record",
    "describe_key_schema",
    "DuplicateKeyError",
    "DynamoDbProvider",
    "DynamowrapPyError",
    "encode_item",
    "encode_key_value",
    "ErrorKind",
    "GetDataFailedError",
    "IncorrectDataFormatError",
    "InMemoryStubProvider",
    "instrument_dynamodb_client",
    "KeySchema",
    "load_table_keys",
    "log_call_metric",
    "MemoryTableStore",
    "NotExistKeyError",
    "Outcome",
    "PrimaryKeyMissingError",
    "ProviderSettings",
    "SaveDataFailedError",
    "TableNotFoundError",
    "TableStoreProvider",
    "to_record",
    "UniqueKeys",
    "__repo_version__",
    "__version__",
]
