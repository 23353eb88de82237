from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

_ENV_VARS: dict[str, tuple[str, ...]] = {
    "region": ("AWS_REGION", "AWS_DEFAULT_REGION"),
    "endpoint_url": ("DYNAMODB_ENDPOINT",),
    "connect_timeout": ("DYNAMOWRAP_CONNECT_TIMEOUT",),
    "read_timeout": ("DYNAMOWRAP_READ_TIMEOUT",),
    "max_attempts": ("DYNAMOWRAP_MAX_ATTEMPTS",),
}


@dataclass(frozen=True)
class ProviderSettings:
    """Connection settings for :class:`~dynamowrap_py.dynamodb.DynamoDbProvider`.

    Settings come from a YAML file (the ``dynamodb`` section) and/or the
    environment; environment variables win::

        dynamodb:
          region: us-east-1
          endpoint_url: http://localhost:8000
          connect_timeout: 1.0
          read_timeout: 3.0
          max_attempts: 1

    ``max_attempts`` counts every call to DynamoDB including the first; the
    default of 1 means a failure surfaces at once as a domain error.
    """

    region: str | None = None
    endpoint_url: str | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 1

    def __post_init__(self) -> None:
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
        if self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProviderSettings:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown settings: {unknown}")
        return cls()._with_values(data)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> ProviderSettings:
        return cls()._with_env(environ)

    @classmethod
    def from_file(cls, path: str | Path, environ: Mapping[str, str] = os.environ) -> ProviderSettings:
        doc = _read_yaml(path)
        section = doc.get("dynamodb") or {}
        if not isinstance(section, dict):
            raise ValueError(f"{path}: 'dynamodb' must be a map")
        return cls.from_mapping(section)._with_env(environ)

    def _with_env(self, environ: Mapping[str, str]) -> ProviderSettings:
        values: dict[str, str] = {}
        for name, env_names in _ENV_VARS.items():
            for env_name in env_names:
                raw = (environ.get(env_name) or "").strip()
                if raw:
                    values[name] = raw
                    break
        return self._with_values(values)

    def _with_values(self, values: Mapping[str, Any]) -> ProviderSettings:
        changes: dict[str, Any] = {}
        for name, raw in values.items():
            if raw is None:
                continue
            if name in {"connect_timeout", "read_timeout"}:
                changes[name] = _as_float(name, raw)
            elif name == "max_attempts":
                changes[name] = _as_int(name, raw)
            else:
                changes[name] = str(raw)
        return replace(self, **changes)


def load_table_keys(path: str | Path) -> dict[str, tuple[str, ...]]:
    """Read stub table definitions from the ``tables`` section of a YAML file.

    Each entry maps a table name to its key attribute name or list of names.
    """
    doc = _read_yaml(path)
    return parse_table_keys(doc.get("tables") or {})


def parse_table_keys(tables: Any) -> dict[str, tuple[str, ...]]:
    if not isinstance(tables, dict):
        raise ValueError("tables must be a map of table name to key attribute(s)")

    out: dict[str, tuple[str, ...]] = {}
    for table_name, keys in tables.items():
        if isinstance(keys, str):
            keys = [keys]
        if not isinstance(keys, list) or not keys or not all(isinstance(k, str) and k for k in keys):
            raise ValueError(f"table {table_name!r}: keys must be a name or a non-empty list of names")
        out[str(table_name)] = tuple(keys)
    return out


def _read_yaml(path: str | Path) -> dict[str, Any]:
    raw = Path(path).read_text(encoding="utf-8")
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as err:
        raise ValueError(f"{path}: invalid YAML") from err

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"{path}: settings document must be a map")
    return parsed


def _as_float(name: str, raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueError(f"{name} must be a number")
    try:
        return float(raw)
    except (TypeError, ValueError) as err:
        raise ValueError(f"{name} must be a number, got {raw!r}") from err


def _as_int(name: str, raw: Any) -> int:
    if isinstance(raw, bool) or isinstance(raw, float):
        raise ValueError(f"{name} must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err
