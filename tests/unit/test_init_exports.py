from __future__ import annotations

import pytest

import dynamowrap_py


def test_init_exposes_lazy_exports_via_getattr() -> None:
    assert dynamowrap_py._normalize_repo_version("1.2.3") == "1.2.3"
    assert dynamowrap_py._normalize_repo_version("1.2.3-rc.4") == "1.2.3rc4"

    assert callable(dynamowrap_py.DynamoDbProvider)
    assert callable(dynamowrap_py.InMemoryStubProvider)
    assert callable(dynamowrap_py.MemoryTableStore)
    assert callable(dynamowrap_py.ProviderSettings)
    assert callable(dynamowrap_py.decode_record)
    assert callable(dynamowrap_py.create_dynamodb_client)
    assert callable(dynamowrap_py.log_call_metric)


def test_every_export_resolves() -> None:
    for name in dynamowrap_py.__all__:
        assert getattr(dynamowrap_py, name) is not None


def test_unknown_attribute_raises() -> None:
    with pytest.raises(AttributeError):
        _ = dynamowrap_py.Table
