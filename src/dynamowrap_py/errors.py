from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    TABLE_NOT_FOUND = "TableNotFound"
    PRIMARY_KEY_MISSING = "PrimaryKeyMissing"
    DUPLICATE_KEY = "DuplicateKey"
    NOT_EXIST_KEY = "NotExistKey"
    INCORRECT_DATA_FORMAT = "IncorrectDataFormat"
    SAVE_DATA_FAILED = "SaveDataFailed"
    GET_DATA_FAILED = "GetDataFailed"


class DynamowrapPyError(Exception):
    kind: ErrorKind

    def __init__(
        self,
        message: str,
        *,
        table_name: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.table_name = table_name
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class TableNotFoundError(DynamowrapPyError):
    kind = ErrorKind.TABLE_NOT_FOUND


class PrimaryKeyMissingError(DynamowrapPyError):
    kind = ErrorKind.PRIMARY_KEY_MISSING

    def __init__(
        self,
        message: str,
        *,
        missing: tuple[str, ...] = (),
        table_name: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, table_name=table_name, cause=cause)
        self.missing = missing


class DuplicateKeyError(DynamowrapPyError):
    kind = ErrorKind.DUPLICATE_KEY


class NotExistKeyError(DynamowrapPyError):
    kind = ErrorKind.NOT_EXIST_KEY


class IncorrectDataFormatError(DynamowrapPyError):
    kind = ErrorKind.INCORRECT_DATA_FORMAT


class SaveDataFailedError(DynamowrapPyError):
    kind = ErrorKind.SAVE_DATA_FAILED


class GetDataFailedError(DynamowrapPyError):
    kind = ErrorKind.GET_DATA_FAILED


ERRORS_BY_KIND: dict[ErrorKind, type[DynamowrapPyError]] = {
    cls.kind: cls
    for cls in (
        TableNotFoundError,
        PrimaryKeyMissingError,
        DuplicateKeyError,
        NotExistKeyError,
        IncorrectDataFormatError,
        SaveDataFailedError,
        GetDataFailedError,
    )
}


@dataclass(frozen=True)
class Outcome[T]:
    """Result of a provider call captured by :func:`attempt`.

    Exactly one of ``value`` (on success) and ``error`` is meaningful; callers
    branch on ``ok`` or ``kind`` instead of catching exceptions.
    """

    value: T | None = None
    error: DynamowrapPyError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None


async def attempt[T](call: Awaitable[T]) -> Outcome[T]:
    # Only taxonomy errors are captured; anything else is a bug and propagates.
    try:
        value = await call
    except DynamowrapPyError as err:
        return Outcome(error=err)
    return Outcome(value=value)


def error_for_kind(kind: ErrorKind, message: str, **kwargs: Any) -> DynamowrapPyError:
    return ERRORS_BY_KIND[kind](message, **kwargs)
