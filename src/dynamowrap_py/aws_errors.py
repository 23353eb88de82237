from __future__ import annotations

import logging
from typing import Literal

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    DuplicateKeyError,
    DynamowrapPyError,
    ErrorKind,
    NotExistKeyError,
    PrimaryKeyMissingError,
    TableNotFoundError,
    error_for_kind,
)

logger = logging.getLogger(__name__)

Operation = Literal["put_item", "update_item", "batch_get_item"]

_CATCH_ALL: dict[str, ErrorKind] = {
    "put_item": ErrorKind.SAVE_DATA_FAILED,
    "update_item": ErrorKind.SAVE_DATA_FAILED,
    "batch_get_item": ErrorKind.GET_DATA_FAILED,
}

# DynamoDB reports key problems as a plain ValidationException; these are the
# message fragments it uses for them.
_KEY_MISSING_MARKERS = (
    "missing the key",
    "one of the required keys was not given a value",
)


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def error_message(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Message", ""))


def map_client_error(err: ClientError, *, operation: Operation, table_name: str) -> DynamowrapPyError:
    code = error_code(err)
    message = error_message(err)

    if code == "ResourceNotFoundException":
        return TableNotFoundError(f"Not found the source '{table_name}'.", table_name=table_name, cause=err)

    if code == "ConditionalCheckFailedException":
        if operation == "put_item":
            return DuplicateKeyError(
                f"The source '{table_name}' has already contained data with the same key.",
                table_name=table_name,
                cause=err,
            )
        if operation == "update_item":
            return NotExistKeyError(
                f"The source '{table_name}' has not contained data with the given key.",
                table_name=table_name,
                cause=err,
            )

    if code == "ValidationException" and any(m in message.lower() for m in _KEY_MISSING_MARKERS):
        return PrimaryKeyMissingError(message, table_name=table_name, cause=err)

    detail = f"{code or 'UnknownError'}: {message}"
    return _catch_all(err, operation=operation, table_name=table_name, detail=detail)


def map_backend_error(
    err: ClientError | BotoCoreError, *, operation: Operation, table_name: str
) -> DynamowrapPyError:
    if isinstance(err, ClientError):
        return map_client_error(err, operation=operation, table_name=table_name)
    # Connection, endpoint and credential failures never reach the service.
    return _catch_all(err, operation=operation, table_name=table_name, detail=str(err))


def _catch_all(err: Exception, *, operation: Operation, table_name: str, detail: str) -> DynamowrapPyError:
    kind = _CATCH_ALL[operation]
    logger.warning("%s on %r failed: %s", operation, table_name, detail)
    verb = "save data to" if kind is ErrorKind.SAVE_DATA_FAILED else "get data from"
    message = f"Failed to {verb} the source '{table_name}': {detail}"
    return error_for_kind(kind, message, table_name=table_name, cause=err)
