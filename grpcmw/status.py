"""gRPC status codes, statuses and status-carrying errors."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Any


class Code(enum.IntEnum):
    """gRPC status codes."""

    OK = 0
    CANCELED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    def __str__(self) -> str:
        if self is Code.OK:
            return "OK"
        return "".join(part.capitalize() for part in self.name.split("_"))


@dataclass(frozen=True)
class Status:
    """A status code with its message."""

    code: Code = Code.OK
    message: str = ""

    def err(self) -> StatusError | None:
        """Return an error carrying this status, or None for OK."""
        if self.code is Code.OK:
            return None
        return StatusError(self.code, self.message)


class StatusError(Exception):
    """An error that carries a gRPC status."""

    def __init__(self, code: Code, message: str = "") -> None:
        super().__init__(message)
        self.status = Status(Code(code), message)

    @property
    def code(self) -> Code:
        return self.status.code

    @property
    def message(self) -> str:
        return self.status.message

    def __str__(self) -> str:
        return f"rpc error: code = {self.status.code} desc = {self.status.message}"


def _carried_status(err: BaseException) -> Status | None:
    if isinstance(err, StatusError):
        return err.status
    getter = getattr(err, "grpc_status", None)
    if callable(getter):
        found = getter()
        if isinstance(found, Status):
            return found
    return None


def _from_context_error(err: BaseException) -> Status:
    if isinstance(err, (TimeoutError, asyncio.TimeoutError)):
        return Status(Code.DEADLINE_EXCEEDED, str(err))
    if isinstance(err, asyncio.CancelledError):
        return Status(Code.CANCELED, str(err))
    return Status(Code.UNKNOWN, str(err))


def from_error(err: Any) -> Status:
    """Return the status of ``err``.

    None maps to OK. Errors carrying a status (directly or through their
    cause chain) yield it; timeouts and cancellations map to DeadlineExceeded
    and Canceled; anything else is Unknown.
    """
    if err is None:
        return Status(Code.OK)
    direct = _carried_status(err)
    if direct is not None:
        return direct
    seen = {id(err)}
    cause = err.__cause__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        found = _carried_status(cause)
        if found is not None:
            return Status(found.code, str(err))
        cause = cause.__cause__
    return _from_context_error(err)