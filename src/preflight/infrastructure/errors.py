"""Error taxonomy shared by the diagnose engine, the workflow and the CLI."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    CHECK_FAILED = "CHECK_FAILED"
    CHECK_TIMEOUT = "CHECK_TIMEOUT"
    HARNESS = "HARNESS"
    CONFIG_INVALID = "CONFIG_INVALID"
    BACKEND_UNINITIALIZED = "BACKEND_UNINITIALIZED"
    SERIALIZATION = "SERIALIZATION"
    SESSION_FINALIZED = "SESSION_FINALIZED"


class PreflightError(Exception):
    """Base error carrying a machine readable :class:`ErrorCode`."""

    code: ErrorCode = ErrorCode.CHECK_FAILED

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        return self.message

    def log_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"error_code": self.code.value}
        fields.update(self.context)
        return fields


class CheckError(PreflightError):
    """A check callback could not verify its subject."""


class CheckTimeoutError(CheckError):
    code = ErrorCode.CHECK_TIMEOUT

    def __init__(self, deadline: timedelta) -> None:
        super().__init__(
            f"deadline of {format_duration(deadline)} exceeded",
            context={"deadline_seconds": deadline.total_seconds()},
        )
        self.deadline = deadline


class BackendUninitializedError(CheckError):
    code = ErrorCode.BACKEND_UNINITIALIZED


class HarnessError(PreflightError):
    """The diagnostic run itself cannot continue."""

    code = ErrorCode.HARNESS


class ConfigError(HarnessError):
    code = ErrorCode.CONFIG_INVALID


class SerializationError(PreflightError):
    code = ErrorCode.SERIALIZATION


class SessionFinalizedError(PreflightError):
    code = ErrorCode.SESSION_FINALIZED


def format_duration(value: timedelta) -> str:
    """Render a duration the way operators write deadlines (``50ms``, ``30s``)."""

    seconds = value.total_seconds()
    if seconds < 1:
        millis = round(seconds * 1000, 3)
        return f"{millis:g}ms"
    if seconds < 60:
        return f"{round(seconds, 3):g}s"
    minutes, rest = divmod(seconds, 60)
    if rest:
        return f"{int(minutes)}m{rest:g}s"
    return f"{int(minutes)}m"


__all__ = [
    "BackendUninitializedError",
    "CheckError",
    "CheckTimeoutError",
    "ConfigError",
    "ErrorCode",
    "HarnessError",
    "PreflightError",
    "SerializationError",
    "SessionFinalizedError",
    "format_duration",
]
