"""Machine readable JSON rendering of a result snapshot."""

from __future__ import annotations

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from preflight.diagnose.result import DiagnoseReport, Result
from preflight.infrastructure.errors import SerializationError

JSON_INDENT = 2


def to_payload(report: DiagnoseReport) -> dict:
    """Plain ``dict`` form of the tree, keyed like the JSON output."""

    return report.result.model_dump(mode="json")


def dumps(report: DiagnoseReport) -> str:
    """Serialize the tree with a fixed key order and 2-space indentation.

    Keys appear as ``name, status, messages, advice, started_at, duration,
    children`` at every level.
    """

    try:
        return report.result.model_dump_json(indent=JSON_INDENT)
    except (PydanticSerializationError, ValueError, TypeError) as exc:
        raise SerializationError(f"error marshalling results: {exc}") from exc


def loads(text: str | bytes) -> DiagnoseReport:
    try:
        return DiagnoseReport(result=Result.model_validate_json(text))
    except ValidationError as exc:
        raise SerializationError(f"invalid diagnose payload: {exc}") from exc


__all__ = ["JSON_INDENT", "dumps", "loads", "to_payload"]
