"""Immutable result snapshot produced once per diagnostic run."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from preflight.diagnose.span import Span
from preflight.diagnose.status import Status, rollup


class Result(BaseModel):
    """Read-only mirror of one span with its effective status.

    Field order is the serialized key order.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    status: Status
    messages: tuple[str, ...] = ()
    advice: tuple[str, ...] = ()
    started_at: datetime | None = None
    duration: float | None = None
    children: tuple[Result, ...] = ()

    @field_validator("status")
    @classmethod
    def _terminal_only(cls, value: Status) -> Status:
        if not value.is_terminal:
            raise ValueError("a finalized result cannot carry status 'unknown'")
        return value

    def find(self, *path: str) -> Result | None:
        """Return the descendant reached by following child names in ``path``."""

        node: Result = self
        for name in path:
            match = next((child for child in node.children if child.name == name), None)
            if match is None:
                return None
            node = match
        return node

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


Result.model_rebuild()


class DiagnoseReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    result: Result

    @property
    def overall(self) -> Status:
        return self.result.status

    def exit_code(self) -> int:
        if self.overall is Status.FAIL:
            return 1
        if self.overall is Status.WARN:
            return 2
        return 0


def _snapshot(span: Span) -> Result:
    children = tuple(_snapshot(child) for child in span.children)
    duration = span.duration
    return Result(
        name=span.name,
        status=rollup(span.status, (child.status for child in children), ran=span.ran),
        messages=tuple(span.messages),
        advice=tuple(span.advice),
        started_at=span.started_at,
        duration=duration.total_seconds() if duration is not None else None,
        children=children,
    )


def build_report(root: Span) -> DiagnoseReport:
    """Resolve effective statuses bottom-up and freeze the tree."""

    return DiagnoseReport(result=_snapshot(root))


__all__ = ["DiagnoseReport", "Result", "build_report"]
