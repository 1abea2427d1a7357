from __future__ import annotations

from datetime import UTC, datetime, timedelta

from preflight.diagnose.status import Status, rollup


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Span:
    """One node of the check tree.

    A span owns its children. Mutations are expected to happen under the
    owning session's lock; the span itself does no locking. Once a span has
    ended it is closed and rejects further mutations.
    """

    __slots__ = (
        "name",
        "status",
        "messages",
        "advice",
        "started_at",
        "ended_at",
        "children",
        "depth",
        "path",
        "_closed",
    )

    def __init__(self, name: str, *, depth: int = 0, path: tuple[str, ...] = ()) -> None:
        self.name = name
        self.status = Status.UNKNOWN
        self.messages: list[str] = []
        self.advice: list[str] = []
        self.started_at: datetime | None = None
        self.ended_at: datetime | None = None
        self.children: list[Span] = []
        self.depth = depth
        self.path = path or (name,)
        self._closed = False

    def __repr__(self) -> str:
        return f"Span(name={self.name!r}, status={self.status.value}, children={len(self.children)})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ran(self) -> bool:
        return self.started_at is not None

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def new_child(self, name: str) -> Span:
        child = Span(name, depth=self.depth + 1, path=(*self.path, name))
        self.children.append(child)
        return child

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = _utcnow()

    def end(self) -> bool:
        """Close the span. Returns ``False`` when it was already closed."""

        if self._closed:
            return False
        self._closed = True
        if self.started_at is not None:
            self.ended_at = _utcnow()
        return True

    def record(self, status: Status, message: str | None = None) -> None:
        """Merge ``status`` into the span's own status and keep ``message``.

        ``fail`` always wins, ``skipped`` only replaces ``unknown``, and
        otherwise the more severe status is kept.
        """

        if status is Status.FAIL:
            self.status = Status.FAIL
        elif status is Status.SKIPPED:
            if self.status is Status.UNKNOWN:
                self.status = Status.SKIPPED
        elif status.rank > self.status.rank:
            self.status = status
        if message:
            self.messages.append(message)

    def add_advice(self, advice: str) -> None:
        if advice:
            self.advice.append(advice)

    def effective_status(self) -> Status:
        """Rolled-up status of the subtree as recorded so far."""

        return rollup(
            self.status,
            [child.effective_status() for child in self.children],
            ran=self.ran,
        )

    def open_descendants(self) -> list[Span]:
        """Descendants that have not ended, deepest first."""

        found: list[Span] = []
        for child in self.children:
            found.extend(child.open_descendants())
            if not child.closed:
                found.append(child)
        return found

    def walk(self):
        """Yield this span and its descendants in pre-order."""

        yield self
        for child in self.children:
            yield from child.walk()


__all__ = ["Span"]
