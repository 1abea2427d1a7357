"""Process-scoped state for one diagnostic run."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Protocol

from preflight.config.constants import ROOT_SPAN_NAME
from preflight.diagnose.result import DiagnoseReport, build_report
from preflight.diagnose.span import Span
from preflight.diagnose.status import Status
from preflight.infrastructure.errors import SessionFinalizedError
from preflight.infrastructure.logging import get_logger, log_span_event

_LOGGER = get_logger("preflight.diagnose.session")

ABANDONED_MSG = "abandoned: parent check ended before this check finished"


class SpanListener(Protocol):
    """Receives span lifecycle events while a run is in progress."""

    def span_started(self, span: Span) -> None: ...

    def span_ended(self, span: Span, status: Status) -> None: ...


class Session:
    """Owns the span tree, the skip-list and the output sink of one run.

    Every mutation of the tree goes through the session so it can be
    serialized under :attr:`lock`; timeout workers may report concurrently
    with the thread walking the tree.
    """

    def __init__(
        self,
        sink: SpanListener | None = None,
        *,
        root_name: str = ROOT_SPAN_NAME,
        skip: Iterable[str] = (),
    ) -> None:
        self.lock = threading.RLock()
        self.sink = sink
        self._skip: frozenset[str] = frozenset()
        self._finalized = False
        self.set_skip_list(skip)
        self.root = Span(root_name)
        self.root.start()
        self._notify_started(self.root)

    @property
    def skip_list(self) -> frozenset[str]:
        return self._skip

    @property
    def finalized(self) -> bool:
        return self._finalized

    def set_skip_list(self, names: Iterable[str]) -> None:
        self._skip = frozenset(name.strip().casefold() for name in names if name and name.strip())

    def is_skipped(self, name: str) -> bool:
        return name.casefold() in self._skip

    def open_child(self, parent: Span, name: str, *, start: bool = True) -> Span:
        """Create a child of ``parent``.

        A closed parent (for example a span whose timeout already fired) keeps
        its recorded shape: the child is returned detached and already closed,
        so it never appears in the result and the sink never hears of it.
        """

        with self.lock:
            attached = not (parent.closed or self._finalized)
            if attached:
                child = parent.new_child(name)
            else:
                log_span_event(_LOGGER, "late", span=name, path="/".join(parent.path))
                child = Span(name, depth=parent.depth + 1, path=(*parent.path, name))
            if start:
                child.start()
            if not attached:
                child.end()
        if attached:
            self._notify_started(child)
        return child

    def record(self, span: Span, status: Status, message: str | None = None) -> None:
        with self.lock:
            if span.closed:
                log_span_event(
                    _LOGGER,
                    "dropped",
                    span=span.name,
                    path="/".join(span.path),
                    status=status.value,
                )
                return
            span.record(status, message)

    def advise(self, span: Span, advice: str) -> None:
        with self.lock:
            if not span.closed:
                span.add_advice(advice)

    def close(self, span: Span) -> None:
        """End ``span`` and fail any descendant that is still open.

        A descendant can only outlive its parent when a timeout abandoned the
        worker running it. Its check never finished, so it is closed as failed.
        """

        with self.lock:
            ended: list[tuple[Span, Status]] = []
            for node in span.open_descendants():
                node.record(Status.FAIL, ABANDONED_MSG)
                node.end()
                ended.append((node, node.effective_status()))
            if span.end():
                ended.append((span, span.effective_status()))
        for node, status in ended:
            log_span_event(
                _LOGGER,
                "ended",
                span=node.name,
                path="/".join(node.path),
                status=status.value,
            )
            if self.sink is not None:
                self.sink.span_ended(node, status)

    def finalize(self) -> DiagnoseReport:
        """Close the root and snapshot the tree.

        Must be called once, after every check has returned. Abandoned timeout
        workers may still be running; spans they left open are failed, and
        whatever they attach afterwards is not part of the snapshot.
        """

        with self.lock:
            if self._finalized:
                raise SessionFinalizedError("session has already been finalized")
            self.close(self.root)
            self._finalized = True
            return build_report(self.root)

    def _notify_started(self, span: Span) -> None:
        log_span_event(_LOGGER, "started", span=span.name, path="/".join(span.path))
        if self.sink is not None:
            self.sink.span_started(span)


__all__ = ["ABANDONED_MSG", "Session", "SpanListener"]
