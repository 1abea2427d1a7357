"""Interactive, color coded tree output built on Rich."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import timedelta
from typing import Final

from rich.console import Console
from rich.control import Control, ControlType
from rich.text import Text

from preflight.diagnose.result import DiagnoseReport, Result
from preflight.diagnose.span import Span
from preflight.diagnose.status import Status
from preflight.infrastructure.errors import format_duration

INDENT: Final = "  "
MIN_WRAP_WIDTH: Final = 20

STATUS_MARKERS: Final[dict[Status, tuple[str, str]]] = {
    Status.OK: ("[  ok  ]", "green"),
    Status.WARN: ("[ warn ]", "yellow"),
    Status.FAIL: ("[failed]", "red"),
    Status.SKIPPED: ("[ skip ]", "blue"),
    Status.UNKNOWN: ("[      ]", ""),
}


def status_line(depth: int, status: Status, name: str, *, suffix: str = "") -> Text:
    marker, style = STATUS_MARKERS[status]
    line = Text(INDENT * depth)
    line.append(marker, style=style or None)
    line.append(f" {name}")
    if suffix:
        line.append(f" {suffix}", style="dim")
    return line


def _wrap(
    console: Console, text: str, prefix: str, width: int, *, style: str | None = None
) -> list[Text]:
    body = Text(text, style=style)
    if not width or width <= 0:
        return [Text(prefix) + body]
    usable = max(width - len(prefix), MIN_WRAP_WIDTH)
    lines = body.wrap(console, usable, overflow="ignore")
    wrapped = [Text(prefix) + line for line in lines]
    for line in wrapped:
        line.rstrip()
    return wrapped or [Text(prefix)]


def _detail_lines(console: Console, node: Result, depth: int, width: int) -> Iterator[Text]:
    marker_width = len(STATUS_MARKERS[Status.UNKNOWN][0]) + 1
    prefix = INDENT * depth + " " * marker_width
    for message in node.messages:
        yield from _wrap(console, message, prefix, width)
    for advice in node.advice:
        yield from _wrap(console, f"Advice: {advice}", prefix, width, style="cyan")


def iter_tree_lines(
    result: Result,
    console: Console,
    *,
    width: int = 0,
    verbose: bool = False,
    depth: int = 0,
) -> Iterator[Text]:
    """Yield the rendered lines for ``result`` and its descendants in order.

    ``console`` measures text when messages are wrapped to ``width``.
    """

    suffix = ""
    if verbose and result.duration is not None:
        suffix = f"({format_duration(timedelta(seconds=result.duration))})"
    yield status_line(depth, result.status, result.name, suffix=suffix)
    yield from _detail_lines(console, result, depth, width)
    for child in result.children:
        yield from iter_tree_lines(
            child, console, width=width, verbose=verbose, depth=depth + 1
        )


def render_tree(
    report: DiagnoseReport,
    console: Console,
    *,
    width: int | None = 0,
    verbose: bool = False,
) -> None:
    """Write the result tree, wrapping messages to ``width`` (0 disables)."""

    for line in iter_tree_lines(report.result, console, width=width or 0, verbose=verbose):
        console.print(line, soft_wrap=True, highlight=False)


class LiveTreeWriter:
    """Span listener printing checks while they run.

    A placeholder line is printed when a span starts. When the span ends and
    nothing else was printed in between, the placeholder is overwritten in
    place. Overwriting needs a real terminal, so other consoles get the
    resolved line appended instead.
    """

    def __init__(self, console: Console, *, live: bool | None = None) -> None:
        self._console = console
        self._live = console.is_terminal if live is None else live
        self._seen: set[int] = set()
        self._pending: Span | None = None

    @property
    def live(self) -> bool:
        return self._live

    def span_started(self, span: Span) -> None:
        self._seen.add(id(span))
        self._console.print(
            status_line(span.depth, Status.UNKNOWN, span.name), soft_wrap=True, highlight=False
        )
        self._pending = span

    def span_ended(self, span: Span, status: Status) -> None:
        if id(span) not in self._seen:
            return
        self._seen.discard(id(span))
        line = status_line(span.depth, status, span.name)
        if self._live and self._pending is span:
            self._console.control(
                Control.move_to_column(0, y=-1),
                Control((ControlType.ERASE_IN_LINE, 2)),
            )
        self._console.print(line, soft_wrap=True, highlight=False)
        self._pending = None


__all__ = [
    "INDENT",
    "LiveTreeWriter",
    "STATUS_MARKERS",
    "iter_tree_lines",
    "render_tree",
    "status_line",
]
