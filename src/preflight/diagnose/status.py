"""Check outcome classification and the severity rollup rule."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Final


class Status(str, Enum):
    UNKNOWN = "unknown"
    SKIPPED = "skipped"
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        return self is not Status.UNKNOWN

    @property
    def rank(self) -> int:
        return _ROLLUP_RANK[self]


# ``skipped`` ranks below ``ok`` so a skip never hides a real outcome; it only
# survives rollup when nothing else was recorded.
_ROLLUP_RANK: Final[dict[Status, int]] = {
    Status.UNKNOWN: -1,
    Status.SKIPPED: 0,
    Status.OK: 1,
    Status.WARN: 2,
    Status.FAIL: 3,
}


def most_severe(statuses: Iterable[Status]) -> Status:
    """Return the highest ranked status, or ``UNKNOWN`` for an empty input."""

    worst = Status.UNKNOWN
    for status in statuses:
        if status.rank > worst.rank:
            worst = status
    return worst


def rollup(own: Status, children: Iterable[Status], *, ran: bool = True) -> Status:
    """Compute a span's effective status from its own and its children's.

    An own ``fail`` always wins. Otherwise the most severe of the own status
    and the children's effective statuses is used, ignoring ``unknown``. A
    span that recorded nothing at all resolves to ``ok`` when it ran and
    ``skipped`` when it never did.
    """

    if own is Status.FAIL:
        return Status.FAIL
    effective = most_severe([own, *children])
    if effective is Status.UNKNOWN:
        return Status.OK if ran else Status.SKIPPED
    return effective


__all__ = ["Status", "most_severe", "rollup"]
