from __future__ import annotations

from dataclasses import dataclass, replace

from preflight.diagnose.session import Session
from preflight.diagnose.span import Span


@dataclass(frozen=True)
class Carrier:
    """Handle naming the span new checks attach under.

    Every check callback receives its own carrier; nested calls derive a new
    one instead of mutating a shared handle. The session stays the sole owner
    of the spans.
    """

    session: Session
    span: Span

    @classmethod
    def for_session(cls, session: Session) -> Carrier:
        return cls(session=session, span=session.root)

    def derive(self, span: Span) -> Carrier:
        return replace(self, span=span)

    @property
    def path(self) -> str:
        return "/".join(self.span.path)


__all__ = ["Carrier"]
