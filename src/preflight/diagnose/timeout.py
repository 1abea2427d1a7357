"""Deadline enforcement for check callbacks.

The timeout is non-preemptive. The wrapped callback runs on a daemon worker
thread and the caller waits on its future for at most the deadline. When the
deadline wins, the caller gets :class:`CheckTimeoutError` and moves on, but the
worker is abandoned rather than stopped: checks typically block in I/O that
has no interruption hook, so it may keep running and keep holding whatever it
acquired. Anything it reports after the deadline lands on an already closed
span and is dropped by the session.
"""

from __future__ import annotations

import functools
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import timedelta

from preflight.diagnose.carrier import Carrier
from preflight.diagnose.checks import CheckCallback
from preflight.infrastructure.errors import CheckTimeoutError
from preflight.infrastructure.logging import get_logger, log_span_event

_LOGGER = get_logger("preflight.diagnose.timeout")


def _as_timedelta(duration: float | timedelta) -> timedelta:
    if isinstance(duration, timedelta):
        resolved = duration
    else:
        resolved = timedelta(seconds=float(duration))
    if resolved <= timedelta(0):
        raise ValueError("timeout duration must be positive")
    return resolved


def with_timeout(duration: float | timedelta, callback: CheckCallback) -> CheckCallback:
    """Wrap ``callback`` so the caller never waits longer than ``duration``.

    ``duration`` is a :class:`~datetime.timedelta` or a number of seconds. The
    wrapper has the callback's signature and is meant to be handed to
    :func:`~preflight.diagnose.checks.run_check`.
    """

    deadline = _as_timedelta(duration)

    @functools.wraps(callback)
    def _bounded(ctx: Carrier) -> BaseException | None:
        outcome: Future[BaseException | None] = Future()

        def _work() -> None:
            if not outcome.set_running_or_notify_cancel():
                return
            try:
                result = callback(ctx)
            except BaseException as exc:
                outcome.set_exception(exc)
            else:
                outcome.set_result(result)

        worker = threading.Thread(
            target=_work,
            name=f"preflight-check-{ctx.span.name}",
            daemon=True,
        )
        worker.start()
        try:
            return outcome.result(timeout=deadline.total_seconds())
        except FutureTimeoutError:
            if outcome.done():
                # the callback itself raised TimeoutError
                raise
            log_span_event(
                _LOGGER,
                "timeout",
                span=ctx.span.name,
                path=ctx.path,
                deadline_seconds=deadline.total_seconds(),
            )
            raise CheckTimeoutError(deadline) from None

    return _bounded


__all__ = ["with_timeout"]
