"""Declaring and recording checks.

:func:`run_check` is the workhorse: it runs a callback inside a new child span of
the carrier's span and records the outcome. The ``spot_*`` helpers record a
finished leaf in one call, and the remaining helpers report on the carrier's
own span from inside a running callback::

    def check_storage(ctx: Carrier) -> None:
        if config.storage is None:
            raise CheckError("no storage stanza found in config")
        run_check(ctx, "create-storage-backend", create_backend)

    run_check(ctx, "storage", check_storage)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from preflight.diagnose.carrier import Carrier
from preflight.diagnose.status import Status
from preflight.infrastructure.errors import CheckError, PreflightError
from preflight.infrastructure.logging import get_logger, log_span_event

CheckCallback = Callable[[Carrier], "BaseException | None"]

SKIPPED_BY_USER = "skipped by user request"

_LOGGER = get_logger("preflight.diagnose.checks")


def describe_error(error: BaseException) -> str:
    """Message recorded for a failure.

    Expected check errors keep their own text; anything else is an
    unexpected fault and carries its type name.
    """

    if isinstance(error, PreflightError):
        return str(error)
    text = str(error)
    name = type(error).__name__
    return f"{name}: {text}" if text else name


def run_check(ctx: Carrier, name: str, callback: CheckCallback) -> BaseException | None:
    """Run ``callback`` as the check ``name`` under the carrier's span.

    Returns the recorded error, or ``None`` when the check passed or was
    skipped. The outcome is always recorded in the tree; callers only branch
    on the return value.
    """

    session = ctx.session
    if session.is_skipped(name):
        span = session.open_child(ctx.span, name, start=False)
        session.record(span, Status.SKIPPED, SKIPPED_BY_USER)
        session.close(span)
        return None

    span = session.open_child(ctx.span, name)
    error: BaseException | None = None
    try:
        outcome = callback(ctx.derive(span))
    except CheckError as exc:
        error = exc
    except Exception as exc:
        log_span_event(
            _LOGGER,
            "fault",
            span=name,
            path="/".join(span.path),
            error=repr(exc),
            exc_info=exc,
        )
        error = exc
    except BaseException as exc:
        session.record(span, Status.FAIL, f"interrupted: {describe_error(exc)}")
        session.close(span)
        raise
    else:
        if isinstance(outcome, BaseException):
            error = outcome

    if error is not None:
        session.record(span, Status.FAIL, describe_error(error))
    elif span.status is Status.UNKNOWN:
        session.record(span, Status.OK)
    session.close(span)
    return error


def _spot(ctx: Carrier, name: str, status: Status, message: str | None) -> None:
    session = ctx.session
    span = session.open_child(ctx.span, name, start=status is not Status.SKIPPED)
    session.record(span, status, message)
    session.close(span)


def spot_ok(ctx: Carrier, name: str, message: str = "") -> None:
    _spot(ctx, name, Status.OK, message)


def spot_warn(ctx: Carrier, name: str, message: str) -> None:
    _spot(ctx, name, Status.WARN, message)


def spot_skipped(ctx: Carrier, name: str, message: str) -> None:
    _spot(ctx, name, Status.SKIPPED, message)


def spot_error(ctx: Carrier, name: str, error: BaseException | str) -> BaseException:
    """Record a failed leaf and hand the error back for propagation."""

    resolved = CheckError(error) if isinstance(error, str) else error
    _spot(ctx, name, Status.FAIL, describe_error(resolved))
    return resolved


def warn(ctx: Carrier, message: str) -> None:
    ctx.session.record(ctx.span, Status.WARN, message)


def fail(ctx: Carrier, message: str) -> None:
    ctx.session.record(ctx.span, Status.FAIL, message)


def error(ctx: Carrier, exc: BaseException) -> BaseException:
    ctx.session.record(ctx.span, Status.FAIL, describe_error(exc))
    return exc


def skipped(ctx: Carrier, message: str) -> None:
    ctx.session.record(ctx.span, Status.SKIPPED, message)


def advise(ctx: Carrier, advice: str) -> None:
    ctx.session.advise(ctx.span, advice)


@contextmanager
def start_span(ctx: Carrier, name: str) -> Iterator[Carrier]:
    """Open a span for a stage that reports through ``fail``/``error`` itself.

    The span is closed when the block exits, including on exceptions, which
    are not recorded and keep propagating.
    """

    session = ctx.session
    span = session.open_child(ctx.span, name)
    try:
        yield ctx.derive(span)
    finally:
        session.close(span)


__all__ = [
    "CheckCallback",
    "SKIPPED_BY_USER",
    "advise",
    "describe_error",
    "error",
    "fail",
    "run_check",
    "skipped",
    "spot_error",
    "spot_ok",
    "spot_skipped",
    "spot_warn",
    "start_span",
    "warn",
]
