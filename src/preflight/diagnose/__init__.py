"""Diagnostic session engine: nested checks, rollup and result snapshots."""

from preflight.diagnose.carrier import Carrier
from preflight.diagnose.checks import (
    SKIPPED_BY_USER,
    CheckCallback,
    advise,
    error,
    fail,
    run_check,
    skipped,
    spot_error,
    spot_ok,
    spot_skipped,
    spot_warn,
    start_span,
    warn,
)
from preflight.diagnose.result import DiagnoseReport, Result
from preflight.diagnose.session import Session, SpanListener
from preflight.diagnose.span import Span
from preflight.diagnose.status import Status, rollup
from preflight.diagnose.timeout import with_timeout

__all__ = [
    "Carrier",
    "CheckCallback",
    "DiagnoseReport",
    "Result",
    "SKIPPED_BY_USER",
    "Session",
    "Span",
    "SpanListener",
    "Status",
    "advise",
    "error",
    "fail",
    "rollup",
    "run_check",
    "skipped",
    "spot_error",
    "spot_ok",
    "spot_skipped",
    "spot_warn",
    "start_span",
    "warn",
    "with_timeout",
]
