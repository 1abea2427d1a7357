from __future__ import annotations

import logging

import pytest

from preflight.config.constants import (
    DEFAULT_LATENCY_WARNING_MS,
    DEFAULT_STORAGE_TIMEOUT_SECONDS,
    coerce_bool,
)
from preflight.config.settings import (
    DEFAULT_LOG_FORMAT,
    DiagnoseInputs,
    LoggingInputs,
    apply_cli_overrides,
    diagnose_from_settings,
    load_settings,
    logging_from_settings,
    resolve_settings,
)


def test_defaults_without_inputs() -> None:
    diagnose_settings, logging_settings = resolve_settings()
    assert diagnose_settings.configs == ()
    assert diagnose_settings.skip == ()
    assert diagnose_settings.debug is False
    assert diagnose_settings.format == "human"
    assert diagnose_settings.storage_timeout == DEFAULT_STORAGE_TIMEOUT_SECONDS
    assert diagnose_settings.latency_warning_ms == DEFAULT_LATENCY_WARNING_MS
    assert logging_settings.level == logging.WARNING
    assert logging_settings.format == DEFAULT_LOG_FORMAT
    assert logging_settings.file_path is None


def test_environment_supplies_skip_and_format(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PREFLIGHT_SKIP", "storage, init-listeners")
    monkeypatch.setenv("PREFLIGHT_FORMAT", "JSON")
    monkeypatch.setenv("PREFLIGHT_STORAGE_TIMEOUT", "2.5")
    diagnose_settings, _ = resolve_settings()
    assert diagnose_settings.skip == ("storage", "init-listeners")
    assert diagnose_settings.format == "json"
    assert diagnose_settings.storage_timeout == 2.5


def test_cli_inputs_override_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PREFLIGHT_SKIP", "storage")
    monkeypatch.setenv("PREFLIGHT_LOG_LEVEL", "ERROR")
    diagnose_settings, logging_settings = resolve_settings(
        diagnose_inputs=DiagnoseInputs(configs=("a.toml", "b.toml"), skip=("seal",)),
        logging_inputs=LoggingInputs(level="INFO", format="json"),
    )
    assert diagnose_settings.configs == ("a.toml", "b.toml")
    assert diagnose_settings.skip == ("seal",)
    assert logging_settings.level == logging.INFO
    assert logging_settings.format == "json"


def test_debug_forces_debug_logging() -> None:
    diagnose_settings, logging_settings = resolve_settings(
        diagnose_inputs=DiagnoseInputs(debug=True),
        logging_inputs=LoggingInputs(level="ERROR"),
    )
    assert diagnose_settings.debug is True
    assert logging_settings.level == logging.DEBUG
    assert logging_settings.level_name == "DEBUG"


def test_unsupported_output_format_is_rejected() -> None:
    settings = load_settings()
    apply_cli_overrides(settings, diagnose_inputs=DiagnoseInputs(format="yaml"))
    with pytest.raises(ValueError, match="Unsupported output format"):
        diagnose_from_settings(settings)


def test_unsupported_log_format_is_rejected() -> None:
    settings = load_settings()
    apply_cli_overrides(settings, logging_inputs=LoggingInputs(format="xml"))
    with pytest.raises(ValueError, match="Unsupported log format"):
        logging_from_settings(settings)


def test_non_positive_numbers_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PREFLIGHT_STORAGE_TIMEOUT", "-1")
    monkeypatch.setenv("PREFLIGHT_LATENCY_WARNING_MS", "fast")
    monkeypatch.setenv("PREFLIGHT_LOG_MAX_BYTES", "0")
    diagnose_settings, logging_settings = resolve_settings()
    assert diagnose_settings.storage_timeout == DEFAULT_STORAGE_TIMEOUT_SECONDS
    assert diagnose_settings.latency_warning_ms == DEFAULT_LATENCY_WARNING_MS
    assert logging_settings.max_bytes > 0


@pytest.mark.parametrize(
    ("value", "expected"),
    [("yes", True), ("Off", False), ("", False), ("maybe", False), (1, True), (None, False)],
)
def test_coerce_bool(value: object, expected: bool) -> None:
    assert coerce_bool(value) is expected


def test_coerce_bool_default_for_ambiguous_values() -> None:
    assert coerce_bool("maybe", default=True) is True
