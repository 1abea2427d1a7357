"""Dynaconf-backed runtime configuration helpers for preflight."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from dynaconf import Dynaconf

from preflight.config.constants import (
    DEFAULT_LATENCY_WARNING_MS,
    DEFAULT_STORAGE_TIMEOUT_SECONDS,
    ENVVAR_PREFIX,
    FORMAT_HUMAN,
    FORMAT_JSON,
    coerce_bool,
)

LOG_FORMAT_TEXT = "text"
LOG_FORMAT_JSON = "json"
DEFAULT_LOG_FORMAT = LOG_FORMAT_TEXT
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_MAX_BYTES = 10_000_000
DEFAULT_BACKUP_COUNT = 5

OUTPUT_FORMATS = frozenset({FORMAT_HUMAN, FORMAT_JSON})

# Dynaconf keys used throughout the module. Using constants keeps the
# environment and CLI override lookups consistent.
DIAGNOSE_CONFIGS_KEY = "diagnose.configs"
DIAGNOSE_SKIP_KEY = "diagnose.skip"
DIAGNOSE_DEBUG_KEY = "diagnose.debug"
DIAGNOSE_FORMAT_KEY = "diagnose.format"
DIAGNOSE_STORAGE_TIMEOUT_KEY = "diagnose.storage_timeout"
DIAGNOSE_LATENCY_WARNING_KEY = "diagnose.latency_warning_ms"

LOGGING_LEVEL_KEY = "logging.level"
LOGGING_FORMAT_KEY = "logging.format"
LOGGING_FILE_KEY = "logging.file"
LOGGING_MAX_BYTES_KEY = "logging.max_bytes"
LOGGING_BACKUP_COUNT_KEY = "logging.backup_count"

_ENVIRONMENT_MAP = {
    "PREFLIGHT_SKIP": DIAGNOSE_SKIP_KEY,
    "PREFLIGHT_DEBUG": DIAGNOSE_DEBUG_KEY,
    "PREFLIGHT_FORMAT": DIAGNOSE_FORMAT_KEY,
    "PREFLIGHT_STORAGE_TIMEOUT": DIAGNOSE_STORAGE_TIMEOUT_KEY,
    "PREFLIGHT_LATENCY_WARNING_MS": DIAGNOSE_LATENCY_WARNING_KEY,
    "PREFLIGHT_LOG_LEVEL": LOGGING_LEVEL_KEY,
    "PREFLIGHT_LOG_FORMAT": LOGGING_FORMAT_KEY,
    "PREFLIGHT_LOG_FILE": LOGGING_FILE_KEY,
    "PREFLIGHT_LOG_MAX_BYTES": LOGGING_MAX_BYTES_KEY,
    "PREFLIGHT_LOG_BACKUP_COUNT": LOGGING_BACKUP_COUNT_KEY,
}


@dataclass(frozen=True)
class DiagnoseInputs:
    configs: tuple[str, ...] = ()
    skip: tuple[str, ...] = ()
    debug: bool | None = None
    format: str | None = None


@dataclass(frozen=True)
class LoggingInputs:
    level: str | None = None
    format: str | None = None
    file_path: str | None = None
    max_bytes: int | None = None
    backup_count: int | None = None


@dataclass(frozen=True)
class DiagnoseSettings:
    configs: tuple[str, ...]
    skip: tuple[str, ...]
    debug: bool
    format: str
    storage_timeout: float
    latency_warning_ms: float


@dataclass(frozen=True)
class LoggingSettings:
    level: int
    format: str
    file_path: str | None
    max_bytes: int
    backup_count: int

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


def _coerce_str(value: Any | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        candidate = value.strip()
        return candidate or None
    return str(value)


def _coerce_int(value: Any | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_float(value: Any | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_names(value: Any | None) -> tuple[str, ...]:
    """Accept a comma separated string or a sequence of names."""

    if value is None:
        return ()
    if isinstance(value, str):
        items: Sequence[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        items = [value]
    names: list[str] = []
    for item in items:
        candidate = _coerce_str(item)
        if candidate:
            names.append(candidate)
    return tuple(names)


def _apply_environment_overrides(settings: Dynaconf) -> None:
    for env_var, key in _ENVIRONMENT_MAP.items():
        raw = os.getenv(env_var)
        if raw is None or not raw.strip():
            continue
        settings.set(key, raw)


def _apply_diagnose_inputs(settings: Dynaconf, inputs: DiagnoseInputs | None) -> None:
    if inputs is None:
        return
    if inputs.configs:
        settings.set(DIAGNOSE_CONFIGS_KEY, list(inputs.configs))
    if inputs.skip:
        settings.set(DIAGNOSE_SKIP_KEY, list(inputs.skip))
    if inputs.debug is not None:
        settings.set(DIAGNOSE_DEBUG_KEY, inputs.debug)
    if inputs.format is not None:
        settings.set(DIAGNOSE_FORMAT_KEY, inputs.format.strip())


def _apply_logging_inputs(settings: Dynaconf, inputs: LoggingInputs | None) -> None:
    if inputs is None:
        return
    if inputs.level is not None:
        settings.set(LOGGING_LEVEL_KEY, inputs.level.strip())
    if inputs.format is not None:
        settings.set(LOGGING_FORMAT_KEY, inputs.format.strip())
    if inputs.file_path is not None:
        settings.set(LOGGING_FILE_KEY, inputs.file_path.strip())
    if inputs.max_bytes is not None:
        settings.set(LOGGING_MAX_BYTES_KEY, inputs.max_bytes)
    if inputs.backup_count is not None:
        settings.set(LOGGING_BACKUP_COUNT_KEY, inputs.backup_count)


def load_settings(settings_files: Sequence[str] = ()) -> Dynaconf:
    """Create a Dynaconf instance for the harness' own settings."""

    settings = Dynaconf(
        settings_files=list(settings_files),
        envvar_prefix=ENVVAR_PREFIX,
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )
    _apply_environment_overrides(settings)
    return settings


def apply_cli_overrides(
    settings: Dynaconf,
    *,
    diagnose_inputs: DiagnoseInputs | None = None,
    logging_inputs: LoggingInputs | None = None,
) -> None:
    """Apply CLI overrides to the provided settings instance."""

    _apply_diagnose_inputs(settings, diagnose_inputs)
    _apply_logging_inputs(settings, logging_inputs)


def diagnose_from_settings(settings: Dynaconf) -> DiagnoseSettings:
    """Extract diagnose settings from Dynaconf, validating the output format."""

    format_value = (_coerce_str(settings.get(DIAGNOSE_FORMAT_KEY)) or FORMAT_HUMAN).lower()
    if format_value not in OUTPUT_FORMATS:
        raise ValueError(
            f"Unsupported output format: {format_value} "
            f"(expected one of {', '.join(sorted(OUTPUT_FORMATS))})"
        )

    storage_timeout = _coerce_float(settings.get(DIAGNOSE_STORAGE_TIMEOUT_KEY))
    if storage_timeout is None or storage_timeout <= 0:
        storage_timeout = DEFAULT_STORAGE_TIMEOUT_SECONDS

    latency_warning = _coerce_float(settings.get(DIAGNOSE_LATENCY_WARNING_KEY))
    if latency_warning is None or latency_warning <= 0:
        latency_warning = DEFAULT_LATENCY_WARNING_MS

    return DiagnoseSettings(
        configs=_coerce_names(settings.get(DIAGNOSE_CONFIGS_KEY)),
        skip=_coerce_names(settings.get(DIAGNOSE_SKIP_KEY)),
        debug=coerce_bool(settings.get(DIAGNOSE_DEBUG_KEY), default=False),
        format=format_value,
        storage_timeout=storage_timeout,
        latency_warning_ms=latency_warning,
    )


def logging_from_settings(settings: Dynaconf) -> LoggingSettings:
    """Extract logging configuration from Dynaconf."""

    level_value = _coerce_str(settings.get(LOGGING_LEVEL_KEY)) or DEFAULT_LOG_LEVEL
    format_value = (_coerce_str(settings.get(LOGGING_FORMAT_KEY)) or DEFAULT_LOG_FORMAT).lower()
    if format_value not in {LOG_FORMAT_TEXT, LOG_FORMAT_JSON}:
        raise ValueError(f"Unsupported log format: {format_value}")

    file_path = _coerce_str(settings.get(LOGGING_FILE_KEY))

    max_bytes_value = _coerce_int(settings.get(LOGGING_MAX_BYTES_KEY))
    if max_bytes_value is None or max_bytes_value <= 0:
        max_bytes_value = DEFAULT_MAX_BYTES

    backup_count_value = _coerce_int(settings.get(LOGGING_BACKUP_COUNT_KEY))
    if backup_count_value is None or backup_count_value <= 0:
        backup_count_value = DEFAULT_BACKUP_COUNT

    mapping = logging.getLevelNamesMapping()
    level_upper = level_value.upper()
    if level_upper.isdigit():
        resolved_level = int(level_upper)
    else:
        resolved_level = mapping.get(level_upper, logging.WARNING)

    return LoggingSettings(
        level=resolved_level,
        format=format_value,
        file_path=file_path,
        max_bytes=max_bytes_value,
        backup_count=backup_count_value,
    )


def resolve_settings(
    *,
    diagnose_inputs: DiagnoseInputs | None = None,
    logging_inputs: LoggingInputs | None = None,
) -> tuple[DiagnoseSettings, LoggingSettings]:
    """Resolve diagnose and logging settings from env plus CLI overrides.

    ``--debug`` lowers the log level to DEBUG unless a more verbose level was
    already requested.
    """

    settings = load_settings()
    apply_cli_overrides(
        settings,
        diagnose_inputs=diagnose_inputs,
        logging_inputs=logging_inputs,
    )
    diagnose_settings = diagnose_from_settings(settings)
    logging_settings = logging_from_settings(settings)
    if diagnose_settings.debug and logging_settings.level > logging.DEBUG:
        logging_settings = replace(logging_settings, level=logging.DEBUG)
    return diagnose_settings, logging_settings


__all__ = [
    "DEFAULT_BACKUP_COUNT",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_BYTES",
    "DiagnoseInputs",
    "DiagnoseSettings",
    "LOG_FORMAT_JSON",
    "LOG_FORMAT_TEXT",
    "LoggingInputs",
    "LoggingSettings",
    "OUTPUT_FORMATS",
    "apply_cli_overrides",
    "diagnose_from_settings",
    "load_settings",
    "logging_from_settings",
    "resolve_settings",
]
