"""Typer option declarations and normalization helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Final

import typer

from preflight.config.constants import FORMAT_HUMAN, FORMAT_JSON

OUTPUT_FORMAT_CHOICES: Final[set[str]] = {FORMAT_HUMAN, FORMAT_JSON}
LOG_FORMAT_CHOICES: Final[set[str]] = {"text", "json"}
LOG_LEVEL_CHOICES: Final[list[str]] = sorted(
    name
    for name, value in logging.getLevelNamesMapping().items()
    if isinstance(name, str) and not name.isdigit()
)
LOG_LEVEL_SET: Final[set[str]] = {choice.upper() for choice in LOG_LEVEL_CHOICES}

ConfigPathsOption = Annotated[
    list[Path] | None,
    typer.Option(
        "--config",
        help=(
            "Server configuration file or directory to diagnose "
            "(repeatable; later sources override earlier ones)"
        ),
        envvar="PREFLIGHT_CONFIG",
        show_envvar=True,
        exists=True,
        rich_help_panel="Configuration",
    ),
]

SkipOption = Annotated[
    list[str] | None,
    typer.Option(
        "--skip",
        help="Name of a check to skip (repeatable, case-insensitive)",
        rich_help_panel="Diagnostics",
    ),
]

DebugOption = Annotated[
    bool | None,
    typer.Option(
        "--debug/--no-debug",
        help="Show check durations and enable debug logging",
        envvar="PREFLIGHT_DEBUG",
        show_envvar=True,
        rich_help_panel="Diagnostics",
    ),
]

OutputFormatOption = Annotated[
    str | None,
    typer.Option(
        "--format",
        help="Output format (human or json)",
        rich_help_panel="Output",
    ),
]

LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level",
        help="Logging level (e.g. INFO, DEBUG)",
        rich_help_panel="Logging",
    ),
]

LogFormatOption = Annotated[
    str | None,
    typer.Option(
        "--log-format",
        help="Logging format (text or json)",
        rich_help_panel="Logging",
    ),
]

LogFileOption = Annotated[
    str | None,
    typer.Option(
        "--log-file",
        help="Path to a log file (use '-', none, stderr to disable)",
        rich_help_panel="Logging",
    ),
]

LogMaxBytesOption = Annotated[
    int | None,
    typer.Option(
        "--log-max-bytes",
        min=1,
        help="Maximum size in bytes for rotating log files",
        rich_help_panel="Logging",
    ),
]

LogBackupCountOption = Annotated[
    int | None,
    typer.Option(
        "--log-backup-count",
        min=1,
        help="Number of rotating log file backups to retain",
        rich_help_panel="Logging",
    ),
]


def clean_string(value: str | None) -> str | None:
    """Normalize optional string input."""

    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def normalize_output_format(value: str | None) -> str | None:
    """Normalize the ``--format`` option."""

    candidate = clean_string(value)
    if candidate is None:
        return None
    candidate = candidate.lower()
    if candidate not in OUTPUT_FORMAT_CHOICES:
        raise typer.BadParameter(
            "Output format must be either 'human' or 'json'",
            param_hint="--format",
        )
    return candidate


def normalize_log_format(value: str | None) -> str | None:
    """Normalize the log format option."""

    candidate = clean_string(value)
    if candidate is None:
        return None
    candidate = candidate.lower()
    if candidate not in LOG_FORMAT_CHOICES:
        raise typer.BadParameter(
            "Log format must be either 'text' or 'json'",
            param_hint="--log-format",
        )
    return candidate


def normalize_log_level(value: str | None) -> str | None:
    """Normalize the log level option."""

    candidate = clean_string(value)
    if candidate is None:
        return None
    candidate = candidate.upper()
    if candidate not in LOG_LEVEL_SET:
        raise typer.BadParameter(
            f"Log level must be one of: {', '.join(LOG_LEVEL_CHOICES)}",
            param_hint="--log-level",
        )
    return candidate


def normalize_skip(values: list[str] | None) -> tuple[str, ...]:
    """Flatten repeated and comma separated ``--skip`` values."""

    names: list[str] = []
    for value in values or ():
        for part in value.split(","):
            candidate = part.strip()
            if candidate:
                names.append(candidate)
    return tuple(names)


__all__ = [
    "ConfigPathsOption",
    "DebugOption",
    "LOG_FORMAT_CHOICES",
    "LOG_LEVEL_CHOICES",
    "LogBackupCountOption",
    "LogFileOption",
    "LogFormatOption",
    "LogLevelOption",
    "LogMaxBytesOption",
    "OUTPUT_FORMAT_CHOICES",
    "OutputFormatOption",
    "SkipOption",
    "clean_string",
    "normalize_log_format",
    "normalize_log_level",
    "normalize_output_format",
    "normalize_skip",
]
