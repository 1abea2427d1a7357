"""Reusable helper utilities for the preflight CLI."""

from __future__ import annotations

from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Final

import click
import typer
from typer.core import TyperCommand, TyperGroup

from preflight.cli import options as cli_options
from preflight.config.settings import (
    DiagnoseInputs,
    DiagnoseSettings,
    LoggingInputs,
    LoggingSettings,
    resolve_settings,
)
from preflight.infrastructure.logging import BoundLogger, configure_logging, get_logger

DISTRIBUTION_NAME: Final = "preflight"
PROJECT_ROOT = Path(__file__).resolve().parents[3]
LOG_FILE_DISABLED_VALUES: Final[frozenset[str]] = frozenset({"-", "none", "stderr"})
USAGE_EXIT_CODE: Final = 3


class _UsageExitMixin:
    """Report command line usage errors with exit code 3 instead of click's 2."""

    def make_context(self, *args, **kwargs):
        try:
            return super().make_context(*args, **kwargs)
        except click.UsageError as exc:
            exc.exit_code = USAGE_EXIT_CODE
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = USAGE_EXIT_CODE
            raise


class PreflightGroup(_UsageExitMixin, TyperGroup):
    pass


class PreflightCommand(_UsageExitMixin, TyperCommand):
    pass


@dataclass(frozen=True)
class LoggingOverrides:
    level: str | None = None
    format: str | None = None
    file_path: str | None = None
    max_bytes: int | None = None
    backup_count: int | None = None


@dataclass(frozen=True)
class DiagnoseInvocation:
    configs: tuple[Path, ...]
    skip: tuple[str, ...]
    debug: bool | None
    output_format: str | None
    logging: LoggingOverrides


def is_logfile_disabled_value(value: str) -> bool:
    return value.strip().lower() in LOG_FILE_DISABLED_VALUES


def build_invocation(
    *,
    configs: list[Path] | None,
    skip: list[str] | None,
    debug: bool | None,
    output_format: str | None,
    log_level: str | None,
    log_format: str | None,
    log_file: str | None,
    log_max_bytes: int | None,
    log_backup_count: int | None,
) -> DiagnoseInvocation:
    """Normalize raw option values, raising ``typer.BadParameter`` on bad input."""

    return DiagnoseInvocation(
        configs=tuple(configs or ()),
        skip=cli_options.normalize_skip(skip),
        debug=debug,
        output_format=cli_options.normalize_output_format(output_format),
        logging=LoggingOverrides(
            level=cli_options.normalize_log_level(log_level),
            format=cli_options.normalize_log_format(log_format),
            file_path=cli_options.clean_string(log_file),
            max_bytes=log_max_bytes,
            backup_count=log_backup_count,
        ),
    )


def diagnose_inputs(invocation: DiagnoseInvocation) -> DiagnoseInputs:
    return DiagnoseInputs(
        configs=tuple(str(path) for path in invocation.configs),
        skip=invocation.skip,
        debug=invocation.debug,
        format=invocation.output_format,
    )


def logging_inputs(overrides: LoggingOverrides) -> LoggingInputs | None:
    """Convert CLI logging overrides to :class:`LoggingInputs`."""

    if (
        overrides.level is None
        and overrides.format is None
        and overrides.file_path is None
        and overrides.max_bytes is None
        and overrides.backup_count is None
    ):
        return None

    file_override: str | None
    if overrides.file_path is None:
        file_override = None
    elif is_logfile_disabled_value(overrides.file_path):
        file_override = ""
    else:
        file_override = overrides.file_path

    return LoggingInputs(
        level=overrides.level,
        format=overrides.format,
        file_path=file_override,
        max_bytes=overrides.max_bytes,
        backup_count=overrides.backup_count,
    )


def resolve_invocation_settings(
    invocation: DiagnoseInvocation,
) -> tuple[DiagnoseSettings, LoggingSettings]:
    """Resolve settings for an invocation; bad environment values are usage errors."""

    try:
        return resolve_settings(
            diagnose_inputs=diagnose_inputs(invocation),
            logging_inputs=logging_inputs(invocation.logging),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def initialize_logging(logging_settings: LoggingSettings) -> BoundLogger:
    configure_logging(logging_settings)
    return get_logger("preflight")


def resolve_version() -> str:
    """Return the installed version, falling back to ``pyproject.toml``."""

    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        pyproject = PROJECT_ROOT / "pyproject.toml"
        if not pyproject.exists():
            return "unknown"
        import tomllib

        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        return str(data.get("project", {}).get("version", "unknown"))


__all__ = [
    "DiagnoseInvocation",
    "PreflightCommand",
    "PreflightGroup",
    "USAGE_EXIT_CODE",
    "LoggingOverrides",
    "build_invocation",
    "diagnose_inputs",
    "initialize_logging",
    "is_logfile_disabled_value",
    "logging_inputs",
    "resolve_invocation_settings",
    "resolve_version",
]
