"""The ``preflight diagnose`` command."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from preflight.application.diagnostics import DiagnoseOptions, DiagnoseRunner
from preflight.cli import options as cli_options
from preflight.cli.helpers import (
    PreflightCommand,
    build_invocation,
    initialize_logging,
    resolve_invocation_settings,
    resolve_version,
)
from preflight.config.constants import FORMAT_JSON
from preflight.diagnose import Carrier, DiagnoseReport, Session
from preflight.infrastructure.errors import SerializationError
from preflight.infrastructure.logging import BoundLogger
from preflight.rendering import LiveTreeWriter, dumps, render_tree

HARNESS_EXIT_CODE = 1
SERIALIZATION_EXIT_CODE = 4


def _emit_json(
    report: DiagnoseReport,
    *,
    stdout_console: Console,
    stderr_console: Console,
    logger: BoundLogger,
) -> None:
    try:
        payload = dumps(report)
    except SerializationError as exc:
        logger.error("diagnose.serialization_failed", **exc.log_fields())
        stderr_console.print(str(exc), markup=False, highlight=False)
        raise typer.Exit(code=SERIALIZATION_EXIT_CODE) from exc
    stdout_console.out(payload, highlight=False)


def _emit_tree(report: DiagnoseReport, stdout_console: Console, *, verbose: bool) -> None:
    stdout_console.print("\nResults:", highlight=False)
    width = stdout_console.width if stdout_console.is_terminal else 0
    render_tree(report, stdout_console, width=width, verbose=verbose)


def register(
    app: typer.Typer,
    *,
    stdout_console: Console,
    stderr_console: Console,
) -> None:
    """Register the diagnose command with the app."""

    @app.command(
        "diagnose",
        cls=PreflightCommand,
        help="Run startup diagnostics against a server configuration without starting it.",
    )
    def diagnose(
        config: cli_options.ConfigPathsOption = None,
        skip: cli_options.SkipOption = None,
        debug: cli_options.DebugOption = None,
        output_format: cli_options.OutputFormatOption = None,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
        log_max_bytes: cli_options.LogMaxBytesOption = None,
        log_backup_count: cli_options.LogBackupCountOption = None,
    ) -> None:
        """Exit 0 when every check passed, 2 on warnings and 1 on failures."""

        invocation = build_invocation(
            configs=config,
            skip=skip,
            debug=debug,
            output_format=output_format,
            log_level=log_level,
            log_format=log_format,
            log_file=log_file,
            log_max_bytes=log_max_bytes,
            log_backup_count=log_backup_count,
        )
        diagnose_settings, logging_settings = resolve_invocation_settings(invocation)
        if not diagnose_settings.configs:
            raise typer.BadParameter(
                "Must specify a configuration file using --config.",
                param_hint="--config",
            )
        logger = initialize_logging(logging_settings)
        json_output = diagnose_settings.format == FORMAT_JSON

        sink: LiveTreeWriter | None = None
        if not json_output:
            stdout_console.print(f"preflight v{resolve_version()}", highlight=False)
            sink = LiveTreeWriter(stdout_console)

        session = Session(sink, skip=diagnose_settings.skip)
        runner = DiagnoseRunner(
            [Path(path) for path in diagnose_settings.configs],
            options=DiagnoseOptions(
                storage_timeout=diagnose_settings.storage_timeout,
                latency_warning_ms=diagnose_settings.latency_warning_ms,
            ),
            logger=logger,
        )
        harness_error = runner.run(Carrier.for_session(session))
        report = session.finalize()

        if json_output:
            _emit_json(
                report,
                stdout_console=stdout_console,
                stderr_console=stderr_console,
                logger=logger,
            )
        else:
            _emit_tree(report, stdout_console, verbose=diagnose_settings.debug)

        if harness_error is not None:
            logger.error("diagnose.harness_error", error=str(harness_error))
            raise typer.Exit(code=HARNESS_EXIT_CODE)
        raise typer.Exit(code=report.exit_code())


__all__ = ["register"]
