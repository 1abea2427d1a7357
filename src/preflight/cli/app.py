"""preflight Typer CLI entrypoint."""

from __future__ import annotations

import typer
from rich.console import Console

from preflight.cli.commands import diagnose as diagnose_command
from preflight.cli.helpers import PreflightCommand, PreflightGroup, resolve_version

stderr_console = Console(stderr=True)
stdout_console = Console(stderr=False)

app = typer.Typer(
    cls=PreflightGroup,
    help="Startup diagnostics for server configurations",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

diagnose_command.register(app, stdout_console=stdout_console, stderr_console=stderr_console)


@app.command(cls=PreflightCommand, help="Show the installed preflight version.")
def version() -> None:
    """Print the preflight version discovered from the package metadata."""
    stdout_console.print(resolve_version(), highlight=False)


def main(argv: list[str] | None = None) -> None:
    """Run the CLI with ``argv`` (the process arguments when ``None``)."""

    app(args=argv, prog_name="preflight")


__all__ = ["app", "main", "stderr_console", "stdout_console"]
