"""Typer command modules registered on :data:`preflight.cli.app.app`."""
