from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from preflight.application import diagnostics
from preflight.cli.app import app
from preflight.cli.commands import diagnose as diagnose_command
from preflight.infrastructure.errors import SerializationError

pytestmark = pytest.mark.usefixtures("quiet_host")

HEALTHY = """
api_addr = "https://127.0.0.1:8200"

[storage]
type = "inmem"

[[listener]]
address = "127.0.0.1:0"
tls_cert_file = "/etc/preflight/cert.pem"
tls_key_file = "/etc/preflight/key.pem"
"""

PLAINTEXT_LISTENER = """
[storage]
type = "inmem"

[[listener]]
address = "127.0.0.1:0"
tls_disable = true
"""

NO_STORAGE = """
[[listener]]
address = "127.0.0.1:0"
tls_disable = true
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _no_tls_files(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(diagnostics, "build_tls_context", lambda config: None)


def _invoke(runner: CliRunner, *args: str):
    return runner.invoke(app, ["diagnose", *args], color=False)


@pytest.mark.slow
def test_healthy_config_exits_zero(
    runner: CliRunner, write_config: Callable[..., Path]
) -> None:
    result = _invoke(runner, "--config", str(write_config(HEALTHY)))

    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("preflight v")
    assert "\nResults:\n" in result.stdout
    assert "[  ok  ] initialization" in result.stdout
    assert "[ skip ] service-discovery" in result.stdout


@pytest.mark.slow
def test_warnings_exit_two(runner: CliRunner, write_config: Callable[..., Path]) -> None:
    result = _invoke(runner, "--config", str(write_config(PLAINTEXT_LISTENER)))

    assert result.exit_code == 2, result.output
    assert "[ warn ] initialization" in result.stdout
    assert "TLS is disabled in a listener config stanza." in result.stdout


@pytest.mark.slow
def test_failures_exit_one(runner: CliRunner, write_config: Callable[..., Path]) -> None:
    result = _invoke(runner, "--config", str(write_config(NO_STORAGE)))

    assert result.exit_code == 1, result.output
    assert "[failed] storage" in result.stdout
    assert "no storage stanza found in config" in result.stdout


def test_unparsable_config_renders_tree_and_exits_one(
    runner: CliRunner, write_config: Callable[..., Path]
) -> None:
    path = write_config("storage = inmem", name="server.txt")
    result = _invoke(runner, "--config", str(path))

    assert result.exit_code == 1
    assert "[failed] parse-config" in result.stdout
    assert "init-listeners" not in result.stdout


def test_missing_config_is_a_usage_error(runner: CliRunner) -> None:
    result = _invoke(runner)

    assert result.exit_code == 3
    assert "Must specify a configuration file using --config." in result.output
    assert "Results:" not in result.output


def test_nonexistent_config_path_is_a_usage_error(runner: CliRunner, tmp_path: Path) -> None:
    result = _invoke(runner, "--config", str(tmp_path / "missing.toml"))
    assert result.exit_code == 3


def test_unknown_format_is_a_usage_error(
    runner: CliRunner, write_config: Callable[..., Path]
) -> None:
    result = _invoke(runner, "--config", str(write_config(HEALTHY)), "--format", "yaml")
    assert result.exit_code == 3
    assert "Results:" not in result.output


def test_unknown_option_is_a_usage_error(runner: CliRunner) -> None:
    result = _invoke(runner, "--frobnicate")
    assert result.exit_code == 3


@pytest.mark.slow
def test_json_output(runner: CliRunner, write_config: Callable[..., Path]) -> None:
    result = _invoke(runner, "--config", str(write_config(PLAINTEXT_LISTENER)), "--format", "json")

    assert result.exit_code == 2, result.output
    assert not result.stdout.startswith("preflight v")
    payload = json.loads(result.stdout)
    assert list(payload) == [
        "name",
        "status",
        "messages",
        "advice",
        "started_at",
        "duration",
        "children",
    ]
    assert payload["name"] == "initialization"
    assert payload["status"] == "warn"
    statuses = {child["name"]: child["status"] for child in payload["children"]}
    assert statuses["storage"] == "ok"
    assert statuses["init-listeners"] == "warn"


@pytest.mark.slow
def test_skip_option(runner: CliRunner, write_config: Callable[..., Path]) -> None:
    result = _invoke(
        runner,
        "--config",
        str(write_config(PLAINTEXT_LISTENER)),
        "--format",
        "json",
        "--skip",
        "Init-Listeners,os-checks",
    )

    payload = json.loads(result.stdout)
    statuses = {child["name"]: child for child in payload["children"]}
    assert statuses["init-listeners"]["status"] == "skipped"
    assert statuses["init-listeners"]["messages"] == ["skipped by user request"]
    assert statuses["os-checks"]["status"] == "skipped"
    assert result.exit_code == 0, result.output


def test_serialization_failure_exits_four(
    runner: CliRunner, write_config: Callable[..., Path], monkeypatch: pytest.MonkeyPatch
) -> None:
    def _broken(report):
        raise SerializationError("error marshaling results: boom")

    monkeypatch.setattr(diagnose_command, "dumps", _broken)
    result = _invoke(
        runner, "--config", str(write_config("[storage]\ntype = 'inmem'")), "--format", "json"
    )

    assert result.exit_code == 4
    assert "error marshaling results: boom" in result.output


def test_debug_shows_durations(
    runner: CliRunner, write_config: Callable[..., Path]
) -> None:
    result = _invoke(
        runner,
        "--config",
        str(write_config("[storage]\ntype = 'inmem'")),
        "--debug",
        "--log-file",
        "-",
    )
    results = result.stdout.split("Results:", 1)[1]
    root_line = next(line for line in results.splitlines() if "initialization" in line)
    assert root_line.rstrip().endswith(")")


def test_config_from_environment(
    runner: CliRunner, write_config: Callable[..., Path], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PREFLIGHT_CONFIG", str(write_config("[storage]\ntype = 'inmem'")))
    result = runner.invoke(app, ["diagnose", "--format", "json"], color=False)

    payload = json.loads(result.stdout)
    statuses = {child["name"]: child["status"] for child in payload["children"]}
    assert statuses["parse-config"] == "ok"
    # no listener stanza
    assert result.exit_code == 2
