from __future__ import annotations

from pathlib import Path

import pytest
import typer

from preflight.cli import helpers
from preflight.cli import options as cli_options


def _invocation(**overrides):
    values = {
        "configs": [Path("a.toml")],
        "skip": None,
        "debug": None,
        "output_format": None,
        "log_level": None,
        "log_format": None,
        "log_file": None,
        "log_max_bytes": None,
        "log_backup_count": None,
    }
    values.update(overrides)
    return helpers.build_invocation(**values)


def test_build_invocation_normalizes_values() -> None:
    invocation = _invocation(
        skip=["storage, os-checks", " ", "is-root"],
        output_format=" JSON ",
        log_level="debug",
        log_format="Text",
    )
    assert invocation.skip == ("storage", "os-checks", "is-root")
    assert invocation.output_format == "json"
    assert invocation.logging.level == "DEBUG"
    assert invocation.logging.format == "text"


@pytest.mark.parametrize(
    ("field", "value"),
    [("output_format", "xml"), ("log_format", "yaml"), ("log_level", "chatty")],
)
def test_build_invocation_rejects_bad_values(field: str, value: str) -> None:
    with pytest.raises(typer.BadParameter):
        _invocation(**{field: value})


def test_logging_inputs_absent_without_overrides() -> None:
    assert helpers.logging_inputs(helpers.LoggingOverrides()) is None


@pytest.mark.parametrize("value", ["-", "none", " STDERR "])
def test_log_file_disabled_markers(value: str) -> None:
    inputs = helpers.logging_inputs(helpers.LoggingOverrides(file_path=value))
    assert inputs is not None
    assert inputs.file_path == ""


def test_log_file_path_passes_through() -> None:
    inputs = helpers.logging_inputs(helpers.LoggingOverrides(file_path="/var/log/preflight.log"))
    assert inputs is not None
    assert inputs.file_path == "/var/log/preflight.log"


def test_debug_invocation_lowers_log_level() -> None:
    diagnose_settings, logging_settings = helpers.resolve_invocation_settings(
        _invocation(debug=True)
    )
    assert diagnose_settings.debug is True
    assert logging_settings.level_name == "DEBUG"


def test_clean_string() -> None:
    assert cli_options.clean_string(None) is None
    assert cli_options.clean_string("   ") is None
    assert cli_options.clean_string(" x ") == "x"
