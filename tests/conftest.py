from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import pytest

from preflight.diagnose import Carrier, Session


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("preflight")
    group.addoption(
        "--skip-slow",
        action="store_true",
        dest="preflight_skip_slow",
        help="Deselect tests marked 'slow' (real deadlines and sockets).",
    )


def _is_cli_path(s: str) -> bool:
    s = s.replace("\\", "/")
    return s.startswith("tests/cli/") or "/tests/cli/" in s


def _mark_by_path(items: list[pytest.Item]) -> None:
    for item in items:
        node_str = str(getattr(item, "fspath", item.nodeid))
        marker = pytest.mark.cli if _is_cli_path(node_str) else pytest.mark.unit
        item.add_marker(marker)


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    _mark_by_path(items)

    if not config.getoption("preflight_skip_slow"):
        return

    deselect = [i for i in items if "slow" in i.keywords]
    if not deselect:
        return

    config.hook.pytest_deselected(items=deselect)
    items[:] = [i for i in items if i not in deselect]


@pytest.fixture(autouse=True)
def _clean_preflight_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("PREFLIGHT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def session() -> Session:
    return Session()


@pytest.fixture
def ctx(session: Session) -> Carrier:
    return Carrier.for_session(session)


@pytest.fixture
def quiet_host(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make the host level checks pass regardless of the machine running the tests."""

    monkeypatch.setattr(os, "geteuid", lambda: 1000, raising=False)
    monkeypatch.setattr(
        shutil,
        "disk_usage",
        lambda path: SimpleNamespace(total=100 << 30, used=10 << 30, free=90 << 30),
    )
    from preflight.application import diagnostics

    if diagnostics.resource is not None:
        monkeypatch.setattr(
            diagnostics.resource,
            "getrlimit",
            lambda which: (65536, 65536),
        )


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a TOML server configuration and return its path."""

    def _write(body: str, name: str = "server.toml") -> Path:
        path = tmp_path / name
        path.write_text(body.strip() + "\n", encoding="utf-8")
        return path

    return _write
