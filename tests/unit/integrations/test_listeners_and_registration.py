from __future__ import annotations

import socket
import ssl
from pathlib import Path
from types import MappingProxyType

import pytest

from preflight.config.server import ListenerConfig, StanzaConfig
from preflight.infrastructure.errors import CheckError
from preflight.integrations.listeners import (
    Listener,
    build_tls_context,
    create_listeners,
    split_address,
    tcp_listener,
)
from preflight.integrations.service_registration import (
    StaticRegistration,
    create_service_registration,
)


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("127.0.0.1:8200", ("127.0.0.1", 8200)),
        (":8200", ("0.0.0.0", 8200)),
        ("[::1]:8200", ("::1", 8200)),
    ],
)
def test_split_address(address: str, expected: tuple[str, int]) -> None:
    assert split_address(address) == expected


@pytest.mark.parametrize("address", ["localhost", "host:http", "host:70000"])
def test_split_address_rejects_malformed(address: str) -> None:
    with pytest.raises(CheckError):
        split_address(address)


@pytest.mark.slow
def test_tcp_listener_binds_and_closes() -> None:
    (listener,) = create_listeners([ListenerConfig(type="tcp", address="127.0.0.1:0")])
    host, port = listener.bound_address
    assert host == "127.0.0.1" and port > 0
    listener.close()
    assert listener.sock.fileno() == -1


@pytest.mark.slow
def test_port_in_use_fails_and_releases_earlier_listeners() -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen()
    taken = blocker.getsockname()[1]
    created: list[Listener] = []

    def _tracking(config: ListenerConfig) -> Listener:
        listener = tcp_listener(config)
        created.append(listener)
        return listener

    try:
        with pytest.raises(CheckError, match="error initializing listener"):
            create_listeners(
                [
                    ListenerConfig(type="tcp", address="127.0.0.1:0"),
                    ListenerConfig(type="tcp", address=f"127.0.0.1:{taken}"),
                ],
                {"tcp": _tracking},
            )
    finally:
        blocker.close()
    assert len(created) == 1
    assert created[0].sock.fileno() == -1


def test_unknown_listener_type() -> None:
    with pytest.raises(CheckError, match="unknown listener type unix"):
        create_listeners([ListenerConfig(type="unix", address="/tmp/sock:1")])


def test_tls_requires_cert_and_key(tmp_path: Path) -> None:
    with pytest.raises(CheckError, match="tls_cert_file must be set"):
        build_tls_context(ListenerConfig(type="tcp", address="127.0.0.1:0"))
    with pytest.raises(CheckError, match="does not exist"):
        build_tls_context(
            ListenerConfig(
                type="tcp",
                address="127.0.0.1:0",
                tls_cert_file=str(tmp_path / "cert.pem"),
                tls_key_file=str(tmp_path / "key.pem"),
            )
        )


def test_tls_rejects_unreadable_pem(tmp_path: Path) -> None:
    cert = tmp_path / "cert.pem"
    key = tmp_path / "key.pem"
    cert.write_text("not a certificate", encoding="utf-8")
    key.write_text("not a key", encoding="utf-8")
    config = ListenerConfig(
        type="tcp", address="127.0.0.1:0", tls_cert_file=str(cert), tls_key_file=str(key)
    )
    with pytest.raises(CheckError, match="error loading TLS certificate and key"):
        build_tls_context(config)


def test_tls_rejects_unknown_min_version(tmp_path: Path) -> None:
    cert = tmp_path / "cert.pem"
    key = tmp_path / "key.pem"
    cert.write_text("x", encoding="utf-8")
    key.write_text("x", encoding="utf-8")
    config = ListenerConfig(
        type="tcp",
        address="127.0.0.1:0",
        tls_cert_file=str(cert),
        tls_key_file=str(key),
        tls_min_version="ssl3",
    )
    with pytest.raises(CheckError, match="unsupported tls_min_version"):
        build_tls_context(config)


def test_tls_context_loads_chain(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cert = tmp_path / "cert.pem"
    key = tmp_path / "key.pem"
    ca = tmp_path / "ca.pem"
    for path in (cert, key, ca):
        path.write_text("pem", encoding="utf-8")
    loaded: list[tuple[str, ...]] = []
    monkeypatch.setattr(
        ssl.SSLContext, "load_cert_chain", lambda self, c, k: loaded.append((c, k))
    )
    monkeypatch.setattr(
        ssl.SSLContext, "load_verify_locations", lambda self, cafile: loaded.append((cafile,))
    )
    context = build_tls_context(
        ListenerConfig(
            type="tcp",
            address="127.0.0.1:0",
            tls_cert_file=str(cert),
            tls_key_file=str(key),
            tls_client_ca_file=str(ca),
            tls_require_client_cert=True,
            tls_min_version="tls13",
        )
    )
    assert context.verify_mode is ssl.CERT_REQUIRED
    assert context.minimum_version is ssl.TLSVersion.TLSv1_3
    assert loaded == [(str(cert), str(key)), (str(ca),)]


def _registration(**config: object) -> StanzaConfig:
    return StanzaConfig(type="static", config=MappingProxyType(dict(config)))


def test_static_registration_warnings() -> None:
    plain = create_service_registration(_registration(address="http://10.0.0.1:8200"))
    assert isinstance(plain, StaticRegistration)
    assert plain.warnings() == ["service registration advertises a plaintext http address"]
    secure = create_service_registration(_registration(address="https://10.0.0.1:8200"))
    assert secure.warnings() == []
    assert create_service_registration(_registration()).warnings()


def test_static_registration_rejects_non_urls() -> None:
    with pytest.raises(CheckError, match="is not an http"):
        create_service_registration(_registration(address="10.0.0.1:8200"))


def test_unknown_registration_type() -> None:
    with pytest.raises(CheckError, match="unknown service registration type consul"):
        create_service_registration(StanzaConfig(type="consul"))
