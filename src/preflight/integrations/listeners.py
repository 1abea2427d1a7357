"""Network listener capability: binding configured addresses and TLS setup."""

from __future__ import annotations

import socket
import ssl
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from preflight.config.server import ListenerConfig
from preflight.infrastructure.errors import CheckError

TLS_VERSIONS: Final[dict[str, ssl.TLSVersion]] = {
    "tls12": ssl.TLSVersion.TLSv1_2,
    "tls13": ssl.TLSVersion.TLSv1_3,
}


@dataclass
class Listener:
    config: ListenerConfig
    sock: socket.socket

    @property
    def bound_address(self) -> tuple[str, int]:
        host, port = self.sock.getsockname()[:2]
        return host, port

    def close(self) -> None:
        self.sock.close()


ListenerFactory = Callable[[ListenerConfig], Listener]


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (``[v6]:port`` for IPv6) into its parts."""

    host, sep, port_text = address.rpartition(":")
    if not sep or not port_text.isdigit():
        raise CheckError(f"invalid listener address {address!r}: expected host:port")
    port = int(port_text)
    if not 0 <= port <= 65535:
        raise CheckError(f"invalid listener address {address!r}: port out of range")
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def tcp_listener(config: ListenerConfig) -> Listener:
    host, port = split_address(config.address)
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
    except socket.gaierror as exc:
        raise CheckError(f"error resolving listener address {config.address}: {exc}") from exc
    family, kind, proto, _, sockaddr = infos[0]
    sock = socket.socket(family, kind, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen()
    except OSError as exc:
        sock.close()
        raise CheckError(
            f"error initializing listener of type {config.type}: "
            f"{exc.strerror or exc} ({config.address})"
        ) from exc
    return Listener(config=config, sock=sock)


LISTENER_FACTORIES: dict[str, ListenerFactory] = {"tcp": tcp_listener}


def create_listeners(
    configs: Sequence[ListenerConfig],
    factories: Mapping[str, ListenerFactory] = LISTENER_FACTORIES,
) -> list[Listener]:
    """Bind every configured listener, closing the ones already bound on error."""

    listeners: list[Listener] = []
    try:
        for config in configs:
            factory = factories.get(config.type)
            if factory is None:
                raise CheckError(f"unknown listener type {config.type}")
            listeners.append(factory(config))
    except BaseException:
        for listener in listeners:
            listener.close()
        raise
    return listeners


def _require_file(path: str | None, label: str) -> str:
    if not path:
        raise CheckError(f"{label} must be set when TLS is enabled")
    if not Path(path).expanduser().is_file():
        raise CheckError(f"{label} {path} does not exist")
    return str(Path(path).expanduser())


def build_tls_context(config: ListenerConfig) -> ssl.SSLContext:
    """Load the listener's certificate, key and client CA into a server context."""

    cert_file = _require_file(config.tls_cert_file, "tls_cert_file")
    key_file = _require_file(config.tls_key_file, "tls_key_file")
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    if config.tls_min_version:
        version = TLS_VERSIONS.get(config.tls_min_version.lower())
        if version is None:
            raise CheckError(
                f"unsupported tls_min_version {config.tls_min_version!r}; "
                f"expected one of {', '.join(sorted(TLS_VERSIONS))}"
            )
        context.minimum_version = version
    try:
        context.load_cert_chain(cert_file, key_file)
    except (ssl.SSLError, OSError) as exc:
        raise CheckError(f"error loading TLS certificate and key: {exc}") from exc
    if config.tls_client_ca_file:
        ca_file = _require_file(config.tls_client_ca_file, "tls_client_ca_file")
        try:
            context.load_verify_locations(cafile=ca_file)
        except (ssl.SSLError, OSError) as exc:
            raise CheckError(f"error loading client CA file: {exc}") from exc
    if config.tls_require_client_cert:
        context.verify_mode = ssl.CERT_REQUIRED
    return context


__all__ = [
    "LISTENER_FACTORIES",
    "Listener",
    "ListenerFactory",
    "build_tls_context",
    "create_listeners",
    "split_address",
    "tcp_listener",
]
