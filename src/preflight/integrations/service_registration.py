"""Service registration capability and the bundled ``static`` variant."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

from preflight.config.server import StanzaConfig
from preflight.infrastructure.errors import CheckError


@runtime_checkable
class ServiceRegistration(Protocol):
    kind: str

    def warnings(self) -> list[str]: ...


ServiceRegistrationFactory = Callable[[StanzaConfig], ServiceRegistration]


class StaticRegistration:
    """Advertises a fixed address; nothing is contacted."""

    kind = "static"

    def __init__(self, address: str | None, *, scheme: str | None = None) -> None:
        self.address = address
        self.scheme = scheme

    @classmethod
    def from_config(cls, stanza: StanzaConfig) -> StaticRegistration:
        raw = stanza.get("address")
        if raw is None:
            return cls(None)
        parts = urlsplit(str(raw))
        if parts.scheme not in {"http", "https"} or not parts.hostname:
            raise CheckError(f"service registration address {raw!r} is not an http(s) URL")
        return cls(str(raw), scheme=parts.scheme)

    def warnings(self) -> list[str]:
        notes: list[str] = []
        if self.address is None:
            notes.append("no address configured; the api address will be advertised")
        elif self.scheme == "http":
            notes.append("service registration advertises a plaintext http address")
        return notes


SERVICE_REGISTRATION_FACTORIES: dict[str, ServiceRegistrationFactory] = {
    StaticRegistration.kind: StaticRegistration.from_config,
}


def create_service_registration(
    stanza: StanzaConfig,
    factories: Mapping[str, ServiceRegistrationFactory] = SERVICE_REGISTRATION_FACTORIES,
) -> ServiceRegistration:
    factory = factories.get(stanza.type)
    if factory is None:
        raise CheckError(f"unknown service registration type {stanza.type}")
    return factory(stanza)


__all__ = [
    "SERVICE_REGISTRATION_FACTORIES",
    "ServiceRegistration",
    "ServiceRegistrationFactory",
    "StaticRegistration",
    "create_service_registration",
]
