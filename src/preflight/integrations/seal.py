"""Seal capability, bundled seal variants and seal set resolution."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable, Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from preflight.config.constants import coerce_bool
from preflight.config.server import StanzaConfig
from preflight.infrastructure.errors import CheckError

SHAMIR = "shamir"
STATIC = "static"

STATIC_KEY_BYTES = 32


class SealConfigError(CheckError):
    """The combination of seal stanzas cannot be used together."""


@runtime_checkable
class Seal(Protocol):
    barrier_type: str

    def init(self) -> None: ...

    def finalize(self) -> None: ...


SealFactory = Callable[[StanzaConfig], Seal]


class ShamirSeal:
    barrier_type = SHAMIR

    def __init__(self) -> None:
        self.initialized = False

    @classmethod
    def from_config(cls, stanza: StanzaConfig | None = None) -> ShamirSeal:
        return cls()

    def init(self) -> None:
        self.initialized = True

    def finalize(self) -> None:
        self.initialized = False


class StaticSeal:
    """Seal wrapping the barrier key with a fixed, configured key."""

    barrier_type = STATIC

    def __init__(self, key: bytes, key_id: str) -> None:
        self._key = key
        self.key_id = key_id
        self.initialized = False

    @classmethod
    def from_config(cls, stanza: StanzaConfig) -> StaticSeal:
        raw_key = stanza.get("current_key")
        if not raw_key:
            raise CheckError("'current_key' must be set for the static seal")
        try:
            key = base64.b64decode(str(raw_key), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CheckError("static seal key is not valid base64") from exc
        if len(key) != STATIC_KEY_BYTES:
            raise CheckError(
                f"static seal key must be {STATIC_KEY_BYTES} bytes, got {len(key)}"
            )
        return cls(key, str(stanza.get("current_key_id") or ""))

    def init(self) -> None:
        self.initialized = True

    def finalize(self) -> None:
        self.initialized = False


SEAL_FACTORIES: dict[str, SealFactory] = {
    SHAMIR: ShamirSeal.from_config,
    STATIC: StaticSeal.from_config,
}


@dataclass(frozen=True)
class SealSetup:
    barrier: Seal | None
    unwrap: Seal | None
    seals: tuple[Seal, ...]


def setup_seals(
    stanzas: Sequence[StanzaConfig],
    factories: Mapping[str, SealFactory] = SEAL_FACTORIES,
) -> SealSetup:
    """Resolve the configured seal stanzas into barrier and unwrap seals.

    No stanza means the default Shamir seal. A stanza with ``disabled = true``
    is a seal being migrated away from and becomes the unwrap seal. At most
    one enabled and one disabled seal may be configured.
    """

    if not stanzas:
        seal = ShamirSeal()
        seal.init()
        return SealSetup(barrier=seal, unwrap=None, seals=(seal,))

    enabled = [stanza for stanza in stanzas if not coerce_bool(stanza.get("disabled"))]
    disabled = [stanza for stanza in stanzas if coerce_bool(stanza.get("disabled"))]
    if len(enabled) > 1 or len(disabled) > 1:
        raise SealConfigError("seals may already be initialized")

    built: list[Seal] = []
    # seals initialized before a later one fails are finalized again
    with ExitStack() as cleanup:

        def _init(seal: Seal) -> Seal:
            seal.init()
            built.append(seal)
            cleanup.callback(seal.finalize)
            return seal

        def _build(stanza: StanzaConfig) -> Seal:
            factory = factories.get(stanza.type)
            if factory is None:
                raise CheckError(f"unknown seal type {stanza.type}")
            return _init(factory(stanza))

        barrier = _build(enabled[0]) if enabled else None
        unwrap = _build(disabled[0]) if disabled else None

        if barrier is None and unwrap is not None:
            # migrating off an auto seal back to shamir
            barrier = _init(ShamirSeal())
        cleanup.pop_all()
    return SealSetup(barrier=barrier, unwrap=unwrap, seals=tuple(built))


__all__ = [
    "SEAL_FACTORIES",
    "Seal",
    "SealConfigError",
    "SealFactory",
    "SealSetup",
    "ShamirSeal",
    "StaticSeal",
    "setup_seals",
]
