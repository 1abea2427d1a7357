"""Backend capabilities consumed by the diagnostics workflow.

Each capability (storage, seal, service registration, listener) comes in
named variants registered in a factory mapping; :class:`Collaborators` bundles
the mappings a run uses so tests and embedders can swap variants in.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from preflight.integrations.listeners import LISTENER_FACTORIES, ListenerFactory
from preflight.integrations.seal import SEAL_FACTORIES, SealFactory
from preflight.integrations.service_registration import (
    SERVICE_REGISTRATION_FACTORIES,
    ServiceRegistrationFactory,
)
from preflight.integrations.storage import STORAGE_FACTORIES, StorageFactory


@dataclass(frozen=True)
class Collaborators:
    storage: Mapping[str, StorageFactory] = field(
        default_factory=lambda: dict(STORAGE_FACTORIES)
    )
    seals: Mapping[str, SealFactory] = field(default_factory=lambda: dict(SEAL_FACTORIES))
    service_registration: Mapping[str, ServiceRegistrationFactory] = field(
        default_factory=lambda: dict(SERVICE_REGISTRATION_FACTORIES)
    )
    listeners: Mapping[str, ListenerFactory] = field(
        default_factory=lambda: dict(LISTENER_FACTORIES)
    )


__all__ = ["Collaborators"]
