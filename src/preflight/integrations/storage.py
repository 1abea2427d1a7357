"""Storage backend capability and the bundled backend variants."""

from __future__ import annotations

import hashlib
import os
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

from preflight.config.server import StanzaConfig
from preflight.infrastructure.errors import CheckError


@runtime_checkable
class StorageBackend(Protocol):
    kind: str

    def put(self, key: str, value: bytes) -> None: ...

    def get(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> None: ...


StorageFactory = Callable[[StanzaConfig], StorageBackend]


class InmemBackend:
    kind = "inmem"

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, stanza: StanzaConfig) -> InmemBackend:
        return cls()

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileBackend:
    """Stores each key as one file under ``path``, named by the key's digest."""

    kind = "file"

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def from_config(cls, stanza: StanzaConfig) -> FileBackend:
        raw_path = stanza.get("path")
        if not raw_path:
            raise CheckError("'path' must be set for the file storage backend")
        path = Path(str(raw_path)).expanduser()
        if path.exists() and not path.is_dir():
            raise CheckError(f"storage path {path} exists and is not a directory")
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CheckError(f"cannot create storage path {path}: {exc.strerror or exc}") from exc
        if not os.access(path, os.R_OK | os.W_OK | os.X_OK):
            raise CheckError(f"storage path {path} is not readable and writable")
        return cls(path)

    def _entry(self, key: str) -> Path:
        return self.path / hashlib.sha256(key.encode("utf-8")).hexdigest()

    def put(self, key: str, value: bytes) -> None:
        self._entry(key).write_bytes(value)

    def get(self, key: str) -> bytes | None:
        entry = self._entry(key)
        if not entry.exists():
            return None
        return entry.read_bytes()

    def delete(self, key: str) -> None:
        self._entry(key).unlink(missing_ok=True)


STORAGE_FACTORIES: dict[str, StorageFactory] = {
    InmemBackend.kind: InmemBackend.from_config,
    FileBackend.kind: FileBackend.from_config,
}


def create_storage(
    stanza: StanzaConfig,
    factories: Mapping[str, StorageFactory] = STORAGE_FACTORIES,
) -> StorageBackend:
    factory = factories.get(stanza.type)
    if factory is None:
        raise CheckError(f"unknown storage type {stanza.type}")
    return factory(stanza)


__all__ = [
    "FileBackend",
    "InmemBackend",
    "STORAGE_FACTORIES",
    "StorageBackend",
    "StorageFactory",
    "create_storage",
]
