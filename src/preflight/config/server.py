"""Loading and merging of the server configuration under diagnosis.

Configuration sources are files or directories. Directories expand to the
``.toml``, ``.json``, ``.yaml`` and ``.yml`` files they contain, in sorted
order. Sources are merged left to right by Dynaconf, so later files override
scalar keys of earlier ones and tables are merged key by key.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from dynaconf import Dynaconf

from preflight.config.constants import CONFIG_SUFFIXES, ENVVAR_PREFIX, coerce_bool
from preflight.infrastructure.errors import ConfigError

SERVER_ENVVAR_PREFIX = f"{ENVVAR_PREFIX}_SERVER"


@dataclass(frozen=True)
class StanzaConfig:
    """A typed configuration block such as ``storage`` or ``seal``."""

    type: str
    config: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    disable_clustering: bool = False

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)


@dataclass(frozen=True)
class ListenerConfig:
    type: str
    address: str
    tls_disable: bool = False
    tls_cert_file: str | None = None
    tls_key_file: str | None = None
    tls_client_ca_file: str | None = None
    tls_require_client_cert: bool = False
    tls_disable_client_certs: bool = False
    tls_min_version: str | None = None


@dataclass(frozen=True)
class ServerConfig:
    storage: StanzaConfig | None = None
    ha_storage: StanzaConfig | None = None
    service_registration: StanzaConfig | None = None
    seals: tuple[StanzaConfig, ...] = ()
    listeners: tuple[ListenerConfig, ...] = ()
    api_addr: str | None = None
    cluster_addr: str | None = None
    disable_clustering: bool = False
    sources: tuple[str, ...] = ()


def expand_config_paths(paths: Iterable[str | Path]) -> list[Path]:
    """Resolve files and directories into an ordered list of config files."""

    files: list[Path] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            files.extend(
                sorted(
                    candidate
                    for candidate in path.iterdir()
                    if candidate.is_file() and candidate.suffix.lower() in CONFIG_SUFFIXES
                )
            )
            continue
        if not path.exists():
            raise ConfigError(
                f"configuration path does not exist: {path}", context={"path": str(path)}
            )
        if path.suffix.lower() not in CONFIG_SUFFIXES:
            raise ConfigError(
                f"unsupported configuration file type: {path.name}",
                context={"path": str(path)},
            )
        files.append(path)
    return files


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key).lower(): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _as_blocks(raw: Any, section: str) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        return [dict(raw)]
    if isinstance(raw, list) and all(isinstance(item, Mapping) for item in raw):
        return [dict(item) for item in raw]
    raise ConfigError(f"'{section}' must be a table or a list of tables")


def _parse_stanza(raw: Mapping[str, Any], section: str) -> StanzaConfig:
    block = dict(raw)
    kind = block.pop("type", None)
    if not isinstance(kind, str) or not kind.strip():
        raise ConfigError(f"'{section}' stanza requires a 'type'", context={"section": section})
    disable_clustering = coerce_bool(block.pop("disable_clustering", None), default=False)
    return StanzaConfig(
        type=kind.strip().lower(),
        config=MappingProxyType(block),
        disable_clustering=disable_clustering,
    )


def _optional_stanza(raw: Any, section: str) -> StanzaConfig | None:
    blocks = _as_blocks(raw, section)
    if not blocks:
        return None
    if len(blocks) > 1:
        raise ConfigError(f"only one '{section}' stanza may be configured")
    return _parse_stanza(blocks[0], section)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    candidate = str(value).strip()
    return candidate or None


def _parse_listener(raw: Mapping[str, Any]) -> ListenerConfig:
    block = dict(raw)
    kind = _optional_str(block.get("type")) or "tcp"
    address = _optional_str(block.get("address"))
    if address is None:
        raise ConfigError("'listener' stanza requires an 'address'")
    return ListenerConfig(
        type=kind.lower(),
        address=address,
        tls_disable=coerce_bool(block.get("tls_disable"), default=False),
        tls_cert_file=_optional_str(block.get("tls_cert_file")),
        tls_key_file=_optional_str(block.get("tls_key_file")),
        tls_client_ca_file=_optional_str(block.get("tls_client_ca_file")),
        tls_require_client_cert=coerce_bool(
            block.get("tls_require_and_verify_client_cert"), default=False
        ),
        tls_disable_client_certs=coerce_bool(
            block.get("tls_disable_client_certs"), default=False
        ),
        tls_min_version=_optional_str(block.get("tls_min_version")),
    )


def parse_server_config(data: Mapping[str, Any], *, sources: Sequence[str] = ()) -> ServerConfig:
    """Build a :class:`ServerConfig` from an already merged mapping."""

    plain = _plain(data)
    ha_storage = _optional_stanza(plain.get("ha_storage"), "ha_storage")
    return ServerConfig(
        storage=_optional_stanza(plain.get("storage"), "storage"),
        ha_storage=ha_storage,
        service_registration=_optional_stanza(
            plain.get("service_registration"), "service_registration"
        ),
        seals=tuple(_parse_stanza(block, "seal") for block in _as_blocks(plain.get("seal"), "seal")),
        listeners=tuple(
            _parse_listener(block) for block in _as_blocks(plain.get("listener"), "listener")
        ),
        api_addr=_optional_str(plain.get("api_addr")),
        cluster_addr=_optional_str(plain.get("cluster_addr")),
        disable_clustering=coerce_bool(plain.get("disable_clustering"), default=False)
        or bool(ha_storage and ha_storage.disable_clustering),
        sources=tuple(sources),
    )


def load_server_config(paths: Sequence[str | Path]) -> ServerConfig:
    """Merge the configuration sources in ``paths`` into a :class:`ServerConfig`.

    Raises :class:`ConfigError` when no source is given, a source is missing,
    or a source cannot be parsed.
    """

    if not paths:
        raise ConfigError("at least one configuration source is required")
    files = expand_config_paths(paths)
    if not files:
        raise ConfigError("no configuration files found in the given paths")

    settings = Dynaconf(
        settings_files=[str(path) for path in files],
        envvar_prefix=SERVER_ENVVAR_PREFIX,
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )
    try:
        merged = settings.as_dict()
    except Exception as exc:
        raise ConfigError(
            f"error parsing configuration: {exc}",
            context={"sources": [str(path) for path in files]},
        ) from exc
    return parse_server_config(merged, sources=[str(path) for path in files])


__all__ = [
    "ListenerConfig",
    "ServerConfig",
    "StanzaConfig",
    "expand_config_paths",
    "load_server_config",
    "parse_server_config",
]
