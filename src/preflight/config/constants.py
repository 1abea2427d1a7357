"""Common constants and boolean coercion helpers."""

from __future__ import annotations

TRUTHY_STRINGS = {"1", "true", "yes", "on"}
FALSY_STRINGS = {"0", "false", "no", "off"}

ENVVAR_PREFIX = "PREFLIGHT"

FORMAT_HUMAN = "human"
FORMAT_JSON = "json"

ROOT_SPAN_NAME = "initialization"

CONFIG_SUFFIXES = (".toml", ".json", ".yaml", ".yml")

DEFAULT_STORAGE_TIMEOUT_SECONDS = 30.0
DEFAULT_LATENCY_WARNING_MS = 100.0

API_ADDR_ENV = "PREFLIGHT_API_ADDR"
CLUSTER_ADDR_ENV = "PREFLIGHT_CLUSTER_ADDR"
REDIRECT_ADDR_ENV = "PREFLIGHT_REDIRECT_ADDR"


def coerce_bool(value: object | None, *, default: bool = False) -> bool:
    """Convert common truthy/falsey string markers into booleans.

    Falls back to ``default`` when the value is ``None`` or ambiguous.
    """

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        if normalized in TRUTHY_STRINGS:
            return True
        if normalized in FALSY_STRINGS:
            return False
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    return default


__all__ = [
    "API_ADDR_ENV",
    "CLUSTER_ADDR_ENV",
    "CONFIG_SUFFIXES",
    "DEFAULT_LATENCY_WARNING_MS",
    "DEFAULT_STORAGE_TIMEOUT_SECONDS",
    "ENVVAR_PREFIX",
    "FALSY_STRINGS",
    "FORMAT_HUMAN",
    "FORMAT_JSON",
    "REDIRECT_ADDR_ENV",
    "ROOT_SPAN_NAME",
    "TRUTHY_STRINGS",
    "coerce_bool",
]
