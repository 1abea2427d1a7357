"""Offline startup diagnostics for a server configuration.

This module hosts the check battery run by ``preflight diagnose``. It only
depends on the diagnose engine and the collaborator capabilities, so the
workflow can be reused (and tested) without pulling in Typer or Rich.
"""

from __future__ import annotations

import os
import shutil
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final
from urllib.parse import urlsplit, urlunsplit

from preflight.config.constants import (
    API_ADDR_ENV,
    CLUSTER_ADDR_ENV,
    DEFAULT_LATENCY_WARNING_MS,
    DEFAULT_STORAGE_TIMEOUT_SECONDS,
    REDIRECT_ADDR_ENV,
)
from preflight.config.server import ServerConfig, load_server_config
from preflight.diagnose import (
    Carrier,
    fail,
    run_check,
    skipped,
    spot_error,
    spot_ok,
    spot_skipped,
    spot_warn,
    start_span,
    warn,
    with_timeout,
)
from preflight.infrastructure.errors import (
    BackendUninitializedError,
    CheckError,
    HarnessError,
)
from preflight.infrastructure.logging import BoundLogger, get_logger
from preflight.integrations import Collaborators
from preflight.integrations.listeners import Listener, build_tls_context, create_listeners
from preflight.integrations.seal import Seal, SealConfigError, SealSetup, setup_seals
from preflight.integrations.service_registration import (
    ServiceRegistration,
    create_service_registration,
)
from preflight.integrations.storage import StorageBackend, create_storage

try:
    import resource
except ImportError:  # pragma: no cover - not available on Windows
    resource = None  # type: ignore[assignment]

ConfigLoader = Callable[[Sequence[str | Path]], ServerConfig]

BACKEND_UNINITIALIZED_MSG: Final = (
    "diagnose cannot attempt this step because backend could not be initialized"
)
LATENCY_KEY_PREFIX: Final = "diagnose/latency/"
LATENCY_PAYLOAD: Final = b"preflight latency check"
MIN_OPEN_FILES: Final = 1024
MIN_FREE_DISK_BYTES: Final = 1 << 30
MIN_FREE_DISK_RATIO: Final = 0.10


@dataclass(frozen=True)
class DiagnoseOptions:
    storage_timeout: float = DEFAULT_STORAGE_TIMEOUT_SECONDS
    latency_warning_ms: float = DEFAULT_LATENCY_WARNING_MS
    end_to_end: bool = True


@dataclass
class CoreConfig:
    """What the server would hand its core, assembled as the checks pass."""

    backend: StorageBackend | None = None
    ha_backend: StorageBackend | None = None
    service_registration: ServiceRegistration | None = None
    barrier_seal: Seal | None = None
    unwrap_seal: Seal | None = None
    random_reader: Callable[[int], bytes] | None = None
    redirect_addr: str | None = None
    cluster_addr: str | None = None
    disable_clustering: bool = False
    listeners: list[Listener] = field(default_factory=list)


def _first_set(environ: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return None


def _parse_url(raw: str, label: str) -> tuple[str, str, int]:
    parts = urlsplit(raw)
    try:
        port = parts.port
    except ValueError as exc:
        raise HarnessError(f"failed to parse {label} {raw!r}: {exc}") from exc
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        raise HarnessError(f"failed to parse {label} {raw!r}: expected an http(s) URL")
    if port is None:
        port = 443 if parts.scheme == "https" else 80
    return parts.scheme, parts.hostname, port


def _format_netloc(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def determine_redirect_addr(
    config: ServerConfig, environ: Mapping[str, str]
) -> str | None:
    """Resolve the address clients are redirected to.

    The environment wins over ``api_addr`` in the configuration; without
    either, the first listener's address is advertised.
    """

    raw = _first_set(environ, API_ADDR_ENV, REDIRECT_ADDR_ENV) or config.api_addr
    if raw is None:
        if not config.listeners:
            return None
        listener = config.listeners[0]
        scheme = "http" if listener.tls_disable else "https"
        raw = f"{scheme}://{listener.address}"
    scheme, host, port = _parse_url(raw, "redirect address")
    return urlunsplit((scheme, _format_netloc(host, port), "", "", ""))


def find_cluster_addr(
    config: ServerConfig,
    environ: Mapping[str, str],
    *,
    redirect_addr: str | None,
    disable_clustering: bool,
) -> str | None:
    """Resolve the cluster address, derived from the redirect address when unset."""

    if disable_clustering:
        return None
    raw = _first_set(environ, CLUSTER_ADDR_ENV) or config.cluster_addr
    if raw is not None:
        _, host, port = _parse_url(raw, "cluster address")
        return urlunsplit(("https", _format_netloc(host, port), "", "", ""))
    if redirect_addr is None:
        return None
    _, host, port = _parse_url(redirect_addr, "redirect address")
    if port >= 65535:
        raise HarnessError(f"cannot derive a cluster port from redirect address {redirect_addr}")
    return urlunsplit(("https", _format_netloc(host, port + 1), "", "", ""))


class DiagnoseRunner:
    """Execute the offline diagnostics battery against a configuration."""

    def __init__(
        self,
        config_paths: Sequence[str | Path],
        *,
        collaborators: Collaborators | None = None,
        options: DiagnoseOptions | None = None,
        environ: Mapping[str, str] | None = None,
        load_config: ConfigLoader = load_server_config,
        logger: BoundLogger | None = None,
    ) -> None:
        self._config_paths = tuple(config_paths)
        self._collaborators = collaborators or Collaborators()
        self._options = options or DiagnoseOptions()
        self._environ = os.environ if environ is None else environ
        self._load_config = load_config
        self._logger = logger or get_logger("preflight.diagnostics")
        self.core = CoreConfig()

    def run(self, ctx: Carrier) -> HarnessError | None:
        """Run every check under ``ctx``.

        Returns the harness error that cut the run short, if any. Check
        failures are only recorded in the tree.
        """

        self.core = CoreConfig()
        self._logger.info("diagnose.start", sources=list(self._config_paths))
        self._os_checks(ctx)
        self._is_root(ctx)

        try:
            config = self._load_config(self._config_paths)
        except HarnessError as exc:
            self._logger.info("diagnose.abort", stage="parse-config", error=str(exc))
            spot_error(ctx, "parse-config", exc)
            return exc
        spot_ok(ctx, "parse-config")

        # seal finalizers run once every other check has finished
        with ExitStack() as finalizers:
            harness_error = self._run_checks(ctx, config, finalizers)
        self._logger.info("diagnose.complete", aborted=harness_error is not None)
        return harness_error

    def _run_checks(
        self, ctx: Carrier, config: ServerConfig, finalizers: ExitStack
    ) -> HarnessError | None:
        run_check(ctx, "storage", lambda sub: self._check_storage(sub, config))
        run_check(ctx, "service-discovery", lambda sub: self._check_service_discovery(sub, config))

        seal_setup = self._create_seal(ctx, config)
        if seal_setup is not None:
            for seal in seal_setup.seals:
                finalizers.callback(self._finalize_seal, ctx, seal)

        run_check(ctx, "setup-core", self._setup_core)
        run_check(ctx, "setup-ha-storage", lambda sub: self._setup_ha_storage(sub, config))

        try:
            self.core.redirect_addr = determine_redirect_addr(config, self._environ)
        except HarnessError as exc:
            spot_error(ctx, "determine-redirect", exc)
            return exc
        spot_ok(ctx, "determine-redirect")

        try:
            self.core.cluster_addr = find_cluster_addr(
                config,
                self._environ,
                redirect_addr=self.core.redirect_addr,
                disable_clustering=self.core.disable_clustering,
            )
        except HarnessError as exc:
            spot_error(ctx, "find-cluster-addr", exc)
            return exc
        spot_ok(ctx, "find-cluster-addr")

        run_check(ctx, "init-listeners", lambda sub: self._init_listeners(sub, config))
        return None

    # operating system

    def _os_checks(self, ctx: Carrier) -> None:
        run_check(ctx, "os-checks", self._check_os)

    def _check_os(self, ctx: Carrier) -> None:
        if resource is None:
            spot_skipped(ctx, "open-file-limits", "open file limits are not available here")
        else:
            soft, _ = resource.getrlimit(resource.RLIMIT_NOFILE)
            if soft != resource.RLIM_INFINITY and soft < MIN_OPEN_FILES:
                spot_warn(
                    ctx,
                    "open-file-limits",
                    f"open file limit is {soft}; at least {MIN_OPEN_FILES} is recommended",
                )
            else:
                spot_ok(ctx, "open-file-limits", f"open file limit is {soft}")

        usage = shutil.disk_usage(Path.cwd())
        free_ratio = usage.free / usage.total if usage.total else 0.0
        if usage.free < MIN_FREE_DISK_BYTES or free_ratio < MIN_FREE_DISK_RATIO:
            spot_warn(
                ctx,
                "disk-usage",
                f"only {usage.free // (1 << 20)} MiB ({free_ratio:.0%}) free on the working volume",
            )
        else:
            spot_ok(ctx, "disk-usage")

    def _is_root(self, ctx: Carrier) -> None:
        geteuid = getattr(os, "geteuid", None)
        if geteuid is None:
            return
        if geteuid() == 0:
            spot_warn(ctx, "is-root", "preflight is running as root")
        else:
            spot_ok(ctx, "is-root", "preflight is not running as root")

    # storage

    def _check_storage(self, ctx: Carrier, config: ServerConfig) -> None:
        if config.storage is None:
            raise CheckError("no storage stanza found in config")
        stanza = config.storage

        def _create(sub: Carrier) -> None:
            self.core.backend = create_storage(stanza, self._collaborators.storage)

        if run_check(ctx, "create-storage-backend", _create) is not None:
            return
        if self._options.end_to_end and self.core.backend is not None:
            run_check(
                ctx,
                "test-access-storage",
                with_timeout(self._options.storage_timeout, self._access_storage),
            )

    def _access_storage(self, ctx: Carrier) -> None:
        backend = self.core.backend
        if backend is None:
            raise BackendUninitializedError(BACKEND_UNINITIALIZED_MSG)
        key = LATENCY_KEY_PREFIX + str(uuid.uuid4())
        timings: dict[str, float] = {}

        started = time.perf_counter()
        backend.put(key, LATENCY_PAYLOAD)
        timings["write"] = time.perf_counter() - started

        started = time.perf_counter()
        value = backend.get(key)
        timings["read"] = time.perf_counter() - started
        if value != LATENCY_PAYLOAD:
            raise CheckError(f"storage returned unexpected data for {key}")

        started = time.perf_counter()
        backend.delete(key)
        timings["delete"] = time.perf_counter() - started

        operation, slowest = max(timings.items(), key=lambda item: item[1])
        slowest_ms = slowest * 1000
        if slowest_ms > self._options.latency_warning_ms:
            warn(
                ctx,
                f"latency above {self._options.latency_warning_ms:g}ms: "
                f"duration: {slowest_ms:.1f}ms, operation: {operation}",
            )

    # service registration

    def _check_service_discovery(self, ctx: Carrier, config: ServerConfig) -> None:
        stanza = config.service_registration
        if stanza is None:
            skipped(ctx, "no service registration configured")
            return

        def _create(sub: Carrier) -> None:
            registration = create_service_registration(
                stanza, self._collaborators.service_registration
            )
            self.core.service_registration = registration
            for note in registration.warnings():
                warn(sub, note)

        run_check(ctx, "create-service-registration", _create)

    # seals

    def _create_seal(self, ctx: Carrier, config: ServerConfig) -> SealSetup | None:
        with start_span(ctx, "create-seal") as seal_ctx:
            try:
                setup = setup_seals(config.seals, self._collaborators.seals)
            except SealConfigError:
                fail(seal_ctx, "seal could not be configured: seals may already be initialized")
                return None
            except CheckError as exc:
                fail(seal_ctx, str(exc))
                return None
            if setup.barrier is None:
                fail(
                    seal_ctx,
                    "could not create barrier seal; the seal configuration is likely incomplete",
                )
        self.core.barrier_seal = setup.barrier
        self.core.unwrap_seal = setup.unwrap
        return setup

    def _finalize_seal(self, ctx: Carrier, seal: Seal) -> None:
        with start_span(ctx, f"finalize-seal-{seal.barrier_type}") as finalize_ctx:
            try:
                seal.finalize()
            except Exception as exc:
                self._logger.debug("diagnose.seal.finalize_failed", error=repr(exc))
                fail(finalize_ctx, "error finalizing seal")

    # core

    def _setup_core(self, ctx: Carrier) -> BaseException | None:
        try:
            os.urandom(1)
        except NotImplementedError as exc:
            return spot_error(ctx, "init-randreader", CheckError(f"no secure random source: {exc}"))
        spot_ok(ctx, "init-randreader")
        self.core.random_reader = os.urandom

        if self.core.backend is None:
            raise BackendUninitializedError(BACKEND_UNINITIALIZED_MSG)
        return None

    def _setup_ha_storage(self, ctx: Carrier, config: ServerConfig) -> None:
        if self.core.backend is None:
            raise BackendUninitializedError(BACKEND_UNINITIALIZED_MSG)
        self.core.disable_clustering = config.disable_clustering

        def _create(sub: Carrier) -> None:
            stanza = config.ha_storage
            if stanza is None:
                skipped(sub, "no HA storage configured")
                return
            self.core.ha_backend = create_storage(stanza, self._collaborators.storage)

        run_check(ctx, "create-ha-storage-backend", _create)

    # listeners

    def _init_listeners(self, ctx: Carrier, config: ServerConfig) -> None:
        with ExitStack() as cleanup:

            def _create(sub: Carrier) -> None:
                if not config.listeners:
                    warn(sub, "no listener stanza found in config")
                    return
                listeners = create_listeners(config.listeners, self._collaborators.listeners)
                for listener in listeners:
                    cleanup.callback(listener.close)
                self.core.listeners = listeners

            if run_check(ctx, "create-listeners", _create) is not None:
                return
            run_check(ctx, "check-listener-tls", self._check_listener_tls)
        self.core.listeners = []

    def _check_listener_tls(self, ctx: Carrier) -> None:
        for listener in self.core.listeners:
            if listener.config.tls_disable:
                warn(ctx, "TLS is disabled in a listener config stanza.")
                continue
            if listener.config.tls_disable_client_certs:
                warn(ctx, "TLS for a listener is turned on without requiring client certs.")
            build_tls_context(listener.config)


def run_offline_diagnostics(
    ctx: Carrier,
    config_paths: Sequence[str | Path],
    collaborators: Collaborators | None = None,
    *,
    options: DiagnoseOptions | None = None,
) -> HarnessError | None:
    """Run the diagnostics battery; see :class:`DiagnoseRunner`."""

    runner = DiagnoseRunner(config_paths, collaborators=collaborators, options=options)
    return runner.run(ctx)


__all__ = [
    "BACKEND_UNINITIALIZED_MSG",
    "CoreConfig",
    "DiagnoseOptions",
    "DiagnoseRunner",
    "determine_redirect_addr",
    "find_cluster_addr",
    "run_offline_diagnostics",
]
