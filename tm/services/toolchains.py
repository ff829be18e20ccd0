"""Toolchain service: resolve, install and locate tools in one store.

Wires the host configuration, HTTP client, plugin gateway, catalogs,
resolver, install pipeline and version detector for a store root. The CLI
is a thin layer over this class.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from tm.core.config import HostConfig, load_config_or_default
from tm.core.errors import ToolError
from tm.core.result import Err, Ok, Result
from tm.core.store import Store, default_store_root
from tm.detect.detector import DetectedVersion, VersionDetector
from tm.install.pipeline import InstallPipeline, InstallReport
from tm.install.state import InstalledVersion, load_manifest
from tm.net.http import RealHttpClient
from tm.plugin.gateway import PluginGateway
from tm.plugin.loader import PluginLoader
from tm.plugins import BUILTIN_PLUGINS
from tm.versions.catalog import CatalogStore, VersionCatalog
from tm.versions.resolver import VersionResolver
from tm.versions.spec import LATEST, Exact, parse_exact

if TYPE_CHECKING:
    from tm.core.config import ConfigError
    from tm.install.cancel import CancelToken
    from tm.net.http import HttpClient
    from tm.output.console import ConsoleProtocol
    from tm.platform.detection import HostEnvironment
    from tm.plugin.pdk import Plugin

__all__ = ["InstallRequest", "ToolchainService"]


@dataclass(frozen=True, slots=True)
class InstallRequest:
    """One tool to install; requested None means "whatever is pinned"."""

    tool_id: str
    requested: str | None = None

    @classmethod
    def parse(cls, text: str) -> InstallRequest:
        """Parse "zig" or "zig@0.13.0"."""
        tool_id, sep, requested = text.strip().partition("@")
        return cls(tool_id=tool_id, requested=requested.strip() if sep else None)

    def __str__(self) -> str:
        return self.tool_id if self.requested is None else f"{self.tool_id}@{self.requested}"


class ToolchainService:
    def __init__(
        self,
        *,
        store: Store,
        config: HostConfig,
        console: ConsoleProtocol,
        http: HttpClient | None = None,
        host: HostEnvironment | None = None,
        environ: Mapping[str, str] | None = None,
        plugins: Mapping[str, type[Plugin]] | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._console = console
        self._http = http or RealHttpClient(timeout=config.http_timeout)

        loader = PluginLoader(BUILTIN_PLUGINS if plugins is None else plugins, config.plugins)
        self._gateway = PluginGateway(
            loader=loader,
            store=store,
            http=self._http,
            config=config,
            host=host,
            console=console,
            environ=environ,
        )
        self._catalogs = CatalogStore(
            self._gateway, store, ttl=config.catalog_ttl, console=console
        )
        self._resolver = VersionResolver(
            self._gateway, self._catalogs, allow_unlisted=config.allow_unlisted_versions
        )
        self._pipeline = InstallPipeline(
            gateway=self._gateway,
            store=store,
            http=self._http,
            console=console,
            environ=environ,
        )
        self._detector = VersionDetector(self._gateway, console)
        self._loader = loader

    @classmethod
    def open(
        cls,
        root: Path | None,
        *,
        console: ConsoleProtocol,
        http: HttpClient | None = None,
    ) -> Result[ToolchainService, ConfigError]:
        """Service for a store root (default: $TM_HOME or ~/.tm), reading its config.toml."""
        store = Store(root if root is not None else default_store_root())
        config = load_config_or_default(store.config_path)
        if isinstance(config, Err):
            return config
        return Ok(cls(store=store, config=config.value, console=console, http=http))

    def __enter__(self) -> ToolchainService:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._gateway.close()

    @property
    def store(self) -> Store:
        return self._store

    @property
    def config(self) -> HostConfig:
        return self._config

    @property
    def gateway(self) -> PluginGateway:
        return self._gateway

    def known_tools(self) -> list[str]:
        return self._loader.known_tools()

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    def versions(self, tool_id: str) -> Result[VersionCatalog, ToolError]:
        """The tool's catalog (loaded at most once per process)."""
        return self._catalogs.get(tool_id)

    def installed_versions(self, tool_id: str) -> list[InstalledVersion]:
        entries = load_manifest(self._store, tool_id)
        return [entries[key] for key in sorted(entries)]

    def detect(self, tool_id: str, start_dir: Path) -> Result[DetectedVersion | None, ToolError]:
        return self._detector.detect(tool_id, start_dir)

    def pinned_request(self, tool_id: str, start_dir: Path | None = None) -> Result[str, ToolError]:
        """Version request to use when none is given.

        Order: a version file found from start_dir, the plugin's
        default_version, then "latest".
        """
        if start_dir is not None:
            detected = self.detect(tool_id, start_dir)
            if isinstance(detected, Err):
                return detected
            if detected.value is not None:
                return Ok(detected.value.raw)

        registered = self._gateway.load(tool_id)
        if isinstance(registered, Err):
            return registered
        return Ok(registered.value.default_version or LATEST)

    def resolve(
        self, tool_id: str, requested: str | None = None, *, start_dir: Path | None = None
    ) -> Result[Exact, ToolError]:
        if requested is None:
            pinned = self.pinned_request(tool_id, start_dir)
            if isinstance(pinned, Err):
                return pinned
            requested = pinned.value
        return self._resolver.resolve(tool_id, requested)

    # -------------------------------------------------------------------------
    # Install
    # -------------------------------------------------------------------------

    def install(
        self,
        tool_id: str,
        requested: str | None = None,
        *,
        force: bool = False,
        cancel: CancelToken | None = None,
        start_dir: Path | None = None,
    ) -> Result[InstallReport, ToolError]:
        """Resolve a request and run the install pipeline for it."""
        resolved = self.resolve(tool_id, requested, start_dir=start_dir)
        if isinstance(resolved, Err):
            return resolved
        report = self._pipeline.install(tool_id, resolved.value, force=force, cancel=cancel)
        return report.to_result()

    def install_many(
        self,
        requests: Sequence[InstallRequest],
        *,
        force: bool = False,
        cancel: CancelToken | None = None,
        start_dir: Path | None = None,
    ) -> list[tuple[InstallRequest, Result[InstallReport, ToolError]]]:
        """Install several tools concurrently.

        Requests for different tools run in parallel; requests for the same
        tool run one after another. Results come back in request order and
        one failure never stops the others.
        """
        groups: dict[str, list[int]] = {}
        for index, request in enumerate(requests):
            groups.setdefault(request.tool_id, []).append(index)

        results: list[Result[InstallReport, ToolError] | None] = [None] * len(requests)

        def run_group(indices: Iterable[int]) -> None:
            for index in indices:
                request = requests[index]
                try:
                    results[index] = self.install(
                        request.tool_id,
                        request.requested,
                        force=force,
                        cancel=cancel,
                        start_dir=start_dir,
                    )
                except OSError as e:
                    results[index] = Err(
                        ToolError(kind="store_error", tool_id=request.tool_id, message=str(e))
                    )

        if groups:
            workers = max(1, min(self._config.max_workers, len(groups)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tm-install") as pool:
                futures = [pool.submit(run_group, indices) for indices in groups.values()]
                try:
                    for future in futures:
                        future.result()
                except KeyboardInterrupt:
                    if cancel is not None:
                        cancel.cancel()
                    raise

        return [
            (request, result)
            for request, result in zip(requests, results)
            if result is not None
        ]

    def uninstall(self, tool_id: str, version: str) -> Result[bool, ToolError]:
        exact = self._exact(tool_id, version)
        if isinstance(exact, Err):
            return exact
        return self._pipeline.uninstall(tool_id, exact.value)

    def bin_path(self, tool_id: str, version: str) -> Result[Path, ToolError]:
        """Path of an installed version's primary executable.

        Exact versions are looked up without touching the network; other
        requests are resolved first.
        """
        exact = self._exact(tool_id, version)
        if isinstance(exact, Err):
            resolved = self._resolver.resolve(tool_id, version)
            if isinstance(resolved, Err):
                return resolved
            exact = resolved

        entry = self._pipeline.installed(tool_id, exact.value)
        if entry is None:
            return Err(
                ToolError(
                    kind="executable_not_found",
                    tool_id=tool_id,
                    message=f"{tool_id} {exact.value} is not installed",
                    input=version,
                    hint=f"run `tm install {tool_id}@{exact.value}`",
                )
            )
        install_dir = self._store.install_dir(tool_id, str(exact.value))
        return Ok(install_dir / entry.executables[entry.primary])

    def _exact(self, tool_id: str, version: str) -> Result[Exact, ToolError]:
        exact = parse_exact(version)
        if exact is None:
            return Err(
                ToolError(
                    kind="invalid_version_spec",
                    tool_id=tool_id,
                    message="expected an exact version",
                    input=version,
                )
            )
        return Ok(exact)
