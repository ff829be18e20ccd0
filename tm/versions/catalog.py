"""Version catalogs.

A VersionCatalog is the validated form of a plugin's ``load_versions``
reply: exact versions most recent first, an alias table, the version
``latest`` points at and, for tools that publish one, the canary build.

CatalogStore caches catalogs per tool. The in-memory cache lives for the
process; with ``catalog_ttl > 0`` catalogs are also written to
``<store>/cache/<tool_id>/versions.json`` and reused while fresh.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tm.core.errors import ToolError
from tm.core.result import Err, Ok, Result
from tm.core.structured import as_str_dict, get_float, get_table
from tm.platform.files import atomic_write_json
from tm.plugin.host import NETWORK_HINT
from tm.plugin.schema import LoadVersionsOutput, SchemaError
from tm.versions.spec import LATEST, Exact, VersionSpec, parse_exact, parse_version_spec

if TYPE_CHECKING:
    from tm.core.store import Store
    from tm.output.console import ConsoleProtocol
    from tm.plugin.gateway import PluginGateway

__all__ = ["VersionCatalog", "CatalogStore", "build_catalog", "load_catalog"]


def _no_aliases() -> dict[str, VersionSpec]:
    return {}


@dataclass(frozen=True, slots=True)
class VersionCatalog:
    """Validated catalog for one tool.

    Attributes:
        versions: Exact versions, most recent first, no duplicates
        aliases: Alias name to target (an Exact, another Alias, or Canary)
        latest: Version "latest" resolves to
        canary: Current canary build, if the tool publishes one
    """

    versions: tuple[Exact, ...]
    latest: Exact
    aliases: dict[str, VersionSpec] = field(default_factory=_no_aliases)
    canary: Exact | None = None

    def __contains__(self, version: object) -> bool:
        return version in self.versions

    def find_prefix(self, parts: tuple[int, ...]) -> Exact | None:
        """Most recent version starting with parts, stable releases first."""
        matching = [v for v in self.versions if v.has_prefix(parts)]
        stable = [v for v in matching if not v.is_prerelease]
        if stable:
            return stable[0]
        return matching[0] if matching else None

    def to_raw(self) -> LoadVersionsOutput:
        """Back to the wire record (used for the on-disk cache)."""
        return LoadVersionsOutput(
            versions=tuple(str(v) for v in self.versions),
            aliases={name: str(target) for name, target in self.aliases.items()},
            latest=str(self.latest),
            canary=str(self.canary) if self.canary is not None else None,
        )


def build_catalog(tool_id: str, raw: LoadVersionsOutput) -> Result[VersionCatalog, ToolError]:
    """Validate a plugin's load_versions reply.

    Returns:
        Err(catalog_unavailable) for an empty version list,
        Err(schema_mismatch) for unparseable versions or alias targets
    """

    def mismatch(message: str, value: str) -> Err[ToolError]:
        return Err(
            ToolError(kind="schema_mismatch", tool_id=tool_id, message=message, input=value)
        )

    if not raw.versions:
        return Err(
            ToolError(
                kind="catalog_unavailable",
                tool_id=tool_id,
                message="plugin returned no versions",
            )
        )

    versions: list[Exact] = []
    seen: set[Exact] = set()
    for text in raw.versions:
        exact = parse_exact(text)
        if exact is None:
            return mismatch("catalog contains an invalid version", text)
        if exact not in seen:
            seen.add(exact)
            versions.append(exact)

    latest = versions[0]
    if raw.latest is not None:
        explicit = parse_exact(raw.latest)
        if explicit is None:
            return mismatch("catalog has an invalid latest version", raw.latest)
        latest = explicit

    canary: Exact | None = None
    if raw.canary is not None:
        canary = parse_exact(raw.canary)
        if canary is None:
            return mismatch("catalog has an invalid canary version", raw.canary)

    aliases: dict[str, VersionSpec] = {}
    for name, target_text in raw.aliases.items():
        match parse_version_spec(target_text):
            case Ok(target):
                aliases[name] = target
            case Err():
                return mismatch(f"alias {name!r} has an invalid target", target_text)

    # "latest" always names catalog.latest; the explicit field beats the alias
    aliased = aliases.get(LATEST)
    if raw.latest is None and aliased is not None:
        if not isinstance(aliased, Exact):
            return mismatch("alias 'latest' must name an exact version", raw.aliases[LATEST])
        latest = aliased
    aliases[LATEST] = latest

    return Ok(
        VersionCatalog(versions=tuple(versions), latest=latest, aliases=aliases, canary=canary)
    )


def load_catalog(
    gateway: PluginGateway, tool_id: str, initial: str = LATEST
) -> Result[VersionCatalog, ToolError]:
    """Invoke load_versions once and validate the reply.

    A failed network fetch inside the plugin is reported as
    catalog_unavailable; other gateway faults pass through unchanged.
    """
    match gateway.load_versions(tool_id, initial):
        case Err(error) if error.kind == "execution_trap" and error.hint == NETWORK_HINT:
            return Err(
                ToolError(
                    kind="catalog_unavailable",
                    tool_id=tool_id,
                    message=error.message,
                    hint=error.hint,
                )
            )
        case Err() as err:
            return err
        case Ok(raw):
            return build_catalog(tool_id, raw)


class CatalogStore:
    """Per-tool catalog cache shared by concurrent operations."""

    def __init__(
        self,
        gateway: PluginGateway,
        store: Store,
        *,
        ttl: int = 0,
        console: ConsoleProtocol | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._ttl = ttl
        self._console = console
        self._clock = clock
        self._memory: dict[str, VersionCatalog] = {}
        self._lock = threading.Lock()
        self._tool_locks: dict[str, threading.Lock] = {}
        self._write_lock = threading.Lock()

    def _tool_lock(self, tool_id: str) -> threading.Lock:
        with self._lock:
            return self._tool_locks.setdefault(tool_id, threading.Lock())

    def get(self, tool_id: str, initial: str = LATEST) -> Result[VersionCatalog, ToolError]:
        """Catalog for tool_id, loading it at most once per process."""
        with self._tool_lock(tool_id):
            cached = self._memory.get(tool_id)
            if cached is not None:
                return Ok(cached)

            catalog = self._read_cache(tool_id)
            if catalog is None:
                loaded = load_catalog(self._gateway, tool_id, initial)
                if isinstance(loaded, Err):
                    return loaded
                catalog = loaded.value
                self._write_cache(tool_id, catalog)

            self._memory[tool_id] = catalog
            return Ok(catalog)

    def invalidate(self, tool_id: str) -> None:
        with self._tool_lock(tool_id):
            self._memory.pop(tool_id, None)
            with self._write_lock:
                self._store.catalog_cache_path(tool_id).unlink(missing_ok=True)

    def _read_cache(self, tool_id: str) -> VersionCatalog | None:
        if self._ttl <= 0:
            return None
        path = self._store.catalog_cache_path(tool_id)
        try:
            data = as_str_dict(json.loads(path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            # Corrupted cache, refetch
            return None
        if data is None:
            return None

        fetched_at = get_float(data, "fetched_at")
        if fetched_at is None or self._clock() - fetched_at > self._ttl:
            return None
        try:
            raw = LoadVersionsOutput.from_dict(get_table(data, "catalog"))
        except SchemaError:
            return None
        built = build_catalog(tool_id, raw)
        return built.value if isinstance(built, Ok) else None

    def _write_cache(self, tool_id: str, catalog: VersionCatalog) -> None:
        if self._ttl <= 0:
            return
        payload = {"fetched_at": self._clock(), "catalog": catalog.to_raw().to_dict()}
        path = self._store.catalog_cache_path(tool_id)
        with self._write_lock:
            try:
                atomic_write_json(path, payload)
            except OSError as e:
                if self._console is not None:
                    self._console.warning(f"{tool_id}: cannot write catalog cache: {e}")

