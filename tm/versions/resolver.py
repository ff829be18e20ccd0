"""Version resolution: requested spec to one installable Exact version.

Resolution runs in two stages:

1. parse the request and give the plugin's optional ``resolve_version``
   hook a chance to replace it (e.g. "lts" -> "20")
2. resolve the spec against the tool's catalog

Stage 2 is a pure function (``resolve_in_catalog``): the same catalog and
spec always yield the same version.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tm.core.errors import ErrorKind, ToolError
from tm.core.result import Err, Ok, Result
from tm.plugin.schema import Hook
from tm.versions.spec import LATEST, Alias, Canary, Exact, VersionSpec, parse_version_spec

if TYPE_CHECKING:
    from tm.plugin.gateway import PluginGateway
    from tm.versions.catalog import CatalogStore, VersionCatalog

__all__ = ["VersionResolver", "resolve_in_catalog"]


def resolve_in_catalog(
    tool_id: str,
    catalog: VersionCatalog,
    spec: VersionSpec,
    *,
    allow_unlisted: bool = False,
    requested: str | None = None,
) -> Result[Exact, ToolError]:
    """Resolve spec against catalog.

    Args:
        tool_id: Tool the catalog belongs to (for error reporting)
        catalog: Validated catalog
        spec: Parsed request
        allow_unlisted: Accept a requested Exact version absent from the catalog
        requested: Original request text, echoed back in errors

    Returns:
        Ok(Exact), or Err with kind unknown_alias or version_not_found
    """
    echo = requested if requested is not None else str(spec)

    def error(kind: ErrorKind, message: str) -> Err[ToolError]:
        return Err(
            ToolError(
                kind=kind,
                tool_id=tool_id,
                message=message,
                input=echo,
            )
        )

    if isinstance(spec, Exact):
        if spec in catalog or allow_unlisted:
            return Ok(spec)
        return error("version_not_found", f"version {spec} is not in the catalog")

    chain: list[str] = []
    current: VersionSpec = spec
    while True:
        match current:
            case Exact():
                # alias targets come from the plugin and are trusted as-is
                return Ok(current)
            case Canary():
                if catalog.canary is None:
                    return error("version_not_found", "no canary build is published")
                return Ok(catalog.canary)
            case Alias(name=name):
                if name in chain:
                    cycle = " -> ".join([*chain, name])
                    return error("unknown_alias", f"alias cycle: {cycle}")
                chain.append(name)

                target = catalog.aliases.get(name)
                if target is None and name.lower() == LATEST:
                    target = catalog.latest
                if target is None:
                    prefix = current.numeric_prefix
                    found = catalog.find_prefix(prefix) if prefix is not None else None
                    if found is None:
                        return error("unknown_alias", f"unknown alias {name!r}")
                    return Ok(found)
                current = target


class VersionResolver:
    """Resolves requests for a tool using its plugin and catalog."""

    def __init__(
        self,
        gateway: PluginGateway,
        catalogs: CatalogStore,
        *,
        allow_unlisted: bool = False,
    ) -> None:
        self._gateway = gateway
        self._catalogs = catalogs
        self._allow_unlisted = allow_unlisted

    def parse(self, tool_id: str, requested: str) -> Result[VersionSpec, ToolError]:
        """Parse a request, applying the plugin's resolve_version hook if any."""
        parsed = parse_version_spec(requested)
        if isinstance(parsed, Err):
            return Err(
                ToolError(
                    kind="invalid_version_spec",
                    tool_id=tool_id,
                    message=parsed.error,
                    input=requested,
                )
            )
        spec = parsed.value

        has_hook = self._gateway.has_hook(tool_id, Hook.RESOLVE_VERSION)
        if isinstance(has_hook, Err):
            return has_hook
        if not has_hook.value:
            return Ok(spec)

        intercepted = self._gateway.resolve_version(tool_id, requested.strip())
        if isinstance(intercepted, Err):
            return intercepted
        candidate = intercepted.value.candidate
        if candidate is None:
            return Ok(spec)

        match parse_version_spec(candidate):
            case Err(reason):
                return Err(
                    ToolError(
                        kind="invalid_version_spec",
                        tool_id=tool_id,
                        message=f"resolve_version returned an invalid version: {reason}",
                        input=candidate,
                    )
                )
            case Ok(replaced):
                return Ok(replaced)

    def resolve(self, tool_id: str, requested: str) -> Result[Exact, ToolError]:
        """Resolve a request to one Exact version.

        Pinned versions skip the catalog entirely when unlisted versions are
        allowed; everything else loads the catalog (at most once per process).
        """
        parsed = self.parse(tool_id, requested)
        if isinstance(parsed, Err):
            return parsed
        spec = parsed.value

        if isinstance(spec, Exact) and self._allow_unlisted:
            return Ok(spec)

        catalog = self._catalogs.get(tool_id)
        if isinstance(catalog, Err):
            return catalog
        return resolve_in_catalog(
            tool_id,
            catalog.value,
            spec,
            allow_unlisted=self._allow_unlisted,
            requested=requested.strip(),
        )
