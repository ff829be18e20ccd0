"""Version specs, catalogs and resolution."""

from tm.versions.spec import (
    CANARY,
    LATEST,
    Alias,
    Canary,
    Exact,
    VersionSpec,
    parse_exact,
    parse_version_spec,
)
from tm.versions.catalog import CatalogStore, VersionCatalog, build_catalog, load_catalog
from tm.versions.resolver import VersionResolver, resolve_in_catalog

__all__ = [
    "CANARY",
    "LATEST",
    "Alias",
    "Canary",
    "Exact",
    "VersionSpec",
    "parse_exact",
    "parse_version_spec",
    "CatalogStore",
    "VersionCatalog",
    "build_catalog",
    "load_catalog",
    "VersionResolver",
    "resolve_in_catalog",
]
