"""Install manifest: which versions of a tool are installed.

Each tool keeps ``tools/<tool_id>/manifest.json``:

    {
      "0.13.0": {
        "installed_at": "2025-01-12T10:03:11",
        "primary": "zig",
        "executables": {"zig": "zig"},
        "globals_dir": null
      }
    }
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from tm.core.structured import as_str_dict, get_str, get_str_map
from tm.platform.files import atomic_write_json

if TYPE_CHECKING:
    from tm.core.store import Store

__all__ = [
    "InstalledVersion",
    "load_manifest",
    "save_manifest",
    "get_installed",
    "record_install",
    "remove_install",
]

_LOCK = threading.Lock()


def _no_executables() -> dict[str, str]:
    return {}


@dataclass(frozen=True, slots=True)
class InstalledVersion:
    """One installed version of a tool.

    Attributes:
        version: Exact version string
        installed_at: ISO timestamp of installation
        primary: Logical name of the primary executable
        executables: Logical name to path relative to the install directory
        globals_dir: Directory holding globally installed packages, if any
    """

    version: str
    installed_at: str
    primary: str
    executables: dict[str, str] = field(default_factory=_no_executables)
    globals_dir: str | None = None

    @classmethod
    def now(
        cls,
        version: str,
        primary: str,
        executables: dict[str, str],
        globals_dir: str | None = None,
    ) -> InstalledVersion:
        """Create an entry stamped with the current time."""
        return cls(
            version=version,
            installed_at=datetime.now().isoformat(timespec="seconds"),
            primary=primary,
            executables=dict(executables),
            globals_dir=globals_dir,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "installed_at": self.installed_at,
            "primary": self.primary,
            "executables": dict(self.executables),
            "globals_dir": self.globals_dir,
        }


def _parse_entry(version: str, data: object) -> InstalledVersion | None:
    table = as_str_dict(data)
    if table is None:
        return None
    primary = get_str(table, "primary")
    executables = get_str_map(table, "executables")
    if primary is None or executables is None or primary not in executables:
        return None
    return InstalledVersion(
        version=version,
        installed_at=get_str(table, "installed_at") or "",
        primary=primary,
        executables=executables,
        globals_dir=get_str(table, "globals_dir"),
    )


def load_manifest(store: Store, tool_id: str) -> dict[str, InstalledVersion]:
    """Load a tool's manifest; missing or corrupted manifests read as empty."""
    path = store.manifest_path(tool_id)
    try:
        data = as_str_dict(json.loads(path.read_text(encoding="utf-8")))
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError):
        # Corrupted manifest, start fresh
        return {}
    if data is None:
        return {}

    entries: dict[str, InstalledVersion] = {}
    for version, raw in data.items():
        entry = _parse_entry(version, raw)
        if entry is not None:
            entries[version] = entry
    return entries


def save_manifest(store: Store, tool_id: str, entries: dict[str, InstalledVersion]) -> None:
    data = {version: entry.to_dict() for version, entry in sorted(entries.items())}
    atomic_write_json(store.manifest_path(tool_id), data)


def get_installed(store: Store, tool_id: str, version: str) -> InstalledVersion | None:
    return load_manifest(store, tool_id).get(version)


def record_install(store: Store, tool_id: str, entry: InstalledVersion) -> None:
    with _LOCK:
        entries = load_manifest(store, tool_id)
        entries[entry.version] = entry
        save_manifest(store, tool_id, entries)


def remove_install(store: Store, tool_id: str, version: str) -> bool:
    """Drop a version from the manifest; False if it was not recorded."""
    with _LOCK:
        entries = load_manifest(store, tool_id)
        if entries.pop(version, None) is None:
            return False
        save_manifest(store, tool_id, entries)
        return True
