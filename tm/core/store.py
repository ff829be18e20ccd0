"""On-disk tool store layout.

    <root>/
        config.toml                       host configuration
        tools/<tool_id>/<version>/        installed payloads
        tools/<tool_id>/manifest.json     installed versions
        temp/<tool_id>/<file>             transient downloads
        cache/<tool_id>/versions.json     optional catalog cache
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from tm.platform.paths import home

__all__ = ["Store", "default_store_root", "STORE_ENV_VAR"]

STORE_ENV_VAR = "TM_HOME"


def default_store_root() -> Path:
    """Store root from $TM_HOME, else ~/.tm."""
    env = os.environ.get(STORE_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return home() / ".tm"


@dataclass(frozen=True, slots=True)
class Store:
    """Paths inside a tool store."""

    root: Path

    @property
    def config_path(self) -> Path:
        return self.root / "config.toml"

    @property
    def tools_dir(self) -> Path:
        return self.root / "tools"

    @property
    def temp_root(self) -> Path:
        return self.root / "temp"

    @property
    def cache_root(self) -> Path:
        return self.root / "cache"

    def tool_dir(self, tool_id: str) -> Path:
        return self.tools_dir / tool_id

    def install_dir(self, tool_id: str, version: str) -> Path:
        """Directory holding one installed version of a tool."""
        return self.tools_dir / tool_id / version

    def temp_dir(self, tool_id: str) -> Path:
        """Scratch directory for a tool's downloads."""
        return self.temp_root / tool_id

    def manifest_path(self, tool_id: str) -> Path:
        return self.tool_dir(tool_id) / "manifest.json"

    def catalog_cache_path(self, tool_id: str) -> Path:
        return self.cache_root / tool_id / "versions.json"
