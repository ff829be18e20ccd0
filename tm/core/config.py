"""Typed host configuration loading.

The host reads ``<store_root>/config.toml``:

    [host]
    allow_unlisted_versions = false
    http_timeout = 30.0
    plugin_timeout = 120.0
    catalog_ttl = 3600
    max_workers = 4

    [plugins]
    mytool = "module:my_plugins.mytool:MyToolPlugin"

    [tools.zig]
    mirror = "https://example.com/zig"

``[tools.<id>]`` tables are handed to the matching plugin untouched.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_float, get_int, get_table

__all__ = [
    "HostConfig",
    "ConfigError",
    "load_config",
    "load_config_or_default",
    "DEFAULT_HTTP_TIMEOUT",
    "DEFAULT_PLUGIN_TIMEOUT",
    "DEFAULT_MAX_WORKERS",
]

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_PLUGIN_TIMEOUT = 120.0
DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None

    def __str__(self) -> str:
        return self.message


def _empty_locators() -> dict[str, str]:
    return {}


def _empty_tool_settings() -> dict[str, StrDict]:
    return {}


@dataclass(frozen=True, slots=True)
class HostConfig:
    """Host-side policy and plugin wiring."""

    allow_unlisted_versions: bool = False
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    plugin_timeout: float = DEFAULT_PLUGIN_TIMEOUT
    catalog_ttl: int = 0
    max_workers: int = DEFAULT_MAX_WORKERS
    plugins: dict[str, str] = field(default_factory=_empty_locators)
    tools: dict[str, StrDict] = field(default_factory=_empty_tool_settings)

    def tool_settings(self, tool_id: str) -> StrDict:
        """Return a copy of the freeform settings table for a tool."""
        return dict(self.tools.get(tool_id, {}))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> HostConfig:
        """Create HostConfig from a mapping (parsed TOML).

        Raises:
            ValueError: If a value has the wrong type or range.
        """
        host: StrDict = get_table(data, "host") or {}
        plugins_table: StrDict = get_table(data, "plugins") or {}
        tools_table: StrDict = get_table(data, "tools") or {}

        plugins: dict[str, str] = {}
        for tool_id, locator in plugins_table.items():
            if not isinstance(locator, str) or not locator.strip():
                raise ValueError(f"plugins.{tool_id} must be a non-empty string")
            plugins[tool_id] = locator.strip()

        tools: dict[str, StrDict] = {}
        for tool_id, settings in tools_table.items():
            table = as_str_dict(settings)
            if table is None:
                raise ValueError(f"tools.{tool_id} must be a table")
            tools[tool_id] = table

        max_workers = get_int(host, "max_workers") or DEFAULT_MAX_WORKERS
        if max_workers < 1:
            raise ValueError("host.max_workers must be at least 1")
        catalog_ttl = get_int(host, "catalog_ttl") or 0
        if catalog_ttl < 0:
            raise ValueError("host.catalog_ttl cannot be negative")

        return cls(
            allow_unlisted_versions=get_bool(host, "allow_unlisted_versions") or False,
            http_timeout=get_float(host, "http_timeout") or DEFAULT_HTTP_TIMEOUT,
            plugin_timeout=get_float(host, "plugin_timeout") or DEFAULT_PLUGIN_TIMEOUT,
            catalog_ttl=catalog_ttl,
            max_workers=max_workers,
            plugins=plugins,
            tools=tools,
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[HostConfig, ConfigError]:
    """Load and parse host configuration from a TOML file.

    Args:
        path: Path to config.toml

    Returns:
        Ok(HostConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(HostConfig.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> Result[HostConfig, ConfigError]:
    """Like load_config, but a missing file yields the default config."""
    if not path.exists():
        return Ok(HostConfig())
    return load_config(path)
