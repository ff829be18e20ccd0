"""Plugin boundary: records, host functions, plugin kit, loader and gateway."""

from tm.plugin.schema import HOOKS, REQUIRED_HOOKS, Hook, SchemaError, ToolContext
from tm.plugin.host import (
    NETWORK_HINT,
    HostCallError,
    HostFunctions,
    HostNetworkError,
    VirtualFs,
)
from tm.plugin.pdk import (
    Plugin,
    PluginConfigError,
    PluginError,
    PluginModule,
    UnsupportedPlatformError,
)
from tm.plugin.loader import Locator, PluginLoader, parse_locator
from tm.plugin.gateway import PluginGateway

__all__ = [
    "HOOKS",
    "REQUIRED_HOOKS",
    "Hook",
    "SchemaError",
    "ToolContext",
    "HostCallError",
    "HostFunctions",
    "HostNetworkError",
    "VirtualFs",
    "Plugin",
    "PluginConfigError",
    "PluginError",
    "PluginModule",
    "UnsupportedPlatformError",
    "Locator",
    "PluginLoader",
    "parse_locator",
    "NETWORK_HINT",
    "PluginGateway",
]
