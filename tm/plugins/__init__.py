"""Built-in plugins.

Usage:
    from tm.plugins import BUILTIN_PLUGINS

    loader = PluginLoader(BUILTIN_PLUGINS, config.plugins)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tm.plugins.bun import BunPlugin
from tm.plugins.cmake import CMakePlugin
from tm.plugins.github import GitHubPlugin
from tm.plugins.ninja import NinjaPlugin
from tm.plugins.zig import ZigPlugin

if TYPE_CHECKING:
    from tm.plugin.pdk import Plugin

__all__ = [
    "BUILTIN_PLUGINS",
    "BunPlugin",
    "CMakePlugin",
    "GitHubPlugin",
    "NinjaPlugin",
    "ZigPlugin",
]

BUILTIN_PLUGINS: dict[str, type[Plugin]] = {
    "bun": BunPlugin,
    "cmake": CMakePlugin,
    "ninja": NinjaPlugin,
    "zig": ZigPlugin,
}
