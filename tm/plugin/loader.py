"""Plugin locators.

A locator says where a tool's plugin class lives:

    builtin:<name>                 a plugin shipped with tm
    module:<dotted.module>:<Class> an importable module
    file:<path/to/plugin.py>:<Class>

Tools without a ``[plugins]`` entry fall back to ``builtin:<tool_id>``.
"""

from __future__ import annotations

import importlib
import importlib.util
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from tm.core.result import Err, Ok, Result
from tm.plugin.pdk import Plugin

__all__ = ["Locator", "PluginLoader", "parse_locator"]

type LocatorScheme = Literal["builtin", "module", "file"]


@dataclass(frozen=True, slots=True)
class Locator:
    scheme: LocatorScheme
    target: str
    attr: str | None = None

    def __str__(self) -> str:
        if self.attr is None:
            return f"{self.scheme}:{self.target}"
        return f"{self.scheme}:{self.target}:{self.attr}"


def parse_locator(text: str) -> Result[Locator, str]:
    """Parse a locator string."""
    scheme, sep, rest = text.strip().partition(":")
    if not sep or not rest:
        return Err(f"invalid plugin locator: {text!r}")

    match scheme:
        case "builtin":
            return Ok(Locator("builtin", rest))
        case "module" | "file":
            # rpartition keeps Windows drive letters in file paths intact
            target, sep, attr = rest.rpartition(":")
            if not sep or not target or not attr.isidentifier():
                return Err(f"locator must end with ':<Class>': {text!r}")
            return Ok(Locator(scheme, target, attr))
        case _:
            return Err(f"unknown locator scheme {scheme!r} in {text!r}")


class PluginLoader:
    """Resolves tool ids to plugin classes."""

    def __init__(
        self,
        builtins: Mapping[str, type[Plugin]],
        locators: Mapping[str, str] | None = None,
    ) -> None:
        self._builtins = dict(builtins)
        self._locators = dict(locators or {})

    def known_tools(self) -> list[str]:
        return sorted(set(self._builtins) | set(self._locators))

    def locator_for(self, tool_id: str) -> Result[Locator, str]:
        text = self._locators.get(tool_id)
        if text is None:
            if tool_id not in self._builtins:
                return Err(f"no plugin configured for {tool_id!r}")
            return Ok(Locator("builtin", tool_id))
        return parse_locator(text)

    def load_class(self, tool_id: str) -> Result[type[Plugin], str]:
        """Import the plugin class for a tool.

        Returns:
            Ok with a Plugin subclass, or Err describing why it could not load
        """
        located = self.locator_for(tool_id)
        if isinstance(located, Err):
            return located
        locator = located.value

        try:
            obj = self._resolve(tool_id, locator)
        except Exception as e:  # noqa: BLE001
            return Err(f"cannot load {locator}: {e}")
        if obj is None:
            return Err(f"cannot load {locator}: not found")
        if not isinstance(obj, type) or not issubclass(obj, Plugin):
            return Err(f"{locator} is not a Plugin subclass")
        return Ok(obj)

    def _resolve(self, tool_id: str, locator: Locator) -> object:
        match locator.scheme:
            case "builtin":
                return self._builtins.get(locator.target)
            case "module":
                module = importlib.import_module(locator.target)
                return getattr(module, locator.attr or "", None)
            case "file":
                path = Path(locator.target).expanduser()
                if not path.is_file():
                    raise FileNotFoundError(f"plugin file not found: {path}")
                spec = importlib.util.spec_from_file_location(f"tm_plugin_{tool_id}", path)
                if spec is None or spec.loader is None:
                    raise ImportError(f"cannot import {path}")
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
                return getattr(module, locator.attr or "", None)
