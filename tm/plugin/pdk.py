"""Plugin development kit.

A plugin is a subclass of ``Plugin`` implementing the four required hooks
and any optional hook it needs (a method named after the hook). The host
never calls a plugin object directly: it wraps it in a ``PluginModule``,
which exposes the plugin as named functions taking and returning JSON text.

Plugins signal expected failures by raising a ``PluginError`` subclass;
the module turns those into an error envelope the host understands.
Anything else escaping a hook is a crash.

Example:
    class NinjaPlugin(Plugin):
        def register(self, input: RegisterInput) -> RegisterOutput:
            return RegisterOutput(name="Ninja", type="cli")
        ...
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, Literal

from tm.plugin.schema import HOOKS, REQUIRED_HOOKS, Hook

if TYPE_CHECKING:
    from tm.core.structured import StrDict
    from tm.platform.detection import HostEnvironment
    from tm.plugin.host import HostFunctions
    from tm.plugin.schema import (
        DownloadPrebuiltInput,
        DownloadPrebuiltOutput,
        LoadVersionsInput,
        LoadVersionsOutput,
        LocateExecutablesInput,
        LocateExecutablesOutput,
        RegisterInput,
        RegisterOutput,
    )

__all__ = [
    "ERROR_KEY",
    "Plugin",
    "PluginError",
    "PluginConfigError",
    "PluginModule",
    "UnsupportedPlatformError",
    "MissingFunctionError",
]

ERROR_KEY = "$error"

type EnvelopeKind = Literal["execution_trap", "unsupported_platform"]


class PluginError(Exception):
    """Expected failure raised by a plugin hook."""

    kind: ClassVar[EnvelopeKind] = "execution_trap"


class UnsupportedPlatformError(PluginError):
    """The plugin has no build for the host environment."""

    kind: ClassVar[EnvelopeKind] = "unsupported_platform"


class PluginConfigError(ValueError):
    """The tool's settings table is not acceptable to the plugin."""


class MissingFunctionError(LookupError):
    """The module does not export the requested function."""


class Plugin(ABC):
    """Base class for toolchain plugins.

    Class attributes:
        config_keys: Settings keys the plugin understands
        strict_config: Reject settings keys outside config_keys at load time
    """

    config_keys: ClassVar[frozenset[str]] = frozenset()
    strict_config: ClassVar[bool] = False

    def __init__(self, host: HostFunctions) -> None:
        self.host = host
        self.settings: StrDict = host.tool_config()
        if self.strict_config:
            unknown = sorted(set(self.settings) - self.config_keys)
            if unknown:
                raise PluginConfigError(f"unknown settings: {', '.join(unknown)}")

    @property
    def tool_id(self) -> str:
        return self.host.tool_id

    @property
    def host_environment(self) -> HostEnvironment:
        return self.host.host_environment

    def setting_str(self, key: str, default: str | None = None) -> str | None:
        """String setting from the tool's table.

        Raises:
            PluginError: If the value is present but not a string.
        """
        value = self.settings.get(key, default)
        if value is not None and not isinstance(value, str):
            raise PluginError(f"setting {key!r} must be a string")
        return value

    @abstractmethod
    def register(self, input: RegisterInput) -> RegisterOutput: ...

    @abstractmethod
    def load_versions(self, input: LoadVersionsInput) -> LoadVersionsOutput: ...

    @abstractmethod
    def download_prebuilt(self, input: DownloadPrebuiltInput) -> DownloadPrebuiltOutput: ...

    @abstractmethod
    def locate_executables(self, input: LocateExecutablesInput) -> LocateExecutablesOutput: ...


class PluginModule:
    """A plugin exposed as named JSON-in/JSON-out functions."""

    def __init__(self, plugin: Plugin) -> None:
        self._plugin = plugin
        self._functions = frozenset(
            hook.value
            for hook in Hook
            if hook in REQUIRED_HOOKS or callable(getattr(plugin, hook.value, None))
        )

    @property
    def plugin(self) -> Plugin:
        return self._plugin

    def functions(self) -> frozenset[str]:
        return self._functions

    def has_function(self, name: str) -> bool:
        return name in self._functions

    def call(self, name: str, payload: str) -> str:
        """Invoke a hook by name.

        Args:
            name: Hook name
            payload: JSON-encoded input record

        Returns:
            JSON-encoded output record, or an error envelope

        Raises:
            MissingFunctionError: If the plugin does not define the hook.
        """
        if not self.has_function(name):
            raise MissingFunctionError(name)
        input_cls, _ = HOOKS[Hook(name)]
        request = input_cls.from_dict(json.loads(payload))

        try:
            response = getattr(self._plugin, name)(request)
        except PluginError as e:
            return json.dumps({ERROR_KEY: {"kind": e.kind, "message": str(e)}})

        body = response.to_dict() if hasattr(response, "to_dict") else response
        return json.dumps(body)
