"""Ninja build system plugin.

Ninja is a small build system with a focus on speed.

GitHub: https://github.com/ninja-build/ninja
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tm.platform.detection import Arch, Os
from tm.plugins.github import GitHubPlugin

if TYPE_CHECKING:
    from tm.platform.detection import HostEnvironment

__all__ = ["NinjaPlugin"]

_ASSETS: dict[tuple[Os, Arch], str] = {
    (Os.LINUX, Arch.X64): "ninja-linux.zip",
    (Os.LINUX, Arch.ARM64): "ninja-linux-aarch64.zip",
    (Os.MACOS, Arch.X64): "ninja-mac.zip",
    (Os.MACOS, Arch.ARM64): "ninja-mac.zip",
    (Os.WINDOWS, Arch.X64): "ninja-win.zip",
    (Os.WINDOWS, Arch.ARM64): "ninja-winarm64.zip",
}


class NinjaPlugin(GitHubPlugin):
    """Ninja build system - simplest GitHub tool.

    Ninja releases are zip files with the binary directly inside (no
    nested directory) and no published checksums.
    """

    display_name = "Ninja"
    repo = "ninja-build/ninja"
    supported = {
        "linux": ("x64", "arm64"),
        "macos": ("x64", "arm64"),
        "windows": ("x64", "arm64"),
    }

    def asset_name(self, version: str, host: HostEnvironment) -> str | None:
        """Ninja release naming:

        - Linux x64: ninja-linux.zip
        - Linux ARM64: ninja-linux-aarch64.zip
        - macOS (universal): ninja-mac.zip
        - Windows x64: ninja-win.zip
        - Windows ARM64: ninja-winarm64.zip
        """
        return _ASSETS.get((host.os, host.arch))
