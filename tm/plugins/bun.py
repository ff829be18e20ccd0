"""Bun runtime plugin.

Bun is a fast JavaScript runtime, bundler, and package manager.

GitHub: https://github.com/oven-sh/bun
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from tm.core.structured import as_str_dict, get_str, get_table
from tm.platform.detection import Arch, Os
from tm.plugin.pdk import PluginError
from tm.plugin.schema import (
    DeclareGlobalsLookupOutput,
    DetectVersionFilesOutput,
    ParseVersionFileOutput,
    ResolveVersionOutput,
)
from tm.plugins.api import github_download_url
from tm.plugins.github import GitHubPlugin
from tm.versions.spec import parse_exact

if TYPE_CHECKING:
    from tm.platform.detection import HostEnvironment
    from tm.plugin.schema import (
        DeclareGlobalsLookupInput,
        DetectVersionFilesInput,
        ParseVersionFileInput,
        ResolveVersionInput,
    )

__all__ = ["BunPlugin"]

_TARGETS: dict[tuple[Os, Arch], str] = {
    (Os.LINUX, Arch.X64): "linux-x64",
    (Os.LINUX, Arch.ARM64): "linux-aarch64",
    (Os.MACOS, Arch.X64): "darwin-x64",
    (Os.MACOS, Arch.ARM64): "darwin-aarch64",
    (Os.WINDOWS, Arch.X64): "windows-x64",
}

# Builds for x64 CPUs without AVX2
_BASELINE = "baseline"


class BunPlugin(GitHubPlugin):
    """Bun JavaScript runtime.

    Bun uses GitHub releases with a different tag format (bun-v1.x.x).
    Archives have a root directory named after the asset, and every
    release publishes a SHASUMS256.txt covering all assets.

    Settings:
        variant: "baseline" selects the x64 builds for CPUs without AVX2
    """

    display_name = "Bun"
    repo = "oven-sh/bun"
    plugin_type = "language"
    tag_prefix = "bun-v"
    supported = {
        "linux": ("x64", "arm64"),
        "macos": ("x64", "arm64"),
        "windows": ("x64",),
    }
    config_keys = frozenset({"variant"})
    strict_config = True

    def asset_name(self, version: str, host: HostEnvironment) -> str | None:
        """Bun asset naming: bun-{os}-{arch}[-baseline].zip

        - Linux x64: bun-linux-x64.zip
        - Linux ARM64: bun-linux-aarch64.zip
        - macOS x64: bun-darwin-x64.zip
        - macOS ARM64: bun-darwin-aarch64.zip
        - Windows x64: bun-windows-x64.zip
        """
        target = _TARGETS.get((host.os, host.arch))
        if target is None:
            return None
        variant = self.setting_str("variant")
        if variant is not None:
            if variant != _BASELINE:
                raise PluginError(f"unknown bun variant {variant!r} (expected {_BASELINE!r})")
            if host.arch == Arch.X64:
                target = f"{target}-{_BASELINE}"
        return f"bun-{target}.zip"

    def archive_prefix(self, version: str, asset: str) -> str | None:
        return asset.removesuffix(".zip")

    def checksum_url(self, version: str, asset: str) -> str | None:
        return github_download_url(self.repo, self.tag(version), "SHASUMS256.txt")

    def resolve_version(self, input: ResolveVersionInput) -> ResolveVersionOutput:
        """Accept release tags ("bun-v1.1.0") as version requests."""
        if input.initial.startswith(self.tag_prefix):
            return ResolveVersionOutput(candidate=input.initial.removeprefix(self.tag_prefix))
        return ResolveVersionOutput()

    def declare_globals_lookup(
        self, input: DeclareGlobalsLookupInput
    ) -> DeclareGlobalsLookupOutput:
        dirs = ["$BUN_INSTALL/install/global", "$HOME/.bun/install/global"]
        if self.host_environment.is_windows:
            dirs.append("$USERPROFILE/.bun/install/global")
        return DeclareGlobalsLookupOutput(lookup_dirs=tuple(dirs))

    def detect_version_files(self, input: DetectVersionFilesInput) -> DetectVersionFilesOutput:
        return DetectVersionFilesOutput(
            files=(".bun-version", "package.json"), ignore=("node_modules",)
        )

    def parse_version_file(self, input: ParseVersionFileInput) -> ParseVersionFileOutput:
        if input.file != "package.json":
            return ParseVersionFileOutput(version=input.content.strip() or None)
        return ParseVersionFileOutput(version=_package_json_version(input.content))


def _package_json_version(content: str) -> str | None:
    """Bun version pinned by package.json.

    Looks at "packageManager": "bun@1.1.0" first, then at an exact
    "engines": {"bun": "1.1.0"}. Ranges in engines are not pins.
    """
    try:
        manifest = as_str_dict(json.loads(content))
    except json.JSONDecodeError:
        return None
    if manifest is None:
        return None

    manager = get_str(manifest, "packageManager")
    if manager is not None and manager.startswith("bun@"):
        # Corepack allows a "+sha..." suffix
        return manager.removeprefix("bun@").split("+", 1)[0]

    engines = get_table(manifest, "engines")
    if engines is not None:
        pinned = get_str(engines, "bun")
        if pinned is not None and parse_exact(pinned) is not None:
            return pinned
    return None
