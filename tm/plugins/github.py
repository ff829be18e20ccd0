"""Base class for plugins whose tools are distributed via GitHub Releases.

Most tools (ninja, cmake, bun) follow a similar pattern:
- Releases are on GitHub, tagged "<prefix><version>"
- Assets are named with platform/arch suffixes
- Download URL follows: github.com/{repo}/releases/download/{tag}/{asset}

This module provides a base class that handles the common hooks.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, ClassVar

from tm import __version__
from tm.plugin.pdk import Plugin, UnsupportedPlatformError
from tm.plugin.schema import (
    DownloadPrebuiltOutput,
    ExecutableEntry,
    LoadVersionsOutput,
    LocateExecutablesOutput,
    RegisterOutput,
)
from tm.plugins.api import github_download_url, github_releases, release_list

if TYPE_CHECKING:
    from tm.platform.detection import HostEnvironment
    from tm.plugin.schema import (
        DownloadPrebuiltInput,
        LoadVersionsInput,
        LocateExecutablesInput,
        PluginType,
        RegisterInput,
    )

__all__ = ["GitHubPlugin"]


class GitHubPlugin(Plugin):
    """Base class for GitHub-released tools.

    Subclasses must define:
    - display_name: Human-readable tool name
    - repo: GitHub repository (e.g., "ninja-build/ninja")
    - supported: Support matrix advertised at registration
    - asset_name(): Asset filename for a version on a host

    Example:
        class NinjaPlugin(GitHubPlugin):
            display_name = "Ninja"
            repo = "ninja-build/ninja"
            supported = {"linux": ("x64",)}

            def asset_name(self, version: str, host: HostEnvironment) -> str | None:
                return "ninja-linux.zip"
    """

    display_name: ClassVar[str]
    repo: ClassVar[str]
    supported: ClassVar[dict[str, tuple[str, ...]] | None] = None
    plugin_type: ClassVar[PluginType] = "cli"
    tag_prefix: ClassVar[str] = "v"
    binary: ClassVar[str | None] = None

    def register(self, input: RegisterInput) -> RegisterOutput:
        return RegisterOutput(
            name=self.display_name,
            type=self.plugin_type,
            plugin_version=__version__,
            supported=self.supported,
        )

    def load_versions(self, input: LoadVersionsInput) -> LoadVersionsOutput:
        releases = github_releases(self.host, self.repo)
        listing = release_list(
            (release.tag.removeprefix(self.tag_prefix), release.prerelease)
            for release in releases
            if release.tag.startswith(self.tag_prefix)
        )
        aliases = {"stable": listing.latest} if listing.latest else {}
        return LoadVersionsOutput(versions=listing.versions, aliases=aliases, latest=listing.latest)

    def tag(self, version: str) -> str:
        return f"{self.tag_prefix}{version}"

    @abstractmethod
    def asset_name(self, version: str, host: HostEnvironment) -> str | None:
        """Asset filename for version on host, or None if no build exists."""
        ...

    def archive_prefix(self, version: str, asset: str) -> str | None:
        """Top-level directory inside the archive (default: none)."""
        return None

    def checksum_url(self, version: str, asset: str) -> str | None:
        """URL of a published checksum list (default: none)."""
        return None

    def download_prebuilt(self, input: DownloadPrebuiltInput) -> DownloadPrebuiltOutput:
        version = input.context.version
        asset = self.asset_name(version, self.host_environment)
        if asset is None:
            raise UnsupportedPlatformError(
                f"{self.display_name} {version} has no build for {self.host_environment}"
            )
        return DownloadPrebuiltOutput(
            download_url=github_download_url(self.repo, self.tag(version), asset),
            archive_prefix=self.archive_prefix(version, asset),
            download_name=asset,
            checksum_url=self.checksum_url(version, asset),
        )

    def primary_path(self) -> str:
        """Primary executable relative to the install directory."""
        return self.host_environment.exe_name(self.binary or self.tool_id)

    def locate_executables(self, input: LocateExecutablesInput) -> LocateExecutablesOutput:
        name = self.binary or self.tool_id
        return LocateExecutablesOutput(
            exes={name: ExecutableEntry(exe_path=self.primary_path(), primary=True)}
        )
