"""Zig compiler plugin.

Zig is a systems programming language and compiler.

Website: https://ziglang.org/
API: https://ziglang.org/download/index.json
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from tm import __version__
from tm.core.structured import StrDict, as_str_dict, get_str, get_table
from tm.platform.detection import Arch, Os
from tm.plugin.pdk import Plugin, PluginError, UnsupportedPlatformError
from tm.plugin.schema import (
    DetectVersionFilesOutput,
    DownloadPrebuiltOutput,
    ExecutableEntry,
    LoadVersionsOutput,
    LocateExecutablesOutput,
    ParseVersionFileOutput,
    RegisterOutput,
)
from tm.plugins.api import ZIG_INDEX_URL, release_list, zig_index

if TYPE_CHECKING:
    from tm.plugin.host import HostFunctions
    from tm.plugin.schema import (
        DetectVersionFilesInput,
        DownloadPrebuiltInput,
        LoadVersionsInput,
        LocateExecutablesInput,
        ParseVersionFileInput,
        RegisterInput,
    )

__all__ = ["ZigPlugin"]

MASTER = "master"

# (Os, Arch) -> Zig platform key in index.json
_ZIG_PLATFORMS: dict[tuple[Os, Arch], str] = {
    (Os.LINUX, Arch.X64): "x86_64-linux",
    (Os.LINUX, Arch.ARM64): "aarch64-linux",
    (Os.LINUX, Arch.ARM): "armv7a-linux",
    (Os.LINUX, Arch.X86): "x86-linux",
    (Os.LINUX, Arch.POWERPC64): "powerpc64le-linux",
    (Os.MACOS, Arch.X64): "x86_64-macos",
    (Os.MACOS, Arch.ARM64): "aarch64-macos",
    (Os.WINDOWS, Arch.X64): "x86_64-windows",
    (Os.WINDOWS, Arch.ARM64): "aarch64-windows",
    (Os.WINDOWS, Arch.X86): "x86-windows",
}

_ARCHIVE_EXTENSIONS = (".tar.xz", ".zip")
_ZON_VERSION_RE = re.compile(r'\.minimum_zig_version\s*=\s*"([^"]+)"')


def _supported() -> dict[str, tuple[str, ...]]:
    matrix: dict[str, list[str]] = {}
    for os_, arch in _ZIG_PLATFORMS:
        matrix.setdefault(os_.value, []).append(arch.value)
    return {name: tuple(archs) for name, archs in matrix.items()}


class ZigPlugin(Plugin):
    """Zig compiler - uses the ziglang.org index (not GitHub).

    The index carries a SHA-256 for every archive, so downloads are
    verified inline. Nightly builds are published under "master" and
    exposed as the canary version. Archives have a root directory named
    after the archive file.
    """

    config_keys = frozenset({"index_url"})
    strict_config = True

    def __init__(self, host: HostFunctions) -> None:
        super().__init__(host)
        self._index: StrDict | None = None

    def register(self, input: RegisterInput) -> RegisterOutput:
        return RegisterOutput(
            name="Zig",
            type="language",
            plugin_version=__version__,
            supported=_supported(),
        )

    def _load_index(self) -> StrDict:
        if self._index is None:
            self._index = zig_index(self.host, self.setting_str("index_url") or ZIG_INDEX_URL)
        return self._index

    def load_versions(self, input: LoadVersionsInput) -> LoadVersionsOutput:
        index = self._load_index()
        listing = release_list((key, False) for key in index if key != MASTER)

        canary: str | None = None
        master = get_table(index, MASTER)
        if master is not None:
            canary = get_str(master, "version")

        aliases = {MASTER: canary} if canary else {}
        return LoadVersionsOutput(
            versions=listing.versions, aliases=aliases, latest=listing.latest, canary=canary
        )

    def _release(self, version: str) -> StrDict:
        index = self._load_index()
        release = get_table(index, version)
        if release is not None:
            return release
        master = get_table(index, MASTER)
        if master is not None and get_str(master, "version") == version:
            return master
        raise PluginError(f"zig {version} is not in the download index")

    def download_prebuilt(self, input: DownloadPrebuiltInput) -> DownloadPrebuiltOutput:
        version = input.context.version
        host = self.host_environment
        key = _ZIG_PLATFORMS.get((host.os, host.arch))
        if key is None:
            raise UnsupportedPlatformError(f"Zig has no build for {host}")

        entry = as_str_dict(self._release(version).get(key))
        if entry is None:
            raise UnsupportedPlatformError(f"Zig {version} has no build for {host}")
        tarball = get_str(entry, "tarball")
        if tarball is None:
            raise PluginError(f"zig {version}: index entry {key} has no tarball")

        file_name = tarball.rsplit("/", 1)[-1]
        prefix = file_name
        for ext in _ARCHIVE_EXTENSIONS:
            prefix = prefix.removesuffix(ext)
        return DownloadPrebuiltOutput(
            download_url=tarball,
            archive_prefix=prefix,
            download_name=file_name,
            checksum=get_str(entry, "shasum"),
        )

    def locate_executables(self, input: LocateExecutablesInput) -> LocateExecutablesOutput:
        exe_path = self.host_environment.exe_name("zig")
        return LocateExecutablesOutput(
            exes={"zig": ExecutableEntry(exe_path=exe_path, primary=True)}
        )

    def detect_version_files(self, input: DetectVersionFilesInput) -> DetectVersionFilesOutput:
        return DetectVersionFilesOutput(
            files=(".zig-version", "build.zig.zon"), ignore=("zig-cache", ".zig-cache")
        )

    def parse_version_file(self, input: ParseVersionFileInput) -> ParseVersionFileOutput:
        if input.file == "build.zig.zon":
            m = _ZON_VERSION_RE.search(input.content)
            return ParseVersionFileOutput(version=m.group(1) if m else None)
        return ParseVersionFileOutput(version=input.content.strip() or None)
