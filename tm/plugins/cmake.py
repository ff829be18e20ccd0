"""CMake build system plugin.

CMake is a cross-platform build system generator.

GitHub: https://github.com/Kitware/CMake
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tm.platform.detection import Arch, Os
from tm.plugin.schema import ExecutableEntry, LocateExecutablesOutput, PostInstallOutput
from tm.plugins.api import github_download_url
from tm.plugins.github import GitHubPlugin

if TYPE_CHECKING:
    from tm.platform.detection import HostEnvironment
    from tm.plugin.schema import LocateExecutablesInput, PostInstallInput

__all__ = ["CMakePlugin"]

_SUFFIXES: dict[tuple[Os, Arch], str] = {
    (Os.LINUX, Arch.X64): "linux-x86_64.tar.gz",
    (Os.LINUX, Arch.ARM64): "linux-aarch64.tar.gz",
    (Os.MACOS, Arch.X64): "macos-universal.tar.gz",
    (Os.MACOS, Arch.ARM64): "macos-universal.tar.gz",
    (Os.WINDOWS, Arch.X64): "windows-x86_64.zip",
    (Os.WINDOWS, Arch.ARM64): "windows-arm64.zip",
    (Os.WINDOWS, Arch.X86): "windows-i386.zip",
}


class CMakePlugin(GitHubPlugin):
    """CMake build system generator.

    CMake archives have a root directory (cmake-{version}-{os}-{arch}/).
    On macOS, that directory contains a CMake.app bundle whose Contents/
    are moved up in post_install so bin/cmake sits at the same place on
    every platform.
    """

    display_name = "CMake"
    repo = "Kitware/CMake"
    supported = {
        "linux": ("x64", "arm64"),
        "macos": ("x64", "arm64"),
        "windows": ("x64", "arm64", "x86"),
    }

    def asset_name(self, version: str, host: HostEnvironment) -> str | None:
        suffix = _SUFFIXES.get((host.os, host.arch))
        return f"cmake-{version}-{suffix}" if suffix else None

    def archive_prefix(self, version: str, asset: str) -> str | None:
        return asset.removesuffix(".tar.gz").removesuffix(".zip")

    def checksum_url(self, version: str, asset: str) -> str | None:
        return github_download_url(self.repo, self.tag(version), f"cmake-{version}-SHA-256.txt")

    def post_install(self, input: PostInstallInput) -> PostInstallOutput:
        if self.host_environment.os != Os.MACOS:
            return PostInstallOutput()

        install_dir = input.context.install_dir
        bundle = f"{install_dir}/CMake.app"
        contents = f"{bundle}/Contents"
        if not self.host.exists(contents):
            return PostInstallOutput()

        for name in self.host.list_dir(contents):
            self.host.move(f"{contents}/{name}", f"{install_dir}/{name}")
        self.host.remove(bundle)
        self.host.log("moved CMake.app contents into the install directory")
        return PostInstallOutput()

    def locate_executables(self, input: LocateExecutablesInput) -> LocateExecutablesOutput:
        exe = self.host_environment.exe_name
        return LocateExecutablesOutput(
            exes={
                "cmake": ExecutableEntry(exe_path=f"bin/{exe('cmake')}", primary=True),
                "ctest": ExecutableEntry(exe_path=f"bin/{exe('ctest')}"),
                "cpack": ExecutableEntry(exe_path=f"bin/{exe('cpack')}"),
            }
        )
