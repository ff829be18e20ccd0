"""Host environment detection.

The host environment (operating system and CPU architecture) is detected
once per process and handed read-only to plugins.
"""

from __future__ import annotations

import os as _os
import platform as _platform
import sys as _sys
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

__all__ = [
    "Os",
    "Arch",
    "HostEnvironment",
    "UnsupportedHostError",
    "detect_host",
    "detect_os",
    "detect_arch",
]


class UnsupportedHostError(RuntimeError):
    """Raised when the running machine is not one the host can describe."""


class Os(Enum):
    """Operating system family."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"

    def __str__(self) -> str:
        return self.value

    @property
    def is_unix(self) -> bool:
        return self in (Os.LINUX, Os.MACOS)

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self == Os.WINDOWS else ""

    def exe_name(self, name: str) -> str:
        """Executable name with platform suffix: "zig" -> "zig.exe" on Windows."""
        return f"{name}{self.exe_suffix}"


class Arch(Enum):
    """CPU architecture."""

    X64 = "x64"
    ARM64 = "arm64"
    ARM = "arm"
    X86 = "x86"
    POWERPC64 = "powerpc64"
    S390X = "s390x"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class HostEnvironment:
    """Immutable facts about the running machine."""

    os: Os
    arch: Arch

    @property
    def is_windows(self) -> bool:
        return self.os == Os.WINDOWS

    @property
    def is_unix(self) -> bool:
        return self.os.is_unix

    def exe_name(self, name: str) -> str:
        return self.os.exe_name(name)

    def to_dict(self) -> dict[str, str]:
        return {"os": self.os.value, "arch": self.arch.value}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> HostEnvironment:
        """Inverse of to_dict.

        Raises:
            ValueError: On unknown os/arch names.
        """
        return cls(os=Os(data["os"]), arch=Arch(data["arch"]))

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


_MACHINE_ARCH: dict[str, Arch] = {
    "x86_64": Arch.X64,
    "amd64": Arch.X64,
    "aarch64": Arch.ARM64,
    "arm64": Arch.ARM64,
    "armv7l": Arch.ARM,
    "armv6l": Arch.ARM,
    "arm": Arch.ARM,
    "i386": Arch.X86,
    "i686": Arch.X86,
    "x86": Arch.X86,
    "ppc64": Arch.POWERPC64,
    "ppc64le": Arch.POWERPC64,
    "s390x": Arch.S390X,
}


@lru_cache(maxsize=1)
def detect_os() -> Os:
    """Detect the current operating system (cached)."""
    # NOTE: avoid platform.system() on Windows, it may query WMI.
    system = _sys.platform.lower()
    if system.startswith("linux"):
        return Os.LINUX
    if system.startswith("darwin"):
        return Os.MACOS
    if system.startswith(("win32", "cygwin", "msys")):
        return Os.WINDOWS
    raise UnsupportedHostError(f"unsupported operating system: {_sys.platform}")


@lru_cache(maxsize=1)
def detect_arch() -> Arch:
    """Detect the current CPU architecture (cached)."""
    if detect_os() == Os.WINDOWS:
        machine = (
            _os.environ.get("PROCESSOR_ARCHITEW6432")
            or _os.environ.get("PROCESSOR_ARCHITECTURE")
            or ""
        ).lower()
    else:
        machine = _platform.machine().lower()
    arch = _MACHINE_ARCH.get(machine)
    if arch is None:
        raise UnsupportedHostError(f"unsupported CPU architecture: {machine or 'unknown'}")
    return arch


@lru_cache(maxsize=1)
def detect_host() -> HostEnvironment:
    """Detect the host environment once per process.

    Raises:
        UnsupportedHostError: If the OS or architecture is not recognised.
    """
    return HostEnvironment(os=detect_os(), arch=detect_arch())
