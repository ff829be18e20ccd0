"""Tests for tm.platform.detection module."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import patch

import pytest

from tm.platform.detection import (
    Arch,
    HostEnvironment,
    Os,
    UnsupportedHostError,
    detect_arch,
    detect_host,
    detect_os,
)


@pytest.fixture(autouse=True)
def fresh_detection() -> Iterator[None]:
    detect_os.cache_clear()
    detect_arch.cache_clear()
    detect_host.cache_clear()
    yield
    detect_os.cache_clear()
    detect_arch.cache_clear()
    detect_host.cache_clear()


class TestOsEnum:
    """Os enum properties."""

    def test_str(self) -> None:
        assert str(Os.LINUX) == "linux"
        assert str(Os.MACOS) == "macos"
        assert str(Os.WINDOWS) == "windows"

    def test_is_unix(self) -> None:
        assert Os.LINUX.is_unix is True
        assert Os.MACOS.is_unix is True
        assert Os.WINDOWS.is_unix is False

    def test_exe_name(self) -> None:
        assert Os.LINUX.exe_name("zig") == "zig"
        assert Os.WINDOWS.exe_name("zig") == "zig.exe"


class TestHostEnvironment:
    """HostEnvironment value object."""

    def test_str(self) -> None:
        assert str(HostEnvironment(Os.LINUX, Arch.X64)) == "linux-x64"
        assert str(HostEnvironment(Os.MACOS, Arch.ARM64)) == "macos-arm64"

    def test_windows_helpers(self) -> None:
        host = HostEnvironment(Os.WINDOWS, Arch.ARM64)
        assert host.is_windows is True
        assert host.is_unix is False
        assert host.exe_name("bun") == "bun.exe"

    def test_dict_round_trip(self) -> None:
        host = HostEnvironment(Os.LINUX, Arch.POWERPC64)
        assert host.to_dict() == {"os": "linux", "arch": "powerpc64"}
        assert HostEnvironment.from_dict(host.to_dict()) == host

    def test_from_dict_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            HostEnvironment.from_dict({"os": "plan9", "arch": "x64"})

    def test_frozen(self) -> None:
        host = HostEnvironment(Os.LINUX, Arch.X64)
        with pytest.raises(AttributeError):
            host.os = Os.MACOS  # type: ignore[misc]


class TestDetectOs:
    """detect_os() reads sys.platform."""

    @pytest.mark.parametrize(
        ("platform", "expected"),
        [("linux", Os.LINUX), ("darwin", Os.MACOS), ("win32", Os.WINDOWS), ("cygwin", Os.WINDOWS)],
    )
    def test_known(self, platform: str, expected: Os) -> None:
        with patch("sys.platform", platform):
            assert detect_os() == expected

    def test_unknown_raises(self) -> None:
        with patch("sys.platform", "sunos5"), pytest.raises(UnsupportedHostError):
            detect_os()


class TestDetectArch:
    """detect_arch() normalises machine names."""

    @pytest.mark.parametrize(
        ("machine", "expected"),
        [
            ("x86_64", Arch.X64),
            ("AMD64", Arch.X64),
            ("aarch64", Arch.ARM64),
            ("armv7l", Arch.ARM),
            ("i686", Arch.X86),
            ("ppc64le", Arch.POWERPC64),
            ("s390x", Arch.S390X),
        ],
    )
    def test_unix_machines(self, machine: str, expected: Arch) -> None:
        with patch("sys.platform", "linux"), patch("platform.machine", return_value=machine):
            assert detect_arch() == expected

    def test_windows_uses_processor_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PROCESSOR_ARCHITEW6432", raising=False)
        monkeypatch.setenv("PROCESSOR_ARCHITECTURE", "ARM64")
        with patch("sys.platform", "win32"):
            assert detect_arch() == Arch.ARM64

    def test_unknown_raises(self) -> None:
        with (
            patch("sys.platform", "linux"),
            patch("platform.machine", return_value="riscv64"),
            pytest.raises(UnsupportedHostError, match="riscv64"),
        ):
            detect_arch()


class TestDetectHost:
    """detect_host() combines both and is cached."""

    def test_combines(self) -> None:
        with patch("sys.platform", "darwin"), patch("platform.machine", return_value="arm64"):
            assert detect_host() == HostEnvironment(Os.MACOS, Arch.ARM64)

    def test_cached(self) -> None:
        with patch("sys.platform", "linux"), patch("platform.machine", return_value="x86_64"):
            first = detect_host()
        assert detect_host() is first
