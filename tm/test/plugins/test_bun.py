"""Tests for plugins/bun.py."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tm.core.store import Store
from tm.net.http import MockHttpClient
from tm.platform.detection import Arch, HostEnvironment, Os
from tm.plugin.host import VirtualFs
from tm.plugin.pdk import PluginError, UnsupportedPlatformError
from tm.plugin.schema import (
    DeclareGlobalsLookupInput,
    DetectVersionFilesInput,
    DownloadPrebuiltInput,
    LoadVersionsInput,
    ParseVersionFileInput,
    ResolveVersionInput,
)
from tm.plugins.bun import BunPlugin
from tm.test._support import make_host

RELEASES_URL = "https://api.github.com/repos/oven-sh/bun/releases?per_page=100"
RELEASES = [
    {"tag_name": "bun-v1.2.0-rc.1", "prerelease": True},
    {"tag_name": "bun-v1.1.1"},
    {"tag_name": "canary", "prerelease": True},
    {"tag_name": "bun-v1.1.0"},
]

LINUX_X64 = HostEnvironment(Os.LINUX, Arch.X64)


def _plugin(
    tmp_path: Path,
    host: HostEnvironment = LINUX_X64,
    settings: dict[str, object] | None = None,
    http: MockHttpClient | None = None,
) -> BunPlugin:
    return BunPlugin(
        make_host(tmp_path, "bun", http=http, host=host, settings=settings or {})
    )


def _input(tmp_path: Path, version: str = "1.1.0") -> DownloadPrebuiltInput:
    return DownloadPrebuiltInput(VirtualFs(store=Store(tmp_path), tool_id="bun").context(version))


def _parse(tmp_path: Path, content: str, file: str = "package.json") -> str | None:
    return _plugin(tmp_path).parse_version_file(ParseVersionFileInput(content, file)).version


class TestVersions:
    def test_load_versions(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        http.set_json(RELEASES_URL, RELEASES)
        output = _plugin(tmp_path, http=http).load_versions(LoadVersionsInput("latest"))
        assert output.versions == ("1.2.0-rc.1", "1.1.1", "1.1.0")
        assert output.latest == "1.1.1"
        assert output.aliases == {"stable": "1.1.1"}

    def test_resolve_tag(self, tmp_path: Path) -> None:
        plugin = _plugin(tmp_path)
        assert plugin.resolve_version(ResolveVersionInput("bun-v1.1.0")).candidate == "1.1.0"
        assert plugin.resolve_version(ResolveVersionInput("1.1")).candidate is None


class TestDownload:
    def test_plan(self, tmp_path: Path) -> None:
        plan = _plugin(tmp_path).download_prebuilt(_input(tmp_path))
        base = "https://github.com/oven-sh/bun/releases/download/bun-v1.1.0"
        assert plan.download_url == f"{base}/bun-linux-x64.zip"
        assert plan.download_name == "bun-linux-x64.zip"
        assert plan.archive_prefix == "bun-linux-x64"
        assert plan.checksum_url == f"{base}/SHASUMS256.txt"

    @pytest.mark.parametrize(
        ("host", "asset"),
        [
            (HostEnvironment(Os.LINUX, Arch.ARM64), "bun-linux-aarch64.zip"),
            (HostEnvironment(Os.MACOS, Arch.ARM64), "bun-darwin-aarch64.zip"),
            (HostEnvironment(Os.WINDOWS, Arch.X64), "bun-windows-x64.zip"),
        ],
    )
    def test_assets(self, tmp_path: Path, host: HostEnvironment, asset: str) -> None:
        assert _plugin(tmp_path, host).asset_name("1.1.0", host) == asset

    def test_baseline_variant(self, tmp_path: Path) -> None:
        plugin = _plugin(tmp_path, settings={"variant": "baseline"})
        assert plugin.asset_name("1.1.0", LINUX_X64) == "bun-linux-x64-baseline.zip"
        arm = HostEnvironment(Os.LINUX, Arch.ARM64)
        assert plugin.asset_name("1.1.0", arm) == "bun-linux-aarch64.zip"

    def test_unknown_variant(self, tmp_path: Path) -> None:
        with pytest.raises(PluginError, match="unknown bun variant"):
            _plugin(tmp_path, settings={"variant": "avx512"}).asset_name("1.1.0", LINUX_X64)

    def test_unsupported_host(self, tmp_path: Path) -> None:
        host = HostEnvironment(Os.LINUX, Arch.ARM)
        with pytest.raises(UnsupportedPlatformError):
            _plugin(tmp_path, host).download_prebuilt(_input(tmp_path))


class TestGlobalsAndVersionFiles:
    def test_globals_lookup(self, tmp_path: Path) -> None:
        plugin = _plugin(tmp_path)
        context = _input(tmp_path).context
        dirs = plugin.declare_globals_lookup(DeclareGlobalsLookupInput(context)).lookup_dirs
        assert dirs == ("$BUN_INSTALL/install/global", "$HOME/.bun/install/global")

    def test_globals_lookup_windows(self, tmp_path: Path) -> None:
        plugin = _plugin(tmp_path, HostEnvironment(Os.WINDOWS, Arch.X64))
        context = _input(tmp_path).context
        dirs = plugin.declare_globals_lookup(DeclareGlobalsLookupInput(context)).lookup_dirs
        assert dirs[-1] == "$USERPROFILE/.bun/install/global"

    def test_version_files(self, tmp_path: Path) -> None:
        declared = _plugin(tmp_path).detect_version_files(DetectVersionFilesInput())
        assert declared.files == (".bun-version", "package.json")
        assert declared.ignore == ("node_modules",)

    def test_package_manager_field(self, tmp_path: Path) -> None:
        content = json.dumps({"packageManager": "bun@1.1.4+sha256.abcdef"})
        assert _parse(tmp_path, content) == "1.1.4"

    def test_engines_exact(self, tmp_path: Path) -> None:
        assert _parse(tmp_path, json.dumps({"engines": {"bun": "1.0.0"}})) == "1.0.0"

    def test_engines_range_is_not_a_pin(self, tmp_path: Path) -> None:
        assert _parse(tmp_path, json.dumps({"engines": {"bun": "^1.0.0"}})) is None

    def test_other_package_manager(self, tmp_path: Path) -> None:
        assert _parse(tmp_path, json.dumps({"packageManager": "pnpm@9.0.0"})) is None

    def test_invalid_json(self, tmp_path: Path) -> None:
        assert _parse(tmp_path, "{") is None
        assert _parse(tmp_path, "[]") is None

    def test_bun_version_file(self, tmp_path: Path) -> None:
        assert _parse(tmp_path, "1.1.0\n", ".bun-version") == "1.1.0"
        assert _parse(tmp_path, "\n", ".bun-version") is None
