"""Tests for services/toolchains.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from tm.core.config import HostConfig
from tm.core.result import Err, Ok
from tm.core.store import Store
from tm.install.pipeline import InstallState
from tm.net.http import MockHttpClient
from tm.output.console import MockConsole
from tm.services.toolchains import InstallRequest, ToolchainService
from tm.test._support import fake_plugin, make_service, serve_fake
from tm.versions.spec import Exact


class TestInstallRequest:
    @pytest.mark.parametrize(
        ("text", "tool_id", "requested"),
        [
            ("zig", "zig", None),
            ("zig@0.13.0", "zig", "0.13.0"),
            (" bun@ latest ", "bun", "latest"),
            ("node@lts/*", "node", "lts/*"),
        ],
    )
    def test_parse(self, text: str, tool_id: str, requested: str | None) -> None:
        request = InstallRequest.parse(text)
        assert request.tool_id == tool_id
        assert request.requested == requested

    def test_str(self) -> None:
        assert str(InstallRequest("zig")) == "zig"
        assert str(InstallRequest("zig", "0.13.0")) == "zig@0.13.0"


class TestResolve:
    def test_explicit_request(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        assert service.resolve("fake", "1.1") == Ok(Exact(1, 1, 0))

    def test_pinned_by_version_file(self, tmp_path: Path) -> None:
        project = tmp_path / "project"
        project.mkdir()
        (project / ".fake-version").write_text("1.0.0\n")
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        assert service.resolve("fake", start_dir=project) == Ok(Exact(1, 0, 0))

    def test_plugin_default_version(self, tmp_path: Path) -> None:
        service = make_service(
            tmp_path, {"fake": fake_plugin(default_version="1.1.0")}, MockHttpClient()
        )
        assert service.resolve("fake", start_dir=tmp_path) == Ok(Exact(1, 1, 0))

    def test_latest_fallback(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        assert service.resolve("fake") == Ok(Exact(1, 2, 0))

    def test_unknown_tool(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        result = service.resolve("nope", "latest")
        assert isinstance(result, Err)
        assert result.error.kind == "load_failure"


class TestInstall:
    def test_install(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http, "1.1.0")
        service = make_service(tmp_path, {"fake": fake_plugin()}, http)

        result = service.install("fake", "1.1")

        assert isinstance(result, Ok)
        assert result.value.version == Exact(1, 1, 0)
        assert result.value.state == InstallState.INSTALLED
        assert [e.version for e in service.installed_versions("fake")] == ["1.1.0"]

    def test_resolution_failure_skips_pipeline(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        plugin = fake_plugin()
        service = make_service(tmp_path, {"fake": plugin}, http)
        result = service.install("fake", "9.9.9")
        assert isinstance(result, Err)
        assert result.error.kind == "version_not_found"
        assert "download_prebuilt" not in plugin.calls
        assert http.calls == []

    def test_install_many_keeps_order_and_isolates_failures(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http, "1.2.0")
        serve_fake(http, "1.0.0")
        plugins = {"fake": fake_plugin(), "broken": fake_plugin(supported={"macos": ("x64",)})}
        service = make_service(tmp_path, plugins, http)
        requests = [
            InstallRequest("fake", "1.2.0"),
            InstallRequest("broken"),
            InstallRequest("fake", "1.0.0"),
            InstallRequest("fake", "1.2.0"),
        ]

        results = service.install_many(requests)

        assert [request for request, _ in results] == requests
        outcomes = [result for _, result in results]
        assert isinstance(outcomes[0], Ok)
        assert isinstance(outcomes[1], Err)
        assert outcomes[1].error.kind == "unsupported_platform"
        assert isinstance(outcomes[2], Ok)
        assert isinstance(outcomes[3], Ok)
        assert outcomes[3].value.reused

    def test_install_many_store_failure_stays_with_its_tool(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http, "1.2.0")
        service = make_service(tmp_path, {"fake": fake_plugin(), "other": fake_plugin()}, http)
        Store(tmp_path / "store").manifest_path("fake").mkdir(parents=True)
        requests = [InstallRequest("fake", "1.2.0"), InstallRequest("other", "1.2.0")]

        results = service.install_many(requests)

        outcomes = [result for _, result in results]
        assert len(outcomes) == 2
        assert isinstance(outcomes[0], Err)
        assert outcomes[0].error.kind == "store_error"
        assert isinstance(outcomes[1], Ok)
        assert outcomes[1].value.primary_path is not None
        assert outcomes[1].value.primary_path.is_file()

    def test_install_many_empty(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        assert service.install_many([]) == []

    def test_uninstall(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        service = make_service(tmp_path, {"fake": fake_plugin()}, http)
        service.install("fake", "1.2.0")

        assert service.uninstall("fake", "1.2.0") == Ok(True)
        assert service.uninstall("fake", "1.2.0") == Ok(False)
        assert service.installed_versions("fake") == []

    def test_uninstall_requires_exact(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        result = service.uninstall("fake", "latest")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_version_spec"


class TestBinPath:
    def test_installed(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        service = make_service(tmp_path, {"fake": fake_plugin()}, http)
        service.install("fake", "1.2.0")
        calls = len(http.calls)

        path = service.bin_path("fake", "1.2.0")

        assert path == Ok(Store(tmp_path / "store").install_dir("fake", "1.2.0") / "bin" / "fake")
        assert len(http.calls) == calls

    def test_alias_is_resolved(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        service = make_service(tmp_path, {"fake": fake_plugin()}, http)
        service.install("fake", "1.2.0")
        assert isinstance(service.bin_path("fake", "latest"), Ok)

    def test_not_installed(self, tmp_path: Path) -> None:
        service = make_service(tmp_path, {"fake": fake_plugin()}, MockHttpClient())
        result = service.bin_path("fake", "1.0.0")
        assert isinstance(result, Err)
        assert result.error.kind == "executable_not_found"
        assert result.error.hint == "run `tm install fake@1.0.0`"


class TestOpen:
    def test_open_reads_config(self, tmp_path: Path) -> None:
        (tmp_path / "config.toml").write_text("[host]\ncatalog_ttl = 60\n", encoding="utf-8")
        opened = ToolchainService.open(tmp_path, console=MockConsole(), http=MockHttpClient())
        assert isinstance(opened, Ok)
        with opened.value as service:
            assert service.config.catalog_ttl == 60
            assert service.store.root == tmp_path
            assert "zig" in service.known_tools()

    def test_open_invalid_config(self, tmp_path: Path) -> None:
        (tmp_path / "config.toml").write_text("[host\n", encoding="utf-8")
        opened = ToolchainService.open(tmp_path, console=MockConsole(), http=MockHttpClient())
        assert isinstance(opened, Err)

    def test_config_drives_catalog_cache(self, tmp_path: Path) -> None:
        service = make_service(
            tmp_path, {"fake": fake_plugin()}, MockHttpClient(), config=HostConfig(catalog_ttl=60)
        )
        service.versions("fake")
        assert Store(tmp_path / "store").catalog_cache_path("fake").exists()
