"""Tests for install/pipeline.py - the full install state machine on mocks."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

import pytest

from tm.core.result import Err, Ok
from tm.core.store import Store
from tm.install.cancel import CancelToken
from tm.install.pipeline import InstallPipeline, InstallState
from tm.install.state import get_installed
from tm.net.http import HttpError, MockHttpClient
from tm.output.console import MockConsole
from tm.plugin.schema import (
    DeclareGlobalsLookupInput,
    DeclareGlobalsLookupOutput,
    DownloadPrebuiltInput,
    DownloadPrebuiltOutput,
    PostInstallInput,
    PostInstallOutput,
    UnpackArchiveInput,
    UnpackArchiveOutput,
)
from tm.test._support import (
    FakePlugin,
    fake_download_url,
    fake_plugin,
    make_gateway,
    minisign_pair,
    serve_fake,
    sha256_hex,
)
from tm.versions.spec import Alias, Exact

V = Exact(1, 2, 0)
FULL_RUN = (
    InstallState.PLANNING,
    InstallState.DOWNLOADING,
    InstallState.VERIFYING,
    InstallState.UNPACKING,
    InstallState.LOCATING,
    InstallState.INSTALLED,
)


class Harness:
    def __init__(
        self,
        tmp_path: Path,
        plugin: type[FakePlugin],
        http: MockHttpClient | None = None,
        environ: dict[str, str] | None = None,
    ) -> None:
        self.http = http or MockHttpClient()
        self.console = MockConsole()
        self.store = Store(tmp_path / "store")
        self.plugin = plugin
        self.gateway = make_gateway(tmp_path, {"fake": plugin}, self.http, console=self.console)
        self.pipeline = InstallPipeline(
            gateway=self.gateway,
            store=self.store,
            http=self.http,
            console=self.console,
            environ=environ or {},
        )

    def temp_files(self) -> list[str]:
        temp = self.store.temp_dir("fake")
        return sorted(p.name for p in temp.iterdir()) if temp.is_dir() else []


class WrongPrefixPlugin(FakePlugin):
    def download_prebuilt(self, input: DownloadPrebuiltInput) -> DownloadPrebuiltOutput:
        return DownloadPrebuiltOutput(
            download_url=fake_download_url(input.context.version), archive_prefix="not-there"
        )


def _verified_plugin(data: bytes, **attrs: object) -> type[FakePlugin]:
    return fake_plugin(checksum=sha256_hex(data), **attrs)


# =============================================================================
# Happy paths
# =============================================================================


class TestInstall:
    def test_full_run(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        h = Harness(tmp_path, _verified_plugin(data), http)

        report = h.pipeline.install("fake", V)

        assert report.ok
        assert report.transitions == FULL_RUN
        assert report.primary == "fake"
        assert report.primary_path == h.store.install_dir("fake", "1.2.0") / "bin" / "fake"
        assert report.primary_path.is_file()
        assert not report.reused
        assert "fake: checksum verified" in h.console.messages
        assert "fake 1.2.0: unpacking" in h.console.messages

        entry = get_installed(h.store, "fake", "1.2.0")
        assert entry is not None
        assert entry.executables == {"fake": "bin/fake"}

    def test_reinstall_reuses_without_plugin_calls(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        h = Harness(tmp_path, _verified_plugin(data), http)
        h.pipeline.install("fake", V)
        calls_before = list(h.plugin.calls)
        http_before = len(http.calls)

        report = h.pipeline.install("fake", V)

        assert report.ok
        assert report.reused
        assert report.transitions == (InstallState.INSTALLED,)
        assert report.primary_path is not None and report.primary_path.is_file()
        assert h.plugin.calls == calls_before
        assert len(http.calls) == http_before
        assert "fake 1.2.0: already installed" in h.console.messages

    def test_force_reinstalls(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        h = Harness(tmp_path, _verified_plugin(data), http)
        h.pipeline.install("fake", V)

        report = h.pipeline.install("fake", V, force=True)

        assert report.transitions == FULL_RUN
        assert not report.reused

    def test_missing_binary_is_reinstalled(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        h = Harness(tmp_path, _verified_plugin(data), http)
        first = h.pipeline.install("fake", V)
        assert first.primary_path is not None
        first.primary_path.unlink()

        assert h.pipeline.installed("fake", V) is None
        assert h.pipeline.install("fake", V).transitions == FULL_RUN

    def test_downloaded_artifact_reused(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        h = Harness(tmp_path, _verified_plugin(data), http)
        h.pipeline.install("fake", V)
        h.pipeline.install("fake", V, force=True)
        assert http.count("download") == 1
        assert "fake: reusing fake-1.2.0.tar.gz" in h.console.messages

    def test_no_checksum_warns(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        h = Harness(tmp_path, fake_plugin(), http)

        report = h.pipeline.install("fake", V)

        assert report.ok
        assert report.warnings == ("no checksum published, artifact not verified",)
        assert "warning: fake: no checksum published, artifact not verified" in h.console.messages

    def test_checksum_list(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        sums_url = f"{fake_download_url('1.2.0')}.sha256"
        http.set_text(sums_url, f"{'0' * 64}  other.zip\n{sha256_hex(data)}  fake-1.2.0.tar.gz\n")
        h = Harness(tmp_path, fake_plugin(checksum_url=sums_url), http)

        assert h.pipeline.install("fake", V).ok
        assert "fake-1.2.0.tar.gz.sha256" in h.temp_files()

    def test_minisign_signature(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        key, sig = minisign_pair(data)
        http.set_text(fake_download_url("1.2.0") + ".minisig", sig)
        h = Harness(tmp_path, fake_plugin(public_key=key), http)

        report = h.pipeline.install("fake", V)

        assert report.ok
        assert "fake: signature verified" in h.console.messages

    def test_explicit_minisig_url(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        key, sig = minisign_pair(data)
        url = "https://example.com/sigs/fake.minisig"
        http.set_text(url, sig)
        h = Harness(tmp_path, fake_plugin(public_key=key, checksum_url=url), http)
        assert h.pipeline.install("fake", V).ok

    def test_signed_checksum_list(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        sums_url = "https://example.com/fake/SHASUMS256.txt"
        sums = f"{sha256_hex(data)}  fake-1.2.0.tar.gz\n"
        key, sig = minisign_pair(sums.encode())
        http.set_text(sums_url, sums)
        http.set_text(sums_url + ".minisig", sig)
        h = Harness(tmp_path, fake_plugin(checksum_url=sums_url, public_key=key), http)
        assert h.pipeline.install("fake", V).ok

    def test_missing_secondary_warns(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        plugin = fake_plugin(exes={"fake": ("bin/fake", True), "extra": ("bin/extra", False)})
        h = Harness(tmp_path, plugin, http)

        report = h.pipeline.install("fake", V)

        assert report.ok
        assert set(report.executables) == {"fake"}
        assert "executable bin/extra not found, skipping extra" in report.warnings

    def test_download_name_override(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        data = serve_fake(http)
        h = Harness(tmp_path, _verified_plugin(data, download_name="custom.tar.gz"), http)
        assert h.pipeline.install("fake", V).ok
        assert h.temp_files() == ["custom.tar.gz"]

    def test_requires_exact_version(self, tmp_path: Path) -> None:
        h = Harness(tmp_path, fake_plugin())
        with pytest.raises(TypeError):
            h.pipeline.install("fake", Alias("latest"))  # type: ignore[arg-type]


# =============================================================================
# Failures
# =============================================================================


class TestInstallFailures:
    def test_checksum_mismatch_discards_artifact(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        h = Harness(tmp_path, fake_plugin(checksum="f" * 64), http)

        report = h.pipeline.install("fake", V)

        assert not report.ok
        assert report.error is not None
        assert report.error.kind == "checksum_mismatch"
        assert report.transitions == (
            InstallState.PLANNING,
            InstallState.DOWNLOADING,
            InstallState.VERIFYING,
            InstallState.FAILED,
        )
        assert h.temp_files() == []
        assert not h.store.install_dir("fake", "1.2.0").exists()
        assert get_installed(h.store, "fake", "1.2.0") is None
        assert "fake 1.2.0: failed (checksum_mismatch)" in h.console.messages

    def test_checksum_list_without_entry(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        sums_url = "https://example.com/fake/sums.txt"
        http.set_text(sums_url, f"{'0' * 64}  other.zip\n")
        h = Harness(tmp_path, fake_plugin(checksum_url=sums_url), http)

        report = h.pipeline.install("fake", V)

        assert report.error is not None
        assert report.error.kind == "checksum_mismatch"
        assert h.temp_files() == []

    def test_bad_signature(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        key, sig = minisign_pair(b"something else")
        http.set_text(fake_download_url("1.2.0") + ".minisig", sig)
        h = Harness(tmp_path, fake_plugin(public_key=key), http)

        report = h.pipeline.install("fake", V)

        assert report.error is not None
        assert report.error.kind == "checksum_mismatch"

    def test_download_error(self, tmp_path: Path) -> None:
        h = Harness(tmp_path, fake_plugin())
        report = h.pipeline.install("fake", V)
        assert report.error is not None
        assert report.error.kind == "download_error"
        assert "HTTP 404" in report.error.message
        assert report.transitions[-2:] == (InstallState.DOWNLOADING, InstallState.FAILED)

    def test_checksum_list_unreachable(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        sums_url = "https://example.com/fake/sums.txt"
        http.set_text(sums_url, HttpError(url=sums_url, status=500, message="boom"))
        h = Harness(tmp_path, fake_plugin(checksum_url=sums_url), http)
        report = h.pipeline.install("fake", V)
        assert report.error is not None
        assert report.error.kind == "download_error"

    def test_unsupported_host_never_touches_network(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        h = Harness(tmp_path, fake_plugin(supported={"macos": ("arm64",)}), http)

        report = h.pipeline.install("fake", V)

        assert report.error is not None
        assert report.error.kind == "unsupported_platform"
        assert http.calls == []
        assert "download_prebuilt" not in h.plugin.calls

    def test_non_https_plan_rejected(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        plugin = fake_plugin(checksum_url="http://example.com/sums.txt")
        report = Harness(tmp_path, plugin, http).pipeline.install("fake", V)
        assert report.error is not None
        assert report.error.kind == "invalid_plan"
        assert http.calls == []

    def test_download_name_with_separator_rejected(self, tmp_path: Path) -> None:
        report = Harness(tmp_path, fake_plugin(download_name="../x.tar.gz")).pipeline.install(
            "fake", V
        )
        assert report.error is not None
        assert report.error.kind == "invalid_plan"

    def test_missing_primary_keeps_install_dir(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http, with_bin=False)
        h = Harness(tmp_path, fake_plugin(), http)

        report = h.pipeline.install("fake", V)

        assert report.error is not None
        assert report.error.kind == "executable_not_found"
        assert (h.store.install_dir("fake", "1.2.0") / "README").is_file()
        assert get_installed(h.store, "fake", "1.2.0") is None

    def test_unpack_error(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        http.set_download(fake_download_url("1.2.0"), b"not an archive")
        report = Harness(tmp_path, fake_plugin(), http).pipeline.install("fake", V)
        assert report.error is not None
        assert report.error.kind == "unpack_error"

    def test_empty_after_prefix(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        plugin = fake_plugin(WrongPrefixPlugin)
        report = Harness(tmp_path, plugin, http).pipeline.install("fake", V)
        assert report.error is not None
        assert report.error.kind == "unpack_error"
        assert "nothing to unpack" in report.error.message

    def test_cancelled_before_start(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        token = CancelToken()
        token.cancel()
        report = Harness(tmp_path, fake_plugin(), http).pipeline.install("fake", V, cancel=token)
        assert report.error is not None
        assert report.error.kind == "cancelled"
        assert report.transitions == (InstallState.FAILED,)
        assert http.calls == []


# =============================================================================
# Optional hooks
# =============================================================================


class HookedPlugin(FakePlugin):
    """Unpacks by itself, patches the tree afterwards and declares globals."""

    lookup_dirs: ClassVar[tuple[str, ...]] = ("$FAKE_GLOBALS", "$HOME/.fake/global")

    def unpack_archive(self, input: UnpackArchiveInput) -> UnpackArchiveOutput:
        type(self).calls.append("unpack_archive")
        assert self.host.exists(input.input_file)
        self.host.write_text(f"{input.output_dir}/bin/fake", "#!/bin/sh\n")
        self.host.make_executable(f"{input.output_dir}/bin/fake")
        return UnpackArchiveOutput()

    def post_install(self, input: PostInstallInput) -> PostInstallOutput:
        type(self).calls.append("post_install")
        self.host.write_text(f"{input.context.install_dir}/patched", "yes")
        return PostInstallOutput()

    def declare_globals_lookup(
        self, input: DeclareGlobalsLookupInput
    ) -> DeclareGlobalsLookupOutput:
        type(self).calls.append("declare_globals_lookup")
        return DeclareGlobalsLookupOutput(lookup_dirs=self.lookup_dirs)


class TestOptionalHooks:
    def test_plugin_unpack_and_post_install(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        plugin = fake_plugin(HookedPlugin)
        h = Harness(tmp_path, plugin, http)

        report = h.pipeline.install("fake", V)

        assert report.ok
        install_dir = h.store.install_dir("fake", "1.2.0")
        assert (install_dir / "patched").read_text() == "yes"
        assert not (install_dir / "README").exists()
        assert plugin.calls.index("unpack_archive") < plugin.calls.index("post_install")
        assert plugin.calls.index("post_install") < plugin.calls.index("locate_executables")

    def test_globals_dir_from_environment(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        home = tmp_path / "home"
        (home / ".fake" / "global").mkdir(parents=True)
        h = Harness(tmp_path, fake_plugin(HookedPlugin), http, environ={"HOME": str(home)})

        report = h.pipeline.install("fake", V)

        assert report.globals_dir == home / ".fake" / "global"
        entry = get_installed(h.store, "fake", "1.2.0")
        assert entry is not None
        assert entry.globals_dir == str(home / ".fake" / "global")

    def test_no_existing_globals_dir(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        h = Harness(tmp_path, fake_plugin(HookedPlugin), http, environ={"HOME": str(tmp_path)})
        report = h.pipeline.install("fake", V)
        assert report.ok
        assert report.globals_dir is None


class TestUninstall:
    def test_uninstall(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        h = Harness(tmp_path, fake_plugin(), http)
        h.pipeline.install("fake", V)

        assert h.pipeline.uninstall("fake", V) == Ok(True)
        assert not h.store.install_dir("fake", "1.2.0").exists()
        assert h.pipeline.installed("fake", V) is None
        assert h.pipeline.uninstall("fake", V) == Ok(False)

    def test_uninstall_store_failure(self, tmp_path: Path) -> None:
        h = Harness(tmp_path, fake_plugin())
        install_dir = h.store.install_dir("fake", "1.2.0")
        install_dir.parent.mkdir(parents=True)
        install_dir.write_text("not a directory")

        result = h.pipeline.uninstall("fake", V)

        assert isinstance(result, Err)
        assert result.error.kind == "store_error"


class TestStoreFailures:
    """Local filesystem failures end the run as a report, never an exception."""

    def test_unwritable_manifest(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        h = Harness(tmp_path, fake_plugin(), http)
        h.store.manifest_path("fake").mkdir(parents=True)

        report = h.pipeline.install("fake", V)

        assert report.state == InstallState.FAILED
        assert report.transitions == (*FULL_RUN[:-1], InstallState.FAILED)
        assert report.error is not None
        assert report.error.kind == "store_error"
        assert "fake 1.2.0: failed (store_error)" in h.console.messages

    def test_custom_unpack_cannot_prepare_install_dir(self, tmp_path: Path) -> None:
        http = MockHttpClient()
        serve_fake(http)
        h = Harness(tmp_path, fake_plugin(HookedPlugin), http)
        # a file where the tool directory should be
        h.store.tool_dir("fake").parent.mkdir(parents=True)
        h.store.tool_dir("fake").write_text("")

        report = h.pipeline.install("fake", V)

        assert report.error is not None
        assert report.error.kind == "unpack_error"
        assert "cannot prepare" in report.error.message
