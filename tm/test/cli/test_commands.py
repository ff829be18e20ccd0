from __future__ import annotations

from pathlib import Path

import pytest
import typer

import tm.cli.commands.detect as detect_cmd
import tm.cli.commands.install as install_cmd
import tm.cli.commands.versions as versions_cmd
from tm.cli.context import CLIContext
from tm.core.errors import ErrorCode
from tm.net.http import MockHttpClient
from tm.output.console import MockConsole
from tm.plugin.pdk import Plugin
from tm.test._support import fake_plugin, make_service, serve_fake


def _patch(
    monkeypatch: pytest.MonkeyPatch,
    module: object,
    tmp_path: Path,
    plugins: dict[str, type[Plugin]] | None = None,
    http: MockHttpClient | None = None,
) -> MockConsole:
    console = MockConsole()
    service = make_service(
        tmp_path, plugins or {"fake": fake_plugin()}, http or MockHttpClient(), console=console
    )
    monkeypatch.setattr(module, "build_context", lambda: CLIContext(service, console))
    return console


def test_install_reports_success(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    http = MockHttpClient()
    serve_fake(http)
    console = _patch(monkeypatch, install_cmd, tmp_path, http=http)

    install_cmd.install(tools=["fake@1.2.0"], force=False, directory=tmp_path)

    assert "OK fake 1.2.0 installed" in console.messages
    assert not console.has_error()


def test_install_second_run_says_already_installed(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    http = MockHttpClient()
    serve_fake(http)
    console = _patch(monkeypatch, install_cmd, tmp_path, http=http)

    install_cmd.install(tools=["fake@1.2.0"], force=False, directory=tmp_path)
    install_cmd.install(tools=["fake@1.2.0"], force=False, directory=tmp_path)

    assert "OK fake 1.2.0 already installed" in console.messages


def test_install_failure_exit_code(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    http = MockHttpClient()
    serve_fake(http)
    console = _patch(monkeypatch, install_cmd, tmp_path, http=http)

    with pytest.raises(typer.Exit) as exc:
        install_cmd.install(tools=["fake@9.9.9", "fake@1.2.0"], force=False, directory=tmp_path)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert "OK fake 1.2.0 installed" in console.messages
    assert any(m.startswith("error: fake: version 9.9.9") for m in console.messages)
    assert "hint: run `tm versions fake` to list installable versions" in console.messages


def test_install_download_failure_is_network_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _patch(monkeypatch, install_cmd, tmp_path)

    with pytest.raises(typer.Exit) as exc:
        install_cmd.install(tools=["fake"], force=False, directory=tmp_path)

    assert exc.value.exit_code == int(ErrorCode.NETWORK_ERROR)


def test_uninstall_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    console = _patch(monkeypatch, install_cmd, tmp_path)

    with pytest.raises(typer.Exit) as exc:
        install_cmd.uninstall(tool="fake", version="1.0.0")

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert "warning: fake 1.0.0 is not installed" in console.messages


def test_versions_lists_catalog(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    plugin = fake_plugin(aliases={"stable": "1.1.0"})
    console = _patch(monkeypatch, versions_cmd, tmp_path, {"fake": plugin})

    versions_cmd.versions(tool="fake", limit=2)

    assert console.messages == [
        "1.2.0  (latest)",
        "1.1.0",
        "... 1 more (use --limit 0)",
        "latest -> 1.2.0",
        "stable -> 1.1.0",
    ]


def test_versions_unknown_tool(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _patch(monkeypatch, versions_cmd, tmp_path)

    with pytest.raises(typer.Exit) as exc:
        versions_cmd.versions(tool="nope", limit=0)

    assert exc.value.exit_code == int(ErrorCode.PLUGIN_ERROR)


def test_resolve_prints_version(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch(monkeypatch, versions_cmd, tmp_path)

    versions_cmd.resolve(tool="fake", spec="1.1", directory=tmp_path)

    assert capsys.readouterr().out == "1.1.0\n"


def test_resolve_invalid_spec(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    console = _patch(monkeypatch, versions_cmd, tmp_path)

    with pytest.raises(typer.Exit) as exc:
        versions_cmd.resolve(tool="fake", spec="1..2", directory=tmp_path)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert console.has_error()


def test_detect_pinned(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".fake-version").write_text("1.0.0\n")
    _patch(monkeypatch, detect_cmd, tmp_path)

    detect_cmd.detect(tool="fake", directory=tmp_path)

    assert capsys.readouterr().out == "1.0.0\n"


def test_detect_nothing_pinned(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    console = _patch(monkeypatch, detect_cmd, tmp_path)

    with pytest.raises(typer.Exit) as exc:
        detect_cmd.detect(tool="fake", directory=tmp_path)

    assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
    assert console.has_warning()


def test_bin_not_installed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    console = _patch(monkeypatch, detect_cmd, tmp_path)

    with pytest.raises(typer.Exit) as exc:
        detect_cmd.bin_path(tool="fake", version="1.2.0")

    assert exc.value.exit_code == int(ErrorCode.ENV_ERROR)
    assert "hint: run `tm install fake@1.2.0`" in console.messages


def test_bin_installed(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    http = MockHttpClient()
    serve_fake(http)
    with make_service(tmp_path, {"fake": fake_plugin()}, http) as service:
        service.install("fake", "1.2.0")
    _patch(monkeypatch, detect_cmd, tmp_path, http=http)

    detect_cmd.bin_path(tool="fake", version="1.2.0")

    out = capsys.readouterr().out.strip()
    assert Path(out) == tmp_path / "store" / "tools" / "fake" / "1.2.0" / "bin" / "fake"


def test_tools_lists_support(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    plugins: dict[str, type[Plugin]] = {
        "fake": fake_plugin(),
        "mac": fake_plugin(name="MacOnly", supported={"macos": ("arm64",)}),
    }
    console = _patch(monkeypatch, detect_cmd, tmp_path, plugins)

    detect_cmd.tools()

    assert console.messages[0] == "fake: Fake (cli)"
    assert console.messages[1].startswith("mac: MacOnly (cli, no build for ")
