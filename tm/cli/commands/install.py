from __future__ import annotations

from pathlib import Path

import typer

from tm.cli.commands._helpers import start_dir, unwrap_or_exit
from tm.cli.context import build_context
from tm.core.errors import ErrorCode
from tm.core.result import Err, Ok
from tm.install.cancel import CancelToken
from tm.output.console import Style
from tm.output.errors import print_tool_error, tool_error_exit_code
from tm.services.toolchains import InstallRequest


def install(
    tools: list[str] = typer.Argument(..., help="Tools to install: TOOL or TOOL@VERSION."),
    force: bool = typer.Option(False, "--force", help="Reinstall even if already installed."),
    directory: Path | None = typer.Option(
        None, "--dir", help="Directory to search for version files (default: cwd)."
    ),
) -> None:
    """Install tools into the store.

    Without @VERSION, the version comes from a version file near --dir, the
    plugin's default, or "latest".
    """
    requests = [InstallRequest.parse(text) for text in tools]
    token = CancelToken()

    with build_context() as ctx:
        try:
            results = ctx.service.install_many(
                requests, force=force, cancel=token, start_dir=start_dir(directory)
            )
        except KeyboardInterrupt:
            token.cancel()
            ctx.console.warning("interrupted")
            raise typer.Exit(code=int(ErrorCode.INTERRUPTED))

        exit_code = 0
        for request, result in results:
            match result:
                case Ok(report):
                    status = "already installed" if report.reused else "installed"
                    ctx.console.success(f"{request.tool_id} {report.version} {status}")
                    if report.primary_path is not None:
                        ctx.console.print(f"  {report.primary_path}", Style.DIM)
                    if report.globals_dir is not None:
                        ctx.console.print(f"  globals: {report.globals_dir}", Style.DIM)
                case Err(error):
                    print_tool_error(error, ctx.console)
                    exit_code = exit_code or tool_error_exit_code(error)

        if exit_code:
            raise typer.Exit(code=exit_code)


def uninstall(
    tool: str = typer.Argument(..., help="Tool id (e.g. zig)."),
    version: str = typer.Argument(..., help="Exact installed version."),
) -> None:
    """Remove an installed version."""
    with build_context() as ctx:
        removed = unwrap_or_exit(ctx.service.uninstall(tool, version), ctx)
        if not removed:
            ctx.console.warning(f"{tool} {version} is not installed")
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        ctx.console.success(f"{tool} {version} removed")
