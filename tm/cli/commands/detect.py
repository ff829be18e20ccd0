from __future__ import annotations

from pathlib import Path

import typer

from tm.cli.commands._helpers import start_dir, unwrap_or_exit
from tm.cli.context import build_context
from tm.core.errors import ErrorCode
from tm.core.result import Err, Ok
from tm.output.console import Style


def detect(
    tool: str = typer.Argument(..., help="Tool id (e.g. zig)."),
    directory: Path | None = typer.Option(
        None, "--dir", help="Directory to start searching from (default: cwd)."
    ),
) -> None:
    """Show the version pinned by the nearest version file."""
    with build_context() as ctx:
        found = unwrap_or_exit(ctx.service.detect(tool, start_dir(directory)), ctx)
        if found is None:
            ctx.console.warning(f"no version file pins {tool}")
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        typer.echo(found.raw)
        ctx.console.print(f"from {found.file}", Style.DIM)


def bin_path(
    tool: str = typer.Argument(..., help="Tool id (e.g. zig)."),
    version: str = typer.Argument(..., help="Installed version (exact, or resolved first)."),
) -> None:
    """Print the path of an installed tool's primary executable."""
    with build_context() as ctx:
        path = unwrap_or_exit(ctx.service.bin_path(tool, version), ctx)
        typer.echo(str(path))


def tools() -> None:
    """List tools with a plugin and whether they support this machine."""
    with build_context() as ctx:
        gateway = ctx.service.gateway
        for tool_id in ctx.service.known_tools():
            match gateway.load(tool_id):
                case Err(error):
                    ctx.console.print(f"{tool_id}: failed to load ({error.message})", Style.ERROR)
                case Ok(meta) if meta.supports(gateway.host):
                    ctx.console.print(f"{tool_id}: {meta.name} ({meta.type})")
                case Ok(meta):
                    ctx.console.print(
                        f"{tool_id}: {meta.name} ({meta.type}, no build for {gateway.host})",
                        Style.DIM,
                    )
