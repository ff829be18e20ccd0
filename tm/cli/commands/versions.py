from __future__ import annotations

from pathlib import Path

import typer

from tm.cli.commands._helpers import start_dir, unwrap_or_exit
from tm.cli.context import build_context
from tm.output.console import Style


def versions(
    tool: str = typer.Argument(..., help="Tool id (e.g. zig)."),
    limit: int = typer.Option(20, "--limit", "-n", help="Show at most N versions (0 = all)."),
) -> None:
    """List installable versions of a tool, newest first."""
    with build_context() as ctx:
        catalog = unwrap_or_exit(ctx.service.versions(tool), ctx)
        installed = {entry.version for entry in ctx.service.installed_versions(tool)}

        shown = catalog.versions if limit <= 0 else catalog.versions[:limit]
        for version in shown:
            tags: list[str] = []
            if version == catalog.latest:
                tags.append("latest")
            if str(version) in installed:
                tags.append("installed")
            suffix = f"  ({', '.join(tags)})" if tags else ""
            style = Style.SUCCESS if str(version) in installed else Style.DEFAULT
            ctx.console.print(f"{version}{suffix}", style)

        hidden = len(catalog.versions) - len(shown)
        if hidden > 0:
            ctx.console.print(f"... {hidden} more (use --limit 0)", Style.DIM)
        if catalog.canary is not None:
            ctx.console.print(f"canary: {catalog.canary}", Style.DIM)
        for name, target in sorted(catalog.aliases.items()):
            ctx.console.print(f"{name} -> {target}", Style.DIM)


def resolve(
    tool: str = typer.Argument(..., help="Tool id (e.g. zig)."),
    spec: str | None = typer.Argument(
        None, help="Version, alias, 'latest' or 'canary' (default: pinned version)."
    ),
    directory: Path | None = typer.Option(
        None, "--dir", help="Directory to search for version files (default: cwd)."
    ),
) -> None:
    """Print the exact version a request resolves to."""
    with build_context() as ctx:
        version = unwrap_or_exit(
            ctx.service.resolve(tool, spec, start_dir=start_dir(directory)), ctx
        )
        typer.echo(str(version))
