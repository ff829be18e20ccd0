from __future__ import annotations

import os
from pathlib import Path

import typer

from tm import __version__
from tm.cli.commands.detect import bin_path, detect, tools
from tm.cli.commands.install import install, uninstall
from tm.cli.commands.versions import resolve, versions
from tm.core.errors import ErrorCode
from tm.core.store import STORE_ENV_VAR


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(tools)
app.command()(versions)
app.command()(resolve)
app.command()(install)
app.command()(uninstall)
app.command()(detect)
app.command("bin")(bin_path)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit.",
    ),
    store: Path | None = typer.Option(
        None,
        "--store",
        help=f"Tool store root (default: ${STORE_ENV_VAR} or ~/.tm)",
    ),
) -> None:
    if store is not None:
        try:
            root = store.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --store: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if root.exists() and not root.is_dir():
            typer.echo(f"error: --store '{root}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[STORE_ENV_VAR] = str(root)


def main() -> None:
    app()
