"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import typer

from tm.core.errors import ToolError
from tm.core.result import Err, Result
from tm.output.errors import print_tool_error, tool_error_exit_code

if TYPE_CHECKING:
    from tm.cli.context import CLIContext


def unwrap_or_exit[T](result: Result[T, ToolError], ctx: CLIContext) -> T:
    """Return the value of an Ok result, or print the error and exit.

    This helper reduces boilerplate for the common pattern:
        match result:
            case Err(e):
                print_tool_error(e, ctx.console)
                raise typer.Exit(code=tool_error_exit_code(e))
            case Ok(value):
                ...
    """
    if isinstance(result, Err):
        exit_with_error(result.error, ctx)
    return result.value


def exit_with_error(error: ToolError, ctx: CLIContext) -> NoReturn:
    print_tool_error(error, ctx.console)
    raise typer.Exit(code=tool_error_exit_code(error))


def start_dir(directory: Path | None) -> Path:
    """Directory to search for version files (default: cwd)."""
    return (directory or Path.cwd()).expanduser()
