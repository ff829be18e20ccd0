"""Error presentation utilities.

Centralized ToolError formatting and exit code mapping for the CLI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tm.core.errors import ErrorCode, ToolError, exit_code_for
from tm.output.console import Style

if TYPE_CHECKING:
    from tm.output.console import ConsoleProtocol

__all__ = ["print_tool_error", "tool_error_exit_code", "config_error_exit_code"]


def print_tool_error(error: ToolError, console: ConsoleProtocol) -> None:
    """Print a ToolError with a kind-specific hint."""
    console.error(str(error))
    match error:
        case ToolError(kind="unknown_alias" | "version_not_found", tool_id=tool_id):
            console.print(
                f"hint: run `tm versions {tool_id}` to list installable versions", Style.DIM
            )
        case ToolError(kind="schema_mismatch" | "load_failure"):
            console.print("hint: the plugin may be built for a different host version", Style.DIM)
        case ToolError(kind="checksum_mismatch"):
            console.print(
                "the downloaded artifact was discarded; retrying downloads it again", Style.DIM
            )
        case ToolError(kind="executable_not_found"):
            console.print("the install directory was kept for inspection", Style.DIM)
        case _:
            pass
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def tool_error_exit_code(error: ToolError) -> int:
    """Get process exit code for a ToolError."""
    return int(exit_code_for(error.kind))


def config_error_exit_code() -> int:
    return int(ErrorCode.USER_ERROR)
