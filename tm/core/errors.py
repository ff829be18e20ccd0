"""Error kinds and exit codes.

``ToolError`` is the single error record surfaced by the plugin gateway,
the resolver, the install pipeline and the version detector. ``kind`` is a
closed set; ``input`` echoes the offending user or plugin value for
resolution failures so the message can be acted upon.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

__all__ = ["ErrorCode", "ErrorKind", "ToolError", "GATEWAY_KINDS", "exit_code_for"]


type ErrorKind = Literal[
    # gateway
    "schema_mismatch",
    "load_failure",
    "execution_trap",
    "unsupported_platform",
    # resolution
    "invalid_version_spec",
    "unknown_alias",
    "version_not_found",
    "catalog_unavailable",
    # install pipeline
    "invalid_plan",
    "download_error",
    "checksum_mismatch",
    "unpack_error",
    "executable_not_found",
    "cancelled",
    # local store
    "store_error",
]

GATEWAY_KINDS: frozenset[str] = frozenset(
    {"schema_mismatch", "load_failure", "execution_trap", "unsupported_platform"}
)


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable.
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    PLUGIN_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    INTERRUPTED = 130

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK


@dataclass(frozen=True, slots=True)
class ToolError:
    """A failed tool operation.

    Attributes:
        kind: What went wrong (see ErrorKind)
        tool_id: Tool the operation was for
        message: Human-readable description
        input: Offending input, echoed back for diagnosis
        hint: Optional remediation hint
    """

    kind: ErrorKind
    tool_id: str
    message: str
    input: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        text = f"{self.tool_id}: {self.message}"
        if self.input is not None:
            text = f"{text} (input: {self.input!r})"
        return text

    @property
    def is_gateway_fault(self) -> bool:
        return self.kind in GATEWAY_KINDS


def exit_code_for(kind: ErrorKind) -> ErrorCode:
    """Map an error kind to the process exit code."""
    match kind:
        case "invalid_version_spec" | "unknown_alias" | "version_not_found":
            return ErrorCode.USER_ERROR
        case "unsupported_platform" | "executable_not_found":
            return ErrorCode.ENV_ERROR
        case "schema_mismatch" | "load_failure" | "execution_trap" | "invalid_plan":
            return ErrorCode.PLUGIN_ERROR
        case "catalog_unavailable" | "download_error" | "checksum_mismatch":
            return ErrorCode.NETWORK_ERROR
        case "unpack_error" | "store_error":
            return ErrorCode.IO_ERROR
        case "cancelled":
            return ErrorCode.INTERRUPTED
