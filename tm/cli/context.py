from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import typer

from tm.core.result import Err
from tm.output.console import ConsoleProtocol, RichConsole
from tm.output.errors import config_error_exit_code
from tm.services.toolchains import ToolchainService

if TYPE_CHECKING:
    from tm.core.store import Store


@dataclass(frozen=True, slots=True)
class CLIContext:
    service: ToolchainService
    console: ConsoleProtocol

    @property
    def store(self) -> Store:
        return self.service.store

    def __enter__(self) -> CLIContext:
        return self

    def __exit__(self, *exc: object) -> None:
        self.service.close()


def build_context() -> CLIContext:
    """Open the service for the current store ($TM_HOME, set by --store)."""
    console = RichConsole()
    opened = ToolchainService.open(None, console=console)
    if isinstance(opened, Err):
        typer.echo(f"error: {opened.error}", err=True)
        raise typer.Exit(code=config_error_exit_code())
    return CLIContext(service=opened.value, console=console)
