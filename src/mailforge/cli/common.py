"""Shared helpers for CLI commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty

console = Console()


class CommandStatus(str, Enum):
    """Outcome of a CLI command."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


_STATUS_STYLES = {
    CommandStatus.OK: ("green", "OK"),
    CommandStatus.WARNING: ("yellow", "WARNING"),
    CommandStatus.ERROR: ("red", "ERROR"),
}


@dataclass
class CommandResult:
    """Message and optional payload rendered at the end of a command."""

    status: CommandStatus
    message: str
    payload: dict[str, Any] = field(default_factory=dict)


def render_result(result: CommandResult) -> None:
    """Print ``result`` as a colored panel."""
    style, title = _STATUS_STYLES[result.status]
    console.print(Panel(result.message, title=title, style=style))
    if result.payload:
        console.print(Pretty(result.payload))


def exit_error(message: str) -> NoReturn:
    """Render ``message`` as an error and exit with status 1."""
    render_result(CommandResult(status=CommandStatus.ERROR, message=message))
    raise typer.Exit(code=1)


__all__ = ["CommandResult", "CommandStatus", "console", "exit_error", "render_result"]
