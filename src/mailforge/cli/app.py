"""Typer application exposing the ``mailforge`` command."""

from __future__ import annotations

import logging
from typing import Annotated, Optional

import typer
from rich.table import Table

from mailforge import meta
from mailforge.cli.commands.send import send
from mailforge.cli.common import console, exit_error
from mailforge.logging import LOGGING_LEVEL, TRACE_LEVEL, init_logging, parse_level

app = typer.Typer(
    name=meta.__app_name__,
    help=f"{meta.__app_name__}: {meta.__description__}",
    no_args_is_help=True,
    add_completion=False,
)

app.command("send")(send)

# -v, -vv, -vvv
_VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG, TRACE_LEVEL)


def get_cli_logger() -> logging.Logger:
    """Return the logger used by CLI commands."""
    return logging.getLogger(f"{meta.__app_name__}.cli")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"{meta.__app_name__} {meta.__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit."),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Console log level (TRACE, DEBUG, INFO, SUCCESS, WARNING, ERROR)."),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity (-v INFO, -vv DEBUG, -vvv TRACE)."),
    ] = 0,
) -> None:
    """Compose and send emails from the command line."""
    del version
    if log_level is not None:
        try:
            level = parse_level(log_level)
        except ValueError:
            valid = ", ".join(vars(LOGGING_LEVEL))
            exit_error(f"Invalid log level: {log_level}. Valid levels: {valid}")
    elif verbose:
        level = _VERBOSITY_LEVELS[min(verbose, len(_VERBOSITY_LEVELS) - 1)]
    else:
        return

    level_name = logging.getLevelName(level)
    init_logging(config={"output": "console", "console": {"level": level_name}})
    get_cli_logger().debug("CLI log level set to %s", level_name)


@app.command()
def info(
    full: Annotated[bool, typer.Option("--full", "-f", help="Show full package metadata.")] = False,
) -> None:
    """Show version information."""
    if not full:
        console.print(f"[bold cyan]{meta.__app_name__}[/] version [green]{meta.__version__}[/]")
        return

    table = Table(title=meta.__app_name__, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Name", meta.__app_name__)
    table.add_row("Version", meta.__version__)
    table.add_row("Description", meta.__description__)
    table.add_row("Author", meta.__author__)
    table.add_row("Email", meta.__email__)
    table.add_row("URL", meta.__url__)
    table.add_row("License", meta.__license_type__)
    console.print(table)


if __name__ == "__main__":
    app()
