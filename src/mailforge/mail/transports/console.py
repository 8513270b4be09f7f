"""Console transport for dry runs.

Renders the built message with rich instead of delivering it. Useful in
development and behind the CLI ``--dry-run`` flag.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mailforge.mail.transport import MailTransport

if TYPE_CHECKING:
    from email.message import EmailMessage

__all__ = ["ConsoleTransport"]

log = logging.getLogger(__name__)

_SUMMARY_HEADERS = ("From", "To", "Cc", "Bcc", "Reply-To", "Subject", "Date", "Message-ID")


class ConsoleTransport(MailTransport):
    """Print messages to a rich console.

    Args:
        console: Target console; defaults to a new stdout console.
        show_raw: Print the full RFC 5322 source instead of a summary.

    Attributes:
        sent: Messages handed to :meth:`send`, in order.
    """

    def __init__(self, console: Console | None = None, *, show_raw: bool = False) -> None:
        self.console = console or Console()
        self.show_raw = show_raw
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.sent.append(message)
        log.info("Dry-run: message %s not delivered", message.get("Message-ID", "<unknown>"))

        if self.show_raw:
            self.console.print(message.as_string(), markup=False, highlight=False)
            return

        table = Table(show_header=False, box=None)
        table.add_column("Header", style="dim")
        table.add_column("Value")
        for header in _SUMMARY_HEADERS:
            value = message.get(header)
            if value:
                table.add_row(header, str(value))
        for header, value in message.items():
            if header not in _SUMMARY_HEADERS and header.lower().startswith("x-"):
                table.add_row(header, str(value))

        body = message.get_body(("plain", "html"))
        content = body.get_content() if body is not None else ""

        self.console.print(Panel(table, title="Email (dry run)", style="cyan"))
        if content:
            self.console.print(content, markup=False, highlight=False)
