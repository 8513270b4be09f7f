"""Compose a plain-text email and send it, or render it with ``--dry-run``."""

from __future__ import annotations

import logging
import sys
from typing import Annotated, Optional

import typer

from mailforge.cli.common import CommandResult, CommandStatus, console, exit_error, render_result
from mailforge.config.exceptions import ConfigError
from mailforge.mail.email import SimpleEmail
from mailforge.mail.exceptions import MailError
from mailforge.mail.session import MailSession
from mailforge.mail.transports.console import ConsoleTransport

log = logging.getLogger(__name__)


def _parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        exit_error(f"Invalid header '{raw}'. Expected 'Name: value'.")
    return name.strip(), value.strip()


def _read_body(body: str | None) -> str:
    if body is None or body == "-":
        if sys.stdin.isatty():
            exit_error("No message body given. Use --body or pipe the body on stdin.")
        return sys.stdin.read()
    return body


def _configure_session(
    email: SimpleEmail,
    *,
    host: str | None,
    port: int | None,
    ssl: bool,
    starttls: bool,
    user: str | None,
    password: str | None,
) -> None:
    """Apply CLI connection options, falling back to the ``mail.smtp`` config."""
    if host is None:
        try:
            email.set_mail_session(MailSession.from_config())
        except (ConfigError, MailError) as exc:
            exit_error(f"No SMTP host given and none configured: {exc}")
        return

    email.set_host_name(host)
    if ssl:
        email.set_ssl_on_connect(True)
        if port is not None:
            email.set_ssl_smtp_port(port)
    elif port is not None:
        email.set_smtp_port(port)
    if starttls:
        email.set_start_tls_enabled(True)
    if user:
        email.set_authentication(user, password or "")


def send(  # pylint: disable=too-many-arguments,too-many-locals
    to: Annotated[list[str], typer.Option("--to", "-t", help="Recipient address (repeatable).")],
    sender: Annotated[str, typer.Option("--from", help="Sender address, e.g. 'Name <me@example.com>'.")],
    subject: Annotated[Optional[str], typer.Option("--subject", "-s", help="Subject line.")] = None,
    body: Annotated[Optional[str], typer.Option("--body", "-b", help="Message text ('-' reads stdin).")] = None,
    cc: Annotated[Optional[list[str]], typer.Option("--cc", help="Cc address (repeatable).")] = None,
    bcc: Annotated[Optional[list[str]], typer.Option("--bcc", help="Bcc address (repeatable).")] = None,
    reply_to: Annotated[Optional[list[str]], typer.Option("--reply-to", help="Reply-To address.")] = None,
    header: Annotated[Optional[list[str]], typer.Option("--header", "-H", help="Extra 'Name: value' header.")] = None,
    charset: Annotated[Optional[str], typer.Option("--charset", help="Body charset.")] = None,
    host: Annotated[Optional[str], typer.Option("--host", help="SMTP host (defaults to mail.smtp.host).")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="SMTP port.")] = None,
    ssl: Annotated[bool, typer.Option("--ssl", help="Connect with implicit TLS.")] = False,
    starttls: Annotated[bool, typer.Option("--starttls", help="Upgrade with STARTTLS.")] = False,
    user: Annotated[Optional[str], typer.Option("--user", "-u", help="SMTP username.")] = None,
    password: Annotated[
        Optional[str], typer.Option("--password", envvar="MAILFORGE_SMTP_PASSWORD", help="SMTP password.")
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the message instead of sending it.")] = False,
    raw: Annotated[bool, typer.Option("--raw", help="With --dry-run, print the full message source.")] = False,
) -> None:
    """Send a plain-text email."""
    text = _read_body(body)

    email = SimpleEmail()
    try:
        if dry_run:
            email.transport(ConsoleTransport(console, show_raw=raw))
        else:
            _configure_session(
                email, host=host, port=port, ssl=ssl, starttls=starttls, user=user, password=password
            )
        if charset:
            email.set_charset(charset)
        email.set_from(sender)
        email.add_to(*to)
        if cc:
            email.add_cc(*cc)
        if bcc:
            email.add_bcc(*bcc)
        for address in reply_to or []:
            email.add_reply_to(address)
        for raw_header in header or []:
            email.add_header(*_parse_header(raw_header))
        email.set_subject(subject)
        email.set_msg(text)
        message_id = email.send()
    except MailError as exc:
        log.debug("Send failed", exc_info=True)
        exit_error(str(exc))
    except ValueError as exc:
        exit_error(str(exc))

    if dry_run:
        render_result(CommandResult(status=CommandStatus.WARNING, message=f"Dry run: {message_id} not sent"))
        return
    render_result(
        CommandResult(
            status=CommandStatus.OK,
            message=f"Sent {message_id}",
            payload={"host": email.host_name, "recipients": len(to) + len(cc or []) + len(bcc or [])},
        )
    )


__all__ = ["send"]
