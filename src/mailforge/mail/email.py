"""Fluent email composition.

:class:`Email` collects addresses, headers, a text body and SMTP session
settings, then assembles a standard library
:class:`~email.message.EmailMessage` exactly once. Parsing, header encoding
and delivery are delegated to :mod:`email` and the configured transport.

Lifecycle:

1. configure the session (host, ports, TLS, credentials, timeouts) or
   attach a :class:`~mailforge.mail.session.MailSession`;
2. set the sender, recipients, headers, subject and body;
3. :meth:`Email.build_mime_message` (at most once);
4. :meth:`Email.send_mime_message`, or :meth:`Email.send` for steps 3 and 4.

Once a session exists, session settings are frozen; once the message is
built, building again raises :class:`MailStateError`.

Examples:
    >>> email = (
    ...     SimpleEmail()
    ...     .set_host_name("localhost")
    ...     .set_from("sender@example.com", "Sender")
    ...     .add_to("user@example.com")
    ...     .set_subject("Greetings")
    ...     .set_msg("Hello")
    ... )
    >>> email.build_mime_message()["Subject"]
    'Greetings'
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import format_datetime, make_msgid
from typing import TYPE_CHECKING, Union

from mailforge.limits import MailLimits, get_mail_limits
from mailforge.mail.address import AddressLike, parse_address, parse_address_list
from mailforge.mail.constants import (
    DEFAULT_CHARSET,
    DEFAULT_SMTP_PORT,
    DEFAULT_SOCKET_TIMEOUT,
    DEFAULT_SSL_SMTP_PORT,
    HEADER_DATE,
    HEADER_MESSAGE_ID,
    TEXT_PLAIN,
)
from mailforge.mail.exceptions import (
    MailConfigurationError,
    MailError,
    MailStateError,
    MailTransportError,
    MailValidationError,
)
from mailforge.mail.session import MailSession
from mailforge.mail.transport import AsyncMailTransport, AsyncTransportWrapper, MailTransport
from mailforge.mail.transports.smtp import SMTPCredentials

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

__all__ = ["Email", "SimpleEmail"]

log = logging.getLogger(__name__)

AnyTransport = Union[MailTransport, AsyncMailTransport]

# RFC 5322 field names: printable US-ASCII except colon
_HEADER_NAME_PATTERN = re.compile(r"^[!-9;-~]+$")


def _contains_line_break(value: str) -> bool:
    return "\r" in value or "\n" in value


class Email(ABC):
    """Base class for composable emails.

    Subclasses decide how :meth:`set_msg` turns text into a body.

    Args:
        session: Preconfigured SMTP session; locks the session setters.
        transport: Delivery backend; defaults to an SMTP transport created
            from the session.
        limits: Recipient and header limits; defaults to the configured ones.
    """

    def __init__(
        self,
        *,
        session: MailSession | None = None,
        transport: AnyTransport | None = None,
        limits: MailLimits | None = None,
    ) -> None:
        self._limits = limits or get_mail_limits()
        self._transport = transport

        self._session: MailSession | None = session
        self._host_name: str | None = None
        self._smtp_port = DEFAULT_SMTP_PORT
        self._ssl_smtp_port = DEFAULT_SSL_SMTP_PORT
        self._ssl_on_connect = False
        self._start_tls_enabled = False
        self._start_tls_required = False
        self._ssl_check_server_identity = True
        self._credentials: SMTPCredentials | None = None
        self._socket_timeout = DEFAULT_SOCKET_TIMEOUT
        self._socket_connection_timeout = DEFAULT_SOCKET_TIMEOUT
        self._bounce_address: str | None = None
        self._debug = False

        self._charset = DEFAULT_CHARSET
        self._from: Address | None = None
        self._to: list[Address] = []
        self._cc: list[Address] = []
        self._bcc: list[Address] = []
        self._reply_to: list[Address] = []
        self._headers: dict[str, str] = {}
        self._subject: str | None = None
        self._content: str | None = None
        self._content_type: str | None = None
        self._sent_date: datetime | None = None

        self._message: EmailMessage | None = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(from={self._from!s}, to={len(self._to)}, cc={len(self._cc)}, "
            f"bcc={len(self._bcc)}, built={self._message is not None})"
        )

    # ─────────────────────────────────────────────────────────────────────
    # Session settings
    # ─────────────────────────────────────────────────────────────────────

    def _check_session_not_initialized(self) -> None:
        if self._session is not None:
            raise MailStateError("The mail session is already initialized")

    def set_host_name(self, host: str) -> Email:
        """Set the SMTP server host name."""
        self._check_session_not_initialized()
        if not host or not host.strip():
            raise MailValidationError("Host name can not be empty")
        self._host_name = host.strip()
        return self

    @property
    def host_name(self) -> str | None:
        """SMTP host of the session, else the configured host, else ``None``."""
        if self._session is not None:
            return self._session.host
        return self._host_name

    def set_smtp_port(self, port: int) -> Email:
        """Set the plain SMTP port (default 25)."""
        self._check_session_not_initialized()
        if port < 1:
            raise ValueError(f"Cannot connect to a port number that is less than 1 ( {port} )")
        self._smtp_port = port
        return self

    @property
    def smtp_port(self) -> int:
        return self._session.port if self._session is not None else self._smtp_port

    def set_ssl_smtp_port(self, port: int) -> Email:
        """Set the port used with implicit TLS (default 465)."""
        self._check_session_not_initialized()
        if port < 1:
            raise ValueError(f"Cannot connect to a port number that is less than 1 ( {port} )")
        self._ssl_smtp_port = port
        return self

    @property
    def ssl_smtp_port(self) -> int:
        return self._session.ssl_port if self._session is not None else self._ssl_smtp_port

    def set_ssl_on_connect(self, enabled: bool) -> Email:
        """Connect with implicit TLS (SMTPS)."""
        self._check_session_not_initialized()
        self._ssl_on_connect = enabled
        return self

    @property
    def ssl_on_connect(self) -> bool:
        return self._session.ssl_on_connect if self._session is not None else self._ssl_on_connect

    def set_start_tls_enabled(self, enabled: bool) -> Email:
        """Upgrade plain connections with STARTTLS when offered."""
        self._check_session_not_initialized()
        self._start_tls_enabled = enabled
        return self

    @property
    def start_tls_enabled(self) -> bool:
        return self._session.start_tls_enabled if self._session is not None else self._start_tls_enabled

    def set_start_tls_required(self, required: bool) -> Email:
        """Fail delivery when the server does not offer STARTTLS."""
        self._check_session_not_initialized()
        self._start_tls_required = required
        return self

    @property
    def start_tls_required(self) -> bool:
        return self._session.start_tls_required if self._session is not None else self._start_tls_required

    def set_ssl_check_server_identity(self, enabled: bool) -> Email:
        """Verify that the server certificate matches the host name."""
        self._check_session_not_initialized()
        self._ssl_check_server_identity = enabled
        return self

    @property
    def ssl_check_server_identity(self) -> bool:
        if self._session is not None:
            return self._session.check_server_identity
        return self._ssl_check_server_identity

    def set_authentication(self, username: str, password: str) -> Email:
        """Authenticate with SMTP AUTH using ``username`` and ``password``."""
        self._check_session_not_initialized()
        if not username:
            raise MailValidationError("Username can not be empty")
        self._credentials = SMTPCredentials(username=username, password=password)
        return self

    @property
    def credentials(self) -> SMTPCredentials | None:
        return self._session.credentials if self._session is not None else self._credentials

    def set_socket_timeout(self, seconds: float) -> Email:
        """Set the socket read/write timeout in seconds."""
        self._check_session_not_initialized()
        if seconds <= 0:
            raise ValueError("Socket timeout must be greater than 0")
        self._socket_timeout = float(seconds)
        return self

    @property
    def socket_timeout(self) -> float:
        return self._session.socket_timeout if self._session is not None else self._socket_timeout

    def set_socket_connection_timeout(self, seconds: float) -> Email:
        """Set the TCP connect timeout in seconds."""
        self._check_session_not_initialized()
        if seconds <= 0:
            raise ValueError("Socket connection timeout must be greater than 0")
        self._socket_connection_timeout = float(seconds)
        return self

    @property
    def socket_connection_timeout(self) -> float:
        if self._session is not None:
            return self._session.connection_timeout
        return self._socket_connection_timeout

    def set_bounce_address(self, email: str) -> Email:
        """Set the envelope sender that receives delivery failure reports."""
        self._check_session_not_initialized()
        self._bounce_address = parse_address(email).addr_spec
        return self

    @property
    def bounce_address(self) -> str | None:
        return self._session.bounce_address if self._session is not None else self._bounce_address

    def set_debug(self, enabled: bool) -> Email:
        """Log the SMTP protocol exchange when sending."""
        self._check_session_not_initialized()
        self._debug = enabled
        return self

    @property
    def debug(self) -> bool:
        return self._session.debug if self._session is not None else self._debug

    def set_mail_session(self, session: MailSession) -> Email:
        """Use ``session`` for delivery; its settings win over the setters."""
        if session is None:
            raise MailValidationError("No mail session supplied")
        self._session = session
        return self

    def get_mail_session(self) -> MailSession:
        """Return the session, creating it from the current settings once.

        Raises:
            MailConfigurationError: If no host name was configured.
        """
        if self._session is None:
            if not self._host_name:
                raise MailConfigurationError("Cannot find valid hostname for mail session")
            self._session = MailSession(
                host=self._host_name,
                port=self._smtp_port,
                ssl_port=self._ssl_smtp_port,
                ssl_on_connect=self._ssl_on_connect,
                start_tls_enabled=self._start_tls_enabled,
                start_tls_required=self._start_tls_required,
                check_server_identity=self._ssl_check_server_identity,
                credentials=self._credentials,
                socket_timeout=self._socket_timeout,
                connection_timeout=self._socket_connection_timeout,
                bounce_address=self._bounce_address,
                debug=self._debug,
            )
            log.debug("Created mail session for %s:%s", self._session.host, self._session.effective_port)
        return self._session

    def transport(self, transport: AnyTransport) -> Email:
        """Deliver through ``transport`` instead of the session's SMTP server."""
        self._transport = transport
        return self

    # ─────────────────────────────────────────────────────────────────────
    # Addresses
    # ─────────────────────────────────────────────────────────────────────

    def set_charset(self, charset: str) -> Email:
        """Set the charset used to encode the body."""
        if not charset or not charset.strip():
            raise MailValidationError("Charset can not be empty")
        self._charset = charset.strip().lower()
        return self

    @property
    def charset(self) -> str:
        return self._charset

    def set_from(self, email: AddressLike, name: str | None = None) -> Email:
        """Set the ``From`` address."""
        self._from = parse_address(email, name)
        return self

    @property
    def from_address(self) -> Address | None:
        return self._from

    def _recipient_count(self) -> int:
        return len(self._to) + len(self._cc) + len(self._bcc)

    def _check_recipient_limit(self, count: int) -> None:
        if count > self._limits.max_recipients:
            raise MailValidationError(f"Maximum of {self._limits.max_recipients} recipients exceeded")

    def _parse_many(self, emails: tuple[AddressLike, ...], name: str | None) -> list[Address]:
        if not emails:
            raise MailValidationError("Address List provided was invalid")
        if name is not None and len(emails) != 1:
            raise MailValidationError("A display name can only be given with a single address")
        return [parse_address(email, name) for email in emails]

    def add_to(self, *emails: AddressLike, name: str | None = None) -> Email:
        """Append one or more ``To`` recipients."""
        addresses = self._parse_many(emails, name)
        self._check_recipient_limit(self._recipient_count() + len(addresses))
        self._to.extend(addresses)
        return self

    def add_cc(self, *emails: AddressLike, name: str | None = None) -> Email:
        """Append one or more ``Cc`` recipients."""
        addresses = self._parse_many(emails, name)
        self._check_recipient_limit(self._recipient_count() + len(addresses))
        self._cc.extend(addresses)
        return self

    def add_bcc(self, *emails: AddressLike, name: str | None = None) -> Email:
        """Append one or more ``Bcc`` recipients."""
        addresses = self._parse_many(emails, name)
        self._check_recipient_limit(self._recipient_count() + len(addresses))
        self._bcc.extend(addresses)
        return self

    def add_reply_to(self, email: AddressLike, name: str | None = None) -> Email:
        """Append a ``Reply-To`` address."""
        self._reply_to.append(parse_address(email, name))
        return self

    def _replacement_list(self, values: Iterable[AddressLike], current: list[Address]) -> list[Address]:
        addresses = parse_address_list(values)
        if not addresses:
            raise MailValidationError("Address List provided was invalid")
        if current is not self._reply_to:
            self._check_recipient_limit(self._recipient_count() - len(current) + len(addresses))
        return addresses

    def set_to(self, emails: Iterable[AddressLike]) -> Email:
        """Replace the ``To`` list."""
        self._to = self._replacement_list(emails, self._to)
        return self

    def set_cc(self, emails: Iterable[AddressLike]) -> Email:
        """Replace the ``Cc`` list."""
        self._cc = self._replacement_list(emails, self._cc)
        return self

    def set_bcc(self, emails: Iterable[AddressLike]) -> Email:
        """Replace the ``Bcc`` list."""
        self._bcc = self._replacement_list(emails, self._bcc)
        return self

    def set_reply_to(self, emails: Iterable[AddressLike]) -> Email:
        """Replace the ``Reply-To`` list."""
        self._reply_to = self._replacement_list(emails, self._reply_to)
        return self

    @property
    def to_addresses(self) -> list[Address]:
        return list(self._to)

    @property
    def cc_addresses(self) -> list[Address]:
        return list(self._cc)

    @property
    def bcc_addresses(self) -> list[Address]:
        return list(self._bcc)

    @property
    def reply_to_addresses(self) -> list[Address]:
        return list(self._reply_to)

    # ─────────────────────────────────────────────────────────────────────
    # Headers and content
    # ─────────────────────────────────────────────────────────────────────

    def _check_header_value(self, label: str, value: str) -> None:
        if _contains_line_break(value):
            raise MailValidationError(f"{label} can not contain line breaks")
        if len(value) > self._limits.max_header_length:
            raise MailValidationError(
                f"{label} exceeds the maximum header length of {self._limits.max_header_length} characters"
            )

    def add_header(self, name: str, value: str) -> Email:
        """Add a custom header; a later value for the same name replaces it.

        Raises:
            MailValidationError: If the name or value is empty or malformed.
        """
        self._headers[name] = self._validate_header(name, value)
        return self

    def _validate_header(self, name: str, value: str) -> str:
        if not name:
            raise MailValidationError("name can not be null or empty")
        if value is None or value == "":
            raise MailValidationError("value can not be null or empty")
        if not _HEADER_NAME_PATTERN.match(name):
            raise MailValidationError(f"Invalid header name: {name!r}")
        self._check_header_value(f"Header {name}", str(value))
        return str(value)

    def set_headers(self, headers: Mapping[str, str]) -> Email:
        """Replace all custom headers.

        The current headers are kept when any new header is invalid.
        """
        validated = {name: self._validate_header(name, value) for name, value in headers.items()}
        self._headers = validated
        return self

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def set_subject(self, subject: str | None) -> Email:
        """Set the subject line; ``None`` removes it."""
        if subject is not None:
            self._check_header_value("Subject", subject)
        self._subject = subject
        return self

    @property
    def subject(self) -> str | None:
        return self._subject

    def set_content(self, content: str, content_type: str = TEXT_PLAIN) -> Email:
        """Set the body and its content type.

        A ``charset`` parameter in ``content_type`` (for example
        ``"text/plain; charset=ISO-8859-1"``) also updates :attr:`charset`.

        Raises:
            MailValidationError: If the content type is not a ``text/*`` type.
        """
        self._content = content
        self._update_content_type(content_type)
        return self

    def _update_content_type(self, content_type: str) -> None:
        main, _, params = content_type.partition(";")
        main = main.strip().lower()
        maintype, _, subtype = main.partition("/")
        if maintype != "text" or not subtype:
            raise MailValidationError(f"Only text content types are supported, got {content_type!r}")
        for param in params.split(";"):
            key, _, value = param.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                self.set_charset(value.strip().strip('"'))
        self._content_type = main

    @property
    def content(self) -> str | None:
        return self._content

    @property
    def content_type(self) -> str | None:
        return self._content_type

    @abstractmethod
    def set_msg(self, msg: str) -> Email:
        """Set the message body text."""

    def set_sent_date(self, date: datetime | None) -> Email:
        """Set the ``Date`` header; ``None`` restores "now at build time".

        Naive datetimes are interpreted in the local timezone.
        """
        if date is not None and date.tzinfo is None:
            date = date.astimezone()
        self._sent_date = date
        return self

    @property
    def sent_date(self) -> datetime:
        """The configured send date, or the current time when unset."""
        if self._sent_date is None:
            return datetime.now(timezone.utc)
        return self._sent_date

    # ─────────────────────────────────────────────────────────────────────
    # Building and sending
    # ─────────────────────────────────────────────────────────────────────

    @property
    def mime_message(self) -> EmailMessage | None:
        """The built message, or ``None`` before :meth:`build_mime_message`."""
        return self._message

    def _resolve_sender(self) -> Address:
        if self._from is not None:
            return self._from
        if self._session is not None and self._session.default_sender:
            return parse_address(self._session.default_sender)
        raise MailError("From address required")

    def build_mime_message(self) -> EmailMessage:
        """Assemble the MIME message. Can only be called once.

        Raises:
            MailStateError: If the message was already built.
            MailError: If the sender or every recipient list is missing.
            MailValidationError: If the body cannot be encoded in the charset.
        """
        if self._message is not None:
            raise MailStateError("The MIME message is already built")

        message = EmailMessage()
        if self._subject:
            message["Subject"] = self._subject

        subtype = (self._content_type or TEXT_PLAIN).partition("/")[2]
        try:
            message.set_content(self._content or "", subtype=subtype, charset=self._charset)
        except (LookupError, UnicodeError) as exc:
            raise MailValidationError(f"Cannot encode message body as {self._charset}: {exc}") from exc

        sender = self._resolve_sender()
        if not (self._to or self._cc or self._bcc):
            raise MailError("At least one receiver address required")

        message["From"] = sender
        if self._to:
            message["To"] = tuple(self._to)
        if self._cc:
            message["Cc"] = tuple(self._cc)
        if self._bcc:
            message["Bcc"] = tuple(self._bcc)
        if self._reply_to:
            message["Reply-To"] = tuple(self._reply_to)

        for name, value in self._headers.items():
            if name in message:
                del message[name]
            message[name] = value

        if HEADER_DATE not in message:
            message[HEADER_DATE] = format_datetime(self.sent_date)
        if HEADER_MESSAGE_ID not in message:
            message[HEADER_MESSAGE_ID] = make_msgid(domain=sender.domain or None)

        self._message = message
        log.debug(
            "Built MIME message %s with %d recipient(s)",
            message[HEADER_MESSAGE_ID],
            self._recipient_count(),
        )
        return message

    def _resolve_transport(self) -> AnyTransport:
        if self._transport is not None:
            return self._transport
        return self.get_mail_session().create_transport()

    def _require_built(self) -> EmailMessage:
        if self._message is None:
            raise MailStateError("The MIME message has not been built yet")
        return self._message

    def send_mime_message(self) -> str:
        """Deliver the built message and return its ``Message-ID``.

        Raises:
            MailStateError: If the message was not built.
            MailConfigurationError: If no transport can be resolved.
            MailTransportError: If delivery fails.
        """
        message = self._require_built()
        transport = self._resolve_transport()
        if isinstance(transport, AsyncMailTransport):
            raise MailConfigurationError("Asynchronous transports require send_async()")

        try:
            transport.send(message)
        except MailError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise MailTransportError(f"Sending the email to the following server failed: {self.host_name}") from exc

        message_id = str(message[HEADER_MESSAGE_ID])
        log.info("Email %s sent to %d recipient(s)", message_id, self._recipient_count())
        return message_id

    def send(self) -> str:
        """Build the message, deliver it and return its ``Message-ID``."""
        self.build_mime_message()
        return self.send_mime_message()

    async def send_async(self) -> str:
        """Build and deliver through an asynchronous transport.

        Synchronous transports run in the default executor.
        """
        self.build_mime_message()
        return await self.send_mime_message_async()

    async def send_mime_message_async(self) -> str:
        """Asynchronous :meth:`send_mime_message`; may be retried after a failure.

        Raises:
            MailStateError: If the message was not built.
            MailTransportError: If delivery fails.
        """
        message = self._require_built()
        transport = self._resolve_transport()
        if isinstance(transport, MailTransport):
            transport = AsyncTransportWrapper(transport)

        try:
            await transport.send(message)
        except MailError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise MailTransportError(f"Sending the email to the following server failed: {self.host_name}") from exc

        message_id = str(message[HEADER_MESSAGE_ID])
        log.info("Email %s sent to %d recipient(s)", message_id, self._recipient_count())
        return message_id


class SimpleEmail(Email):
    """Plain-text email."""

    def set_msg(self, msg: str) -> SimpleEmail:
        """Set the plain-text body.

        Raises:
            MailValidationError: If ``msg`` is empty.
        """
        if not msg:
            raise MailValidationError("Invalid message supplied")
        self.set_content(msg, TEXT_PLAIN)
        return self
