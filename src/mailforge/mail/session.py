"""SMTP session settings.

A :class:`MailSession` is an immutable snapshot of everything needed to
open an SMTP connection. An :class:`~mailforge.mail.email.Email` either
receives one explicitly or creates one lazily from its own setters, after
which the session-level setters are locked.

Examples:
    >>> session = MailSession(host="smtp.example.com", ssl_on_connect=True)
    >>> session.effective_port
    465
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from mailforge.config.exceptions import ConfigError
from mailforge.config.loader import get_config
from mailforge.mail.constants import DEFAULT_SMTP_PORT, DEFAULT_SOCKET_TIMEOUT, DEFAULT_SSL_SMTP_PORT
from mailforge.mail.exceptions import MailConfigurationError
from mailforge.mail.transports.smtp import SMTPCredentials, SMTPSecurity, SMTPTransport

__all__ = ["MailSession"]

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MailSession:
    """Connection settings shared by every message sent through a session.

    Attributes:
        host: SMTP server host name.
        port: Plain SMTP port.
        ssl_port: Port used when ``ssl_on_connect`` is set.
        ssl_on_connect: Connect with implicit TLS.
        start_tls_enabled: Upgrade with STARTTLS when the server offers it.
        start_tls_required: Refuse to send without STARTTLS.
        check_server_identity: Verify the certificate host name.
        credentials: SMTP AUTH credentials.
        socket_timeout: Socket I/O timeout in seconds.
        connection_timeout: TCP connect timeout in seconds.
        bounce_address: Envelope sender (``MAIL FROM``) for delivery reports.
        default_sender: ``From`` address used when a message sets none.
        debug: Capture the SMTP protocol exchange in the logs.

    Raises:
        MailConfigurationError: If the host is missing or a port or timeout
            is not positive.
    """

    host: str
    port: int = DEFAULT_SMTP_PORT
    ssl_port: int = DEFAULT_SSL_SMTP_PORT
    ssl_on_connect: bool = False
    start_tls_enabled: bool = False
    start_tls_required: bool = False
    check_server_identity: bool = True
    credentials: SMTPCredentials | None = None
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    connection_timeout: float = DEFAULT_SOCKET_TIMEOUT
    bounce_address: str | None = None
    default_sender: str | None = None
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.host or not str(self.host).strip():
            raise MailConfigurationError("Cannot find valid hostname for mail session")
        if self.port < 1 or self.ssl_port < 1:
            raise MailConfigurationError("SMTP ports must be positive integers")
        if self.socket_timeout <= 0 or self.connection_timeout <= 0:
            raise MailConfigurationError("SMTP timeouts must be greater than 0")

    @property
    def effective_port(self) -> int:
        """Return the port the transport connects to."""
        return self.ssl_port if self.ssl_on_connect else self.port

    @property
    def security(self) -> SMTPSecurity:
        """Translate the TLS flags into transport security settings."""
        return SMTPSecurity(
            use_ssl=self.ssl_on_connect,
            use_starttls=self.start_tls_enabled or self.start_tls_required,
            require_starttls=self.start_tls_required,
            verify_hostname=self.check_server_identity,
        )

    def create_transport(self) -> SMTPTransport:
        """Return an SMTP transport configured from this session."""
        log.debug("Creating SMTP transport for %s:%s", self.host, self.effective_port)
        return SMTPTransport(
            self.host,
            self.effective_port,
            credentials=self.credentials,
            security=self.security,
            timeout=self.socket_timeout,
            connect_timeout=self.connection_timeout,
            envelope_sender=self.bounce_address,
            debug=self.debug,
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None = None) -> MailSession:
        """Build a session from the ``mail.smtp`` configuration section.

        Args:
            config: Root configuration mapping; ``None`` uses the global
                configuration.

        Raises:
            MailConfigurationError: If the section is missing or invalid.
        """
        if config is None:
            try:
                config = get_config()
            except ConfigError as exc:
                raise MailConfigurationError(f"Cannot load mail configuration: {exc}") from exc

        mail = config.get("mail") if isinstance(config, Mapping) else None
        smtp = mail.get("smtp") if isinstance(mail, Mapping) else None
        if not isinstance(smtp, Mapping):
            raise MailConfigurationError("Configuration has no 'mail.smtp' section")

        username = smtp.get("username")
        credentials = SMTPCredentials(username=username, password=smtp.get("password")) if username else None

        try:
            return cls(
                host=smtp.get("host") or "",
                port=int(smtp.get("port") or DEFAULT_SMTP_PORT),
                ssl_port=int(smtp.get("ssl_port") or DEFAULT_SSL_SMTP_PORT),
                ssl_on_connect=bool(smtp.get("ssl_on_connect", False)),
                start_tls_enabled=bool(smtp.get("starttls", False)),
                start_tls_required=bool(smtp.get("starttls_required", False)),
                check_server_identity=bool(smtp.get("check_server_identity", True)),
                credentials=credentials,
                socket_timeout=float(smtp.get("timeout") or DEFAULT_SOCKET_TIMEOUT),
                connection_timeout=float(smtp.get("connect_timeout") or DEFAULT_SOCKET_TIMEOUT),
                bounce_address=smtp.get("bounce_address"),
                default_sender=smtp.get("default_sender"),
                debug=bool(smtp.get("debug", False)),
            )
        except (TypeError, ValueError) as exc:
            raise MailConfigurationError(f"Invalid 'mail.smtp' configuration: {exc}") from exc
