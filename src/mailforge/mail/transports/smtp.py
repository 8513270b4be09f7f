"""SMTP transport built on :mod:`smtplib`.

Supports plain SMTP, implicit TLS (SMTPS) and STARTTLS upgrades, optional
authentication and an explicit envelope sender (bounce address).

When TRACE records of the ``mailforge.mail.transports.smtp`` logger reach a
handler, the transport logs the connection, TLS parameters, authentication
steps and envelope. smtplib's own debug output goes through the same logger,
never to ``sys.stderr``.

Examples:
    Submission port with STARTTLS and login::

        from mailforge.mail.transports import SMTPCredentials, SMTPTransport

        transport = SMTPTransport(
            "smtp.example.com",
            credentials=SMTPCredentials(username="bot", password="secret"),
        )
        transport.send(message)
"""

from __future__ import annotations

import functools
import logging
import smtplib
import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mailforge.logging import TRACE_LEVEL
from mailforge.mail.constants import DEFAULT_SOCKET_TIMEOUT, DEFAULT_SUBMISSION_PORT
from mailforge.mail.exceptions import MailConfigurationError, MailTransportError
from mailforge.mail.transport import MailTransport

if TYPE_CHECKING:
    from email.message import EmailMessage

__all__ = ["SMTPCredentials", "SMTPSecurity", "SMTPTransport"]

log = logging.getLogger(__name__)

# smtplib debug level; any value above 0 enables protocol output
_SMTPLIB_DEBUG_LEVEL = 2


@dataclass(frozen=True, slots=True)
class SMTPCredentials:
    """Username and password used for SMTP AUTH."""

    username: str | None = None
    password: str | None = None

    def __repr__(self) -> str:
        return f"SMTPCredentials(username={self.username!r}, password={'***' if self.password else None})"


@dataclass(frozen=True, slots=True)
class SMTPSecurity:
    """TLS behaviour of an SMTP connection.

    Attributes:
        use_ssl: Connect with implicit TLS (``SMTP_SSL``); disables STARTTLS.
        use_starttls: Upgrade a plain connection when the server offers it.
        require_starttls: Fail when the server does not offer STARTTLS.
        verify_hostname: Check that the certificate matches the host name.
            The certificate chain is verified either way.
    """

    use_ssl: bool = False
    use_starttls: bool = True
    require_starttls: bool = False
    verify_hostname: bool = True

    def create_context(self) -> ssl.SSLContext:
        """Return the SSL context used for SMTPS and STARTTLS."""
        context = ssl.create_default_context()
        if not self.verify_hostname:
            context.check_hostname = False
        return context


def _log_smtp_debug_line(raw_line: str, level: int = TRACE_LEVEL) -> None:
    """Log one smtplib debug line with a direction marker."""
    line = raw_line.strip()
    if not line or not log.isEnabledFor(level):
        return
    if line.startswith("send:"):
        log.log(level, "[SMTP] >>> %s", line[len("send:") :].strip())
    elif line.startswith("reply:"):
        log.log(level, "[SMTP] <<< %s", line[len("reply:") :].strip())
    else:
        log.log(level, "[SMTP] %s", line)


class _DebugLoggingMixin:
    """Send smtplib ``_print_debug`` output to the module logger instead of stderr."""

    debug_log_level = TRACE_LEVEL

    def _print_debug(self, *args: Any) -> None:
        _log_smtp_debug_line(" ".join(str(arg) for arg in args), self.debug_log_level)


@functools.cache
def _logging_client(base: Any) -> Any:
    """Return ``base`` extended with :class:`_DebugLoggingMixin`.

    Non-class factories are returned unchanged.
    """
    if not isinstance(base, type):
        return base
    return type(f"Logging{base.__name__}", (_DebugLoggingMixin, base), {})


def _handlers_accept(logger: logging.Logger, level: int) -> bool:
    """Tell whether a handler reachable from ``logger`` emits ``level``."""
    current: logging.Logger | None = logger
    while current is not None:
        if any(handler.level <= level for handler in current.handlers):
            return True
        if not current.propagate:
            return False
        current = current.parent
    return False


def _first_common_name(rdns: Any) -> str | None:
    try:
        for rdn in rdns:
            for key, value in rdn:
                if key == "commonName":
                    return str(value)
    except (TypeError, ValueError):
        return None
    return None


def _extract_ssl_info(sock: ssl.SSLSocket | None) -> dict[str, Any]:
    """Collect protocol, cipher and certificate details from a TLS socket."""
    if sock is None:
        return {}

    info: dict[str, Any] = {}
    try:
        info["version"] = sock.version() or "unknown"
    except Exception:  # pylint: disable=broad-except
        info["version"] = "unknown"

    try:
        cipher = sock.cipher()
    except Exception:  # pylint: disable=broad-except
        cipher = None
    if cipher:
        info["cipher_name"], info["cipher_protocol"], info["cipher_bits"] = cipher

    try:
        cert = sock.getpeercert()
    except Exception:  # pylint: disable=broad-except
        cert = None
    if cert:
        peer_cn = _first_common_name(cert.get("subject", ()))
        if peer_cn:
            info["peer_cn"] = peer_cn
        issuer_cn = _first_common_name(cert.get("issuer", ()))
        if issuer_cn:
            info["issuer_cn"] = issuer_cn
        if "notBefore" in cert:
            info["valid_from"] = cert["notBefore"]
        if "notAfter" in cert:
            info["valid_until"] = cert["notAfter"]
    return info


def _log_ssl_info(prefix: str, sock: Any) -> None:
    info = _extract_ssl_info(sock)
    if not info:
        return
    log.log(TRACE_LEVEL, "[SMTP] %s: %s", prefix, info.get("version", "unknown"))
    if "cipher_name" in info:
        log.log(TRACE_LEVEL, "[SMTP] Cipher: %s (%s bits)", info["cipher_name"], info.get("cipher_bits"))
    if "peer_cn" in info:
        log.log(TRACE_LEVEL, "[SMTP] Certificate: CN=%s, issuer=%s", info["peer_cn"], info.get("issuer_cn", "?"))


class SMTPTransport(MailTransport):
    """Deliver messages through an SMTP server.

    Args:
        host: SMTP server host name.
        port: Server port.
        credentials: Optional SMTP AUTH credentials.
        security: TLS behaviour; defaults to opportunistic STARTTLS.
        timeout: Socket I/O timeout in seconds.
        connect_timeout: TCP connect timeout in seconds; defaults to ``timeout``.
        envelope_sender: Address used for ``MAIL FROM`` instead of ``From``.
        debug: Capture smtplib protocol output and log it at DEBUG level.

    Raises:
        MailConfigurationError: If ``host`` is empty or a timeout is not positive.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_SUBMISSION_PORT,
        *,
        credentials: SMTPCredentials | None = None,
        security: SMTPSecurity | None = None,
        timeout: float = DEFAULT_SOCKET_TIMEOUT,
        connect_timeout: float | None = None,
        envelope_sender: str | None = None,
        debug: bool = False,
    ) -> None:
        if not host:
            raise MailConfigurationError("SMTP host is required")
        if timeout <= 0 or (connect_timeout is not None and connect_timeout <= 0):
            raise MailConfigurationError("SMTP timeouts must be greater than 0")

        self.host = host
        self.port = port
        self.credentials = credentials
        self.security = security or SMTPSecurity()
        self.timeout = timeout
        self.connect_timeout = connect_timeout if connect_timeout is not None else timeout
        self.envelope_sender = envelope_sender
        self.debug = debug

    def __repr__(self) -> str:
        return f"SMTPTransport(host={self.host!r}, port={self.port}, security={self.security!r})"

    def send(self, message: EmailMessage) -> None:
        """Open a connection, negotiate TLS and authentication, then send."""
        trace_enabled = log.isEnabledFor(TRACE_LEVEL) and _handlers_accept(log, TRACE_LEVEL)
        self._deliver(message, trace_enabled=trace_enabled, capture=trace_enabled or self.debug)

    def _deliver(self, message: EmailMessage, *, trace_enabled: bool, capture: bool) -> None:
        security = self.security
        context = security.create_context() if (security.use_ssl or security.use_starttls) else None
        kwargs: dict[str, Any] = {"host": self.host, "port": self.port, "timeout": self.connect_timeout}
        if security.use_ssl:
            kwargs["context"] = context
            client_factory: Any = smtplib.SMTP_SSL
        else:
            client_factory = smtplib.SMTP

        if trace_enabled:
            mode = "SSL" if security.use_ssl else "plain"
            log.log(TRACE_LEVEL, "[SMTP] Connecting to %s:%s (%s)", self.host, self.port, mode)

        try:
            with _logging_client(client_factory)(**kwargs) as client:
                if capture:
                    client.debug_log_level = TRACE_LEVEL if trace_enabled else logging.DEBUG
                    client.set_debuglevel(_SMTPLIB_DEBUG_LEVEL)
                sock = getattr(client, "sock", None)
                if sock is not None and hasattr(sock, "settimeout"):
                    sock.settimeout(self.timeout)
                if trace_enabled and security.use_ssl:
                    _log_ssl_info("SSL", sock)

                client.ehlo()
                if not security.use_ssl and security.use_starttls:
                    self._starttls(client, context, trace_enabled=trace_enabled)

                self._login(client, trace_enabled=trace_enabled)

                if trace_enabled:
                    sender = self.envelope_sender or message.get("From")
                    recipients = [value for key in ("To", "Cc", "Bcc") if (value := message.get(key))]
                    log.log(TRACE_LEVEL, "[SMTP] MAIL FROM: %s", sender)
                    log.log(TRACE_LEVEL, "[SMTP] RCPT TO: %s", ", ".join(recipients))

                if self.envelope_sender:
                    client.send_message(message, from_addr=self.envelope_sender)
                else:
                    client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            log.debug("SMTP delivery to %s:%s failed: %s", self.host, self.port, exc)
            raise MailTransportError(str(exc)) from exc

        log.debug("Email sent via SMTP %s:%s", self.host, self.port)
        if trace_enabled:
            log.log(TRACE_LEVEL, "[SMTP] Message sent successfully")

    def _starttls(self, client: Any, context: ssl.SSLContext | None, *, trace_enabled: bool) -> None:
        if not client.has_extn("STARTTLS"):
            if self.security.require_starttls:
                raise MailTransportError(f"SMTP server {self.host} does not support STARTTLS")
            log.warning("SMTP server %s does not offer STARTTLS, continuing without TLS", self.host)
            return
        if trace_enabled:
            log.log(TRACE_LEVEL, "[SMTP] Upgrading connection with STARTTLS")
        client.starttls(context=context)
        client.ehlo()
        if trace_enabled:
            _log_ssl_info("TLS", getattr(client, "sock", None))

    def _login(self, client: Any, *, trace_enabled: bool) -> None:
        credentials = self.credentials
        if credentials is None or not credentials.username:
            return
        if trace_enabled:
            log.log(TRACE_LEVEL, "[SMTP] Authenticating as: %s", credentials.username)
        client.login(credentials.username, credentials.password)
        if trace_enabled:
            log.log(TRACE_LEVEL, "[SMTP] Authentication successful")
