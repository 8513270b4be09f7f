"""Tests for the SMTP transport backend."""

from __future__ import annotations

import logging
import ssl
import sys
from email.message import EmailMessage
from smtplib import SMTPAuthenticationError, SMTPException
from typing import Any, ClassVar

import pytest

from mailforge.logging import TRACE_LEVEL, init_logging
from mailforge.mail import MailTransportError
from mailforge.mail.exceptions import MailConfigurationError
from mailforge.mail.transports.smtp import (
    SMTPCredentials,
    SMTPSecurity,
    SMTPTransport,
    _extract_ssl_info,
    _log_smtp_debug_line,
    _logging_client,
)

SMTP_LOGGER = "mailforge.mail.transports.smtp"


class FakeSMTP:
    """In-process stand-in for :class:`smtplib.SMTP`."""

    instances: ClassVar[list[FakeSMTP]] = []
    offers_starttls: ClassVar[bool] = True

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.ehlo_count = 0
        self.starttls_context: Any | None = None
        self.logins: list[tuple[str | None, str | None]] = []
        self.sent: list[tuple[EmailMessage, str | None]] = []
        self.debug_level = 0
        self.closed = False
        FakeSMTP.instances.append(self)

    def __enter__(self) -> FakeSMTP:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.closed = True

    def ehlo(self) -> None:
        """Count EHLO commands."""
        self.ehlo_count += 1

    def has_extn(self, name: str) -> bool:
        """Advertise STARTTLS when the class flag allows it."""
        return name == "STARTTLS" and self.offers_starttls

    def starttls(self, *, context: Any) -> None:
        """Record the TLS context."""
        self.starttls_context = context

    def login(self, username: str | None, password: str | None) -> None:
        """Record credentials."""
        self.logins.append((username, password))

    def send_message(self, message: EmailMessage, from_addr: str | None = None) -> None:
        """Record the message and envelope sender."""
        self.sent.append((message, from_addr))

    def set_debuglevel(self, level: int) -> None:
        """Record the smtplib debug level."""
        self.debug_level = level


class FailingSendSMTP(FakeSMTP):
    """Client whose ``send_message`` raises an SMTP error."""

    def send_message(self, message: EmailMessage, from_addr: str | None = None) -> None:
        raise SMTPException("boom")


class FakeSSLSocket:
    """Minimal TLS socket exposing version, cipher and certificate."""

    def __init__(
        self,
        *,
        version: str | None = "TLSv1.3",
        cipher: tuple[str, str, int] | None = ("TLS_AES_256_GCM_SHA384", "TLSv1.3", 256),
        peer_cert: dict[str, Any] | None = None,
        failing: frozenset[str] = frozenset(),
    ) -> None:
        self._version = version
        self._cipher = cipher
        self._peer_cert = peer_cert
        self._failing = failing

    def _maybe_fail(self, name: str) -> None:
        if name in self._failing:
            raise RuntimeError(f"{name} error")

    def version(self) -> str | None:
        self._maybe_fail("version")
        return self._version

    def cipher(self) -> tuple[str, str, int] | None:
        self._maybe_fail("cipher")
        return self._cipher

    def getpeercert(self) -> dict[str, Any] | None:
        self._maybe_fail("cert")
        return self._peer_cert


PEER_CERT = {
    "subject": ((("commonName", "smtp.example.com"),),),
    "issuer": ((("commonName", "Test CA"),),),
    "notBefore": "Jan  1 00:00:00 2026 GMT",
    "notAfter": "Dec 31 23:59:59 2026 GMT",
}


@pytest.fixture(autouse=True)
def _reset_fake_smtp() -> None:
    FakeSMTP.instances.clear()
    FakeSMTP.offers_starttls = True


@pytest.fixture(name="email_message")
def _email_message() -> EmailMessage:
    message = EmailMessage()
    message["From"] = "sender@example.com"
    message["To"] = "user@example.com"
    message.set_content("Hello")
    return message


@pytest.fixture(name="plain_smtp")
def _plain_smtp(monkeypatch: pytest.MonkeyPatch) -> type[FakeSMTP]:
    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


def _last_client() -> FakeSMTP:
    assert FakeSMTP.instances, "no SMTP client was created"
    return FakeSMTP.instances[-1]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_requires_host() -> None:
    """An empty host is a configuration error."""
    with pytest.raises(MailConfigurationError, match="host"):
        SMTPTransport("")


@pytest.mark.parametrize("kwargs", [{"timeout": 0}, {"connect_timeout": -1}])
def test_rejects_non_positive_timeouts(kwargs: dict[str, float]) -> None:
    """Timeouts must be greater than zero."""
    with pytest.raises(MailConfigurationError, match="timeouts"):
        SMTPTransport("smtp.example.com", **kwargs)


def test_credentials_repr_masks_password() -> None:
    """The password never appears in the repr."""
    text = repr(SMTPCredentials(username="bot", password="hunter2"))
    assert "bot" in text
    assert "hunter2" not in text


def test_security_context_hostname_check() -> None:
    """Hostname verification can be disabled without dropping chain checks."""
    strict = SMTPSecurity().create_context()
    relaxed = SMTPSecurity(verify_hostname=False).create_context()

    assert strict.check_hostname is True
    assert relaxed.check_hostname is False
    assert relaxed.verify_mode == ssl.CERT_REQUIRED


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


def test_starttls_and_login(plain_smtp: type[FakeSMTP], email_message: EmailMessage) -> None:
    """Upgrade with STARTTLS and authenticate before sending."""
    transport = SMTPTransport("smtp.example.com", credentials=SMTPCredentials(username="user", password="pass"))
    transport.send(email_message)

    client = _last_client()
    assert client.kwargs["host"] == "smtp.example.com"
    assert client.kwargs["port"] == 587
    assert isinstance(client.starttls_context, ssl.SSLContext)
    assert client.ehlo_count == 2
    assert client.logins == [("user", "pass")]
    assert client.sent == [(email_message, None)]
    assert client.closed is True


def test_connect_timeout_is_passed_to_client(plain_smtp: type[FakeSMTP], email_message: EmailMessage) -> None:
    """The connect timeout is used when opening the connection."""
    SMTPTransport("smtp.example.com", timeout=30, connect_timeout=5).send(email_message)

    assert _last_client().kwargs["timeout"] == 5


def test_plain_without_starttls(plain_smtp: type[FakeSMTP], email_message: EmailMessage) -> None:
    """With STARTTLS disabled the connection stays plain and unauthenticated."""
    SMTPTransport("localhost", 25, security=SMTPSecurity(use_starttls=False)).send(email_message)

    client = _last_client()
    assert client.starttls_context is None
    assert client.ehlo_count == 1
    assert client.logins == []


def test_use_ssl_prefers_smtps(monkeypatch: pytest.MonkeyPatch, email_message: EmailMessage) -> None:
    """SMTP_SSL is used when implicit TLS is requested."""

    class ForbiddenSMTP(FakeSMTP):
        def __init__(self, **kwargs: Any) -> None:  # pragma: no cover - must not run
            pytest.fail("Plain SMTP client must not be created when use_ssl=True")

    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", ForbiddenSMTP)
    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP_SSL", FakeSMTP)

    SMTPTransport("smtp.example.com", 465, security=SMTPSecurity(use_ssl=True)).send(email_message)

    client = _last_client()
    assert isinstance(client.kwargs["context"], ssl.SSLContext)
    assert client.starttls_context is None
    assert client.ehlo_count == 1


def test_missing_starttls_is_tolerated_by_default(
    plain_smtp: type[FakeSMTP],
    email_message: EmailMessage,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Opportunistic STARTTLS falls back to plain with a warning."""
    FakeSMTP.offers_starttls = False

    with caplog.at_level(logging.WARNING, logger=SMTP_LOGGER):
        SMTPTransport("smtp.example.com").send(email_message)

    assert _last_client().sent
    assert any("does not offer STARTTLS" in r.message for r in caplog.records)


def test_required_starttls_fails_when_missing(plain_smtp: type[FakeSMTP], email_message: EmailMessage) -> None:
    """Required STARTTLS aborts before anything is sent."""
    FakeSMTP.offers_starttls = False
    transport = SMTPTransport("smtp.example.com", security=SMTPSecurity(require_starttls=True))

    with pytest.raises(MailTransportError, match="STARTTLS"):
        transport.send(email_message)
    assert _last_client().sent == []


def test_envelope_sender_overrides_mail_from(plain_smtp: type[FakeSMTP], email_message: EmailMessage) -> None:
    """The bounce address is passed as ``from_addr``."""
    SMTPTransport("smtp.example.com", envelope_sender="bounces@example.com").send(email_message)

    assert _last_client().sent == [(email_message, "bounces@example.com")]


def test_wraps_smtplib_errors(monkeypatch: pytest.MonkeyPatch, email_message: EmailMessage) -> None:
    """smtplib exceptions become MailTransportError with the cause chained."""
    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", FailingSendSMTP)
    transport = SMTPTransport("smtp.example.com", security=SMTPSecurity(use_starttls=False))

    with pytest.raises(MailTransportError, match="boom") as exc_info:
        transport.send(email_message)
    assert isinstance(exc_info.value.__cause__, SMTPException)


def test_wraps_authentication_errors(monkeypatch: pytest.MonkeyPatch, email_message: EmailMessage) -> None:
    """Login failures are transport errors too."""

    class RejectingSMTP(FakeSMTP):
        def login(self, username: str | None, password: str | None) -> None:
            raise SMTPAuthenticationError(535, b"bad credentials")

    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", RejectingSMTP)
    transport = SMTPTransport("smtp.example.com", credentials=SMTPCredentials("bot", "nope"))

    with pytest.raises(MailTransportError, match="bad credentials"):
        transport.send(email_message)


def test_wraps_connection_errors(monkeypatch: pytest.MonkeyPatch, email_message: EmailMessage) -> None:
    """Socket errors while connecting are transport errors."""

    def refuse(**kwargs: Any) -> FakeSMTP:
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", refuse)

    with pytest.raises(MailTransportError, match="refused"):
        SMTPTransport("smtp.example.com").send(email_message)


def test_debug_enables_smtplib_debug_level(plain_smtp: type[FakeSMTP], email_message: EmailMessage) -> None:
    """``debug=True`` turns on smtplib protocol output."""
    SMTPTransport("smtp.example.com", debug=True).send(email_message)

    assert _last_client().debug_level == 2


# ---------------------------------------------------------------------------
# Debug capture helpers
# ---------------------------------------------------------------------------


def test_logging_client_routes_print_debug_to_logger(caplog: pytest.LogCaptureFixture) -> None:
    """smtplib debug output becomes log records instead of stderr writes."""
    client = _logging_client(FakeSMTP)()

    assert isinstance(client, FakeSMTP)
    with caplog.at_level(TRACE_LEVEL, logger=SMTP_LOGGER):
        client._print_debug("send:", repr("EHLO example.com\r\n"))  # pylint: disable=protected-access

    assert [r.message for r in caplog.records] == ["[SMTP] >>> 'EHLO example.com\\r\\n'"]


def test_logging_client_keeps_plain_factories() -> None:
    """Callables that are not classes are used as is."""

    def factory(**kwargs: Any) -> FakeSMTP:
        return FakeSMTP(**kwargs)

    assert _logging_client(factory) is factory


def test_send_leaves_stderr_alone(monkeypatch: pytest.MonkeyPatch, email_message: EmailMessage) -> None:
    """Delivery with debugging on never replaces sys.stderr."""
    original = sys.stderr
    seen: list[Any] = []

    class WatchingSMTP(FakeSMTP):
        def ehlo(self) -> None:
            seen.append(sys.stderr)
            super().ehlo()

    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", WatchingSMTP)
    init_logging(config={"output": "console", "console": {"level": "TRACE"}})

    SMTPTransport("smtp.example.com", debug=True).send(email_message)

    assert seen
    assert all(stream is original for stream in seen)


def test_missing_starttls_warning_reaches_info_console(
    plain_smtp: type[FakeSMTP],
    email_message: EmailMessage,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """At INFO the STARTTLS fallback warning is printed once and nothing is traced."""
    FakeSMTP.offers_starttls = False
    init_logging(config={"output": "console", "console": {"level": "INFO"}})

    SMTPTransport("smtp.example.com").send(email_message)

    err = capsys.readouterr().err
    assert err.count("does not offer STARTTLS") == 1
    assert "[SMTP]" not in err
    assert _last_client().debug_level == 0


def test_trace_console_shows_each_line_once(
    plain_smtp: type[FakeSMTP],
    email_message: EmailMessage,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """At TRACE every diagnostic line is printed a single time."""
    init_logging(config={"output": "console", "console": {"level": "TRACE"}})

    SMTPTransport("smtp.example.com", security=SMTPSecurity(use_starttls=False)).send(email_message)

    err = capsys.readouterr().err
    assert err.count("MAIL FROM: sender@example.com") == 1
    assert err.count("Message sent successfully") == 1


def test_extract_ssl_info_returns_empty_for_none() -> None:
    """No socket means no TLS details."""
    assert _extract_ssl_info(None) == {}


def test_extract_ssl_info_full_certificate() -> None:
    """Version, cipher and certificate fields are extracted."""
    info = _extract_ssl_info(FakeSSLSocket(peer_cert=PEER_CERT))  # type: ignore[arg-type]

    assert info == {
        "version": "TLSv1.3",
        "cipher_name": "TLS_AES_256_GCM_SHA384",
        "cipher_protocol": "TLSv1.3",
        "cipher_bits": 256,
        "peer_cn": "smtp.example.com",
        "issuer_cn": "Test CA",
        "valid_from": "Jan  1 00:00:00 2026 GMT",
        "valid_until": "Dec 31 23:59:59 2026 GMT",
    }


@pytest.mark.parametrize(
    ("sock", "present", "absent"),
    [
        (FakeSSLSocket(failing=frozenset({"version"})), {"version": "unknown"}, ()),
        (FakeSSLSocket(failing=frozenset({"cipher"})), {}, ("cipher_name",)),
        (FakeSSLSocket(cipher=None), {}, ("cipher_name",)),
        (FakeSSLSocket(failing=frozenset({"cert"})), {}, ("peer_cn",)),
        (FakeSSLSocket(peer_cert={}), {}, ("peer_cn",)),
        (FakeSSLSocket(peer_cert={"subject": "not a tuple"}), {}, ("peer_cn",)),
        (
            FakeSSLSocket(peer_cert={"subject": PEER_CERT["subject"], "issuer": "not a tuple"}),
            {"peer_cn": "smtp.example.com"},
            ("issuer_cn",),
        ),
    ],
)
def test_extract_ssl_info_tolerates_partial_data(
    sock: FakeSSLSocket,
    present: dict[str, str],
    absent: tuple[str, ...],
) -> None:
    """Failures and malformed certificates only drop the affected fields."""
    info = _extract_ssl_info(sock)  # type: ignore[arg-type]

    for key, value in present.items():
        assert info[key] == value
    for key in absent:
        assert key not in info


def test_log_smtp_debug_line_skips_if_trace_disabled(caplog: pytest.LogCaptureFixture) -> None:
    """Nothing is logged when TRACE is disabled."""
    with caplog.at_level(logging.WARNING):
        _log_smtp_debug_line("send: 'EHLO example.com'")
    assert caplog.records == []


def test_log_smtp_debug_line_classifies_lines(caplog: pytest.LogCaptureFixture) -> None:
    """send/reply lines get direction markers; other lines are logged as is."""
    lines = ["send: 'EHLO example.com'", "", "   ", "reply: retcode (250); Msg: b'OK'", "connect: ('x', 25)"]

    with caplog.at_level(TRACE_LEVEL, logger=SMTP_LOGGER):
        for line in lines:
            _log_smtp_debug_line(line)

    messages = [r.message for r in caplog.records]
    assert len(messages) == 3
    assert messages[0].startswith("[SMTP] >>>") and "EHLO example.com" in messages[0]
    assert messages[1].startswith("[SMTP] <<<")
    assert messages[2] == "[SMTP] connect: ('x', 25)"


# ---------------------------------------------------------------------------
# TRACE logging during delivery
# ---------------------------------------------------------------------------


def test_trace_logs_smtps_details(
    monkeypatch: pytest.MonkeyPatch,
    email_message: EmailMessage,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Connection and TLS details are logged for SMTPS."""

    class SSLClient(FakeSMTP):
        def __init__(self, **kwargs: Any) -> None:
            super().__init__(**kwargs)
            self.sock = FakeSSLSocket(peer_cert=PEER_CERT)

    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP_SSL", SSLClient)
    transport = SMTPTransport("smtp.example.com", 465, security=SMTPSecurity(use_ssl=True))

    with caplog.at_level(TRACE_LEVEL, logger=SMTP_LOGGER):
        transport.send(email_message)

    messages = [r.message for r in caplog.records]
    assert any("Connecting to smtp.example.com:465 (SSL)" in m for m in messages)
    assert any("SSL: TLSv1.3" in m for m in messages)
    assert any("CN=smtp.example.com" in m for m in messages)


def test_trace_logs_starttls_details(
    monkeypatch: pytest.MonkeyPatch,
    email_message: EmailMessage,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """The negotiated TLS session is logged after STARTTLS."""

    class UpgradingClient(FakeSMTP):
        def starttls(self, *, context: Any) -> None:
            super().starttls(context=context)
            self.sock = FakeSSLSocket(peer_cert=PEER_CERT)

    monkeypatch.setattr("mailforge.mail.transports.smtp.smtplib.SMTP", UpgradingClient)

    with caplog.at_level(TRACE_LEVEL, logger=SMTP_LOGGER):
        SMTPTransport("smtp.example.com").send(email_message)

    messages = [r.message for r in caplog.records]
    assert any("STARTTLS" in m for m in messages)
    assert any("TLS: TLSv1.3" in m for m in messages)


def test_trace_logs_envelope_and_authentication(
    plain_smtp: type[FakeSMTP],
    email_message: EmailMessage,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Authentication steps and the envelope are logged at TRACE."""
    transport = SMTPTransport(
        "smtp.example.com",
        credentials=SMTPCredentials(username="user@example.com", password="secret"),
        security=SMTPSecurity(use_starttls=False),
        envelope_sender="bounces@example.com",
    )

    with caplog.at_level(TRACE_LEVEL, logger=SMTP_LOGGER):
        transport.send(email_message)

    messages = [r.message for r in caplog.records]
    assert "[SMTP] Authenticating as: user@example.com" in messages
    assert "[SMTP] Authentication successful" in messages
    assert "[SMTP] MAIL FROM: bounces@example.com" in messages
    assert "[SMTP] RCPT TO: user@example.com" in messages
    assert "[SMTP] Message sent successfully" in messages
    assert not any("secret" in m for m in messages)
    assert _last_client().debug_level == 2
