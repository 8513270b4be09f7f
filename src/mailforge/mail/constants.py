"""Defaults shared by the mail builder, session and transports."""

from __future__ import annotations

DEFAULT_SMTP_PORT = 25
DEFAULT_SSL_SMTP_PORT = 465
DEFAULT_SUBMISSION_PORT = 587

# Seconds; applied to both the TCP connect and socket I/O.
DEFAULT_SOCKET_TIMEOUT = 60.0

DEFAULT_CHARSET = "utf-8"

TEXT_PLAIN = "text/plain"

HEADER_MESSAGE_ID = "Message-ID"
HEADER_DATE = "Date"

__all__ = [
    "DEFAULT_CHARSET",
    "DEFAULT_SMTP_PORT",
    "DEFAULT_SOCKET_TIMEOUT",
    "DEFAULT_SSL_SMTP_PORT",
    "DEFAULT_SUBMISSION_PORT",
    "HEADER_DATE",
    "HEADER_MESSAGE_ID",
    "TEXT_PLAIN",
]
