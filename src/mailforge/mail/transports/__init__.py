"""Transport implementations for mail delivery.

Available transports:
    - SMTPTransport: Standard SMTP protocol (sync)
    - ConsoleTransport: Prints messages instead of delivering them (sync)
"""

from mailforge.mail.transports.console import ConsoleTransport
from mailforge.mail.transports.smtp import SMTPCredentials, SMTPSecurity, SMTPTransport

__all__ = [
    "ConsoleTransport",
    "SMTPCredentials",
    "SMTPSecurity",
    "SMTPTransport",
]
