"""Email composition and delivery.

Build messages with :class:`SimpleEmail`, then deliver them through the
SMTP session configured on the email or through any
:class:`MailTransport`.

Examples:
    >>> from mailforge.mail import SimpleEmail
    >>> email = SimpleEmail().set_host_name("localhost")  # doctest: +SKIP
    >>> email.set_from("me@example.com").add_to("you@example.com")  # doctest: +SKIP
    >>> email.set_subject("Hi").set_msg("Hello").send()  # doctest: +SKIP
"""

from mailforge.mail.address import Address, parse_address, parse_address_list
from mailforge.mail.email import Email, SimpleEmail
from mailforge.mail.exceptions import (
    MailConfigurationError,
    MailError,
    MailStateError,
    MailTransportError,
    MailValidationError,
)
from mailforge.mail.session import MailSession
from mailforge.mail.transport import AsyncMailTransport, AsyncTransportWrapper, MailTransport

__all__ = [
    "Address",
    "AsyncMailTransport",
    "AsyncTransportWrapper",
    "Email",
    "MailConfigurationError",
    "MailError",
    "MailSession",
    "MailStateError",
    "MailTransport",
    "MailTransportError",
    "MailValidationError",
    "SimpleEmail",
    "parse_address",
    "parse_address_list",
]
