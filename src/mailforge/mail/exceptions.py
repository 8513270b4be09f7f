"""Specialized exceptions raised by the mailforge.mail module.

Exception hierarchy::

    MailforgeError
        MailError (base for all mail errors, e.g. missing sender or recipients)
            MailValidationError (invalid address, header or body, also ValueError)
            MailConfigurationError (missing host, transport or dependency)
            MailTransportError (delivery failed)
            MailStateError (operation not allowed in the current state, also RuntimeError)
"""

from __future__ import annotations

from mailforge.config.exceptions import MailforgeError


class MailError(MailforgeError):
    """Base exception for mail composition and delivery errors."""


class MailValidationError(MailError, ValueError):
    """User supplied data cannot be used in a message."""


class MailConfigurationError(MailError):
    """Mail session or transport settings are incomplete."""


class MailTransportError(MailError):
    """The transport backend failed to deliver a message."""


class MailStateError(MailError, RuntimeError):
    """The email is not in a state that allows the requested operation.

    Raised when a message is built twice, when a message is sent before
    being built, or when session settings change after the session exists.
    """


__all__ = [
    "MailConfigurationError",
    "MailError",
    "MailStateError",
    "MailTransportError",
    "MailValidationError",
]
