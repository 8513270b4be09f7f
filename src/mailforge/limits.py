"""Config-driven resource limits.

Limits are read from the ``mail.limits`` configuration section and clamped
to hard bounds that configuration cannot exceed.

Examples:
    >>> limits = get_mail_limits(config={"mail": {"limits": {"max_recipients": 5}}})
    >>> limits.max_recipients
    5
    >>> get_mail_limits(config={"mail": {"limits": {"max_recipients": 10**6}}}).max_recipients
    1000
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from mailforge.config.exceptions import ConfigError
from mailforge.config.loader import get_config

log = logging.getLogger(__name__)

DEFAULT_MAX_RECIPIENTS = 100
HARD_MIN_RECIPIENTS = 1
HARD_MAX_RECIPIENTS = 1000

DEFAULT_MAX_HEADER_LENGTH = 4096
HARD_MIN_HEADER_LENGTH = 78
HARD_MAX_HEADER_LENGTH = 65536


@dataclass(frozen=True, slots=True)
class MailLimits:
    """Resource limits applied while composing messages.

    Attributes:
        max_recipients: Maximum number of To, Cc and Bcc addresses combined.
        max_header_length: Maximum length of a single header value.
    """

    max_recipients: int = DEFAULT_MAX_RECIPIENTS
    max_header_length: int = DEFAULT_MAX_HEADER_LENGTH


def _clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(value, maximum))


def _coerce_int(raw: Any, default: int, key: str) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        log.warning("Ignoring invalid mail limit %s=%r, using %d", key, raw, default)
        return default


def _limits_section(config: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if config is None:
        try:
            config = get_config()
        except ConfigError:
            return {}
    mail = config.get("mail") if isinstance(config, Mapping) else None
    if not isinstance(mail, Mapping):
        return {}
    limits = mail.get("limits")
    return limits if isinstance(limits, Mapping) else {}


def get_mail_limits(config: Mapping[str, Any] | None = None) -> MailLimits:
    """Return mail limits from ``config`` (or the global configuration).

    Args:
        config: Root configuration mapping. ``None`` uses :func:`get_config`.
    """
    section = _limits_section(config)
    max_recipients = _coerce_int(section.get("max_recipients"), DEFAULT_MAX_RECIPIENTS, "max_recipients")
    max_header_length = _coerce_int(
        section.get("max_header_length"), DEFAULT_MAX_HEADER_LENGTH, "max_header_length"
    )
    return MailLimits(
        max_recipients=_clamp(max_recipients, HARD_MIN_RECIPIENTS, HARD_MAX_RECIPIENTS),
        max_header_length=_clamp(max_header_length, HARD_MIN_HEADER_LENGTH, HARD_MAX_HEADER_LENGTH),
    )


__all__ = [
    "DEFAULT_MAX_HEADER_LENGTH",
    "DEFAULT_MAX_RECIPIENTS",
    "HARD_MAX_HEADER_LENGTH",
    "HARD_MAX_RECIPIENTS",
    "HARD_MIN_HEADER_LENGTH",
    "HARD_MIN_RECIPIENTS",
    "MailLimits",
    "get_mail_limits",
]
