"""Address parsing on top of :mod:`email.headerregistry`.

Addresses are represented with the standard library
:class:`~email.headerregistry.Address` type so they can be assigned directly
to :class:`~email.message.EmailMessage` headers. Validation is limited to
presence checks and an ``local@domain`` shape; everything else is left to
the :mod:`email` package.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from email.errors import HeaderParseError
from email.headerregistry import Address
from email.utils import parseaddr
from typing import Optional, Union

from mailforge.mail.exceptions import MailValidationError

__all__ = ["Address", "AddressLike", "parse_address", "parse_address_list"]

AddressLike = Union[str, Address, tuple[str, Optional[str]]]

_ADDR_SPEC_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


def parse_address(value: AddressLike, name: str | None = None) -> Address:
    """Return an :class:`Address` for ``value``.

    Args:
        value: ``"user@example.com"``, ``"Name <user@example.com>"``, an
            ``(email, name)`` tuple or an existing :class:`Address`.
        name: Display name; overrides any name found in ``value``.

    Raises:
        MailValidationError: If the address is empty or malformed.

    Examples:
        >>> parse_address("Test User <test@example.com>").display_name
        'Test User'
        >>> parse_address("test@example.com", "Tester").addr_spec
        'test@example.com'
    """
    if isinstance(value, Address):
        if name is None:
            return value
        value = value.addr_spec
    elif isinstance(value, tuple):
        if len(value) != 2:
            raise MailValidationError(f"Address tuples must be (email, name), got {value!r}")
        value, tuple_name = value
        name = name if name is not None else tuple_name

    if not isinstance(value, str) or not value.strip():
        raise MailValidationError("Email address must be a non-empty string")

    parsed_name, addr_spec = parseaddr(value.strip())
    if not addr_spec or not _ADDR_SPEC_PATTERN.match(addr_spec):
        raise MailValidationError(f"Invalid email address: {value!r}")

    display_name = name if name is not None else parsed_name
    try:
        return Address(display_name=display_name or "", addr_spec=addr_spec)
    except (ValueError, HeaderParseError) as exc:
        raise MailValidationError(f"Invalid email address {value!r}: {exc}") from exc


def parse_address_list(values: Iterable[AddressLike]) -> list[Address]:
    """Parse every item of ``values``, preserving order.

    A bare string or :class:`Address` is treated as a single address. Wrap an
    ``(email, name)`` tuple in a list, since a tuple is read as a sequence.
    """
    if isinstance(values, (str, Address)):
        return [parse_address(values)]
    return [parse_address(value) for value in values]

