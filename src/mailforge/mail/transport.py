"""Transport abstractions used to deliver built messages.

A transport receives a fully assembled :class:`~email.message.EmailMessage`
and is responsible only for delivery. Synchronous transports implement
:class:`MailTransport`; asynchronous ones implement
:class:`AsyncMailTransport`. :class:`AsyncTransportWrapper` adapts the
former to the latter by running ``send`` in an executor.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from concurrent.futures import Executor
    from email.message import EmailMessage

__all__ = ["AsyncMailTransport", "AsyncTransportWrapper", "MailTransport"]


class MailTransport(ABC):
    """Synchronous delivery backend."""

    @abstractmethod
    def send(self, message: EmailMessage) -> None:
        """Deliver ``message``.

        Raises:
            MailTransportError: If delivery fails.
        """


class AsyncMailTransport(ABC):
    """Asynchronous delivery backend."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """Deliver ``message`` without blocking the event loop."""


class AsyncTransportWrapper(AsyncMailTransport):
    """Run a synchronous transport inside an executor.

    Args:
        transport: The synchronous transport to wrap.
        executor: Executor used for ``send``; ``None`` uses the loop default.

    Examples:
        >>> from mailforge.mail.transports import SMTPTransport  # doctest: +SKIP
        >>> wrapper = AsyncTransportWrapper(SMTPTransport("smtp.example.com"))  # doctest: +SKIP
        >>> await wrapper.send(message)  # doctest: +SKIP
    """

    def __init__(self, transport: MailTransport, *, executor: Executor | None = None) -> None:
        self._transport = transport
        self._executor = executor

    @property
    def transport(self) -> MailTransport:
        """Return the wrapped synchronous transport."""
        return self._transport

    async def send(self, message: EmailMessage) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self._transport.send, message)
