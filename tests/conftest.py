"""Shared pytest fixtures for the mailforge test suite."""

from __future__ import annotations

# Disable Rich colors and force a wide terminal before rich is imported
import os

os.environ["NO_COLOR"] = "1"
os.environ["TERM"] = "dumb"
os.environ["FORCE_COLOR"] = "0"
os.environ["COLUMNS"] = "200"  # Prevent text wrapping in CLI output

import logging
from collections.abc import Iterator
from email.message import EmailMessage
from pathlib import Path
from typing import Any

import pytest

# Import private internals for testing purposes
import mailforge.config.loader as _cfg_loader
from mailforge.limits import MailLimits
from mailforge.mail.transport import MailTransport

# pylint: disable=redefined-outer-name


class RecordingTransport(MailTransport):
    """In-memory transport that keeps delivered messages."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        """Store the message."""
        self.sent.append(message)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep user configuration files out of every test.

    The home directory and working directory point at an empty temp folder,
    so only the packaged defaults are loaded, and the cached configuration is
    cleared before and after each test.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    _cfg_loader.clear_config()
    yield
    _cfg_loader.clear_config()
    package_logger = logging.getLogger("mailforge")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def cfg_loader() -> Any:
    """Expose the config loader module for tests of private helpers."""
    return _cfg_loader


@pytest.fixture
def transport() -> RecordingTransport:
    """Return a fresh in-memory transport."""
    return RecordingTransport()


@pytest.fixture
def small_limits() -> MailLimits:
    """Limits small enough to hit in a test."""
    return MailLimits(max_recipients=3, max_header_length=100)
