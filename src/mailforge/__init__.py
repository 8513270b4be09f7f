"""mailforge: fluent email composition over the standard library.

Public names are imported lazily so ``import mailforge`` stays cheap and the
CLI only pulls typer in when it is used.

Set ``MAILFORGE_TRACEBACK=1`` to install rich tracebacks on import.
"""

from __future__ import annotations

import importlib
import os
from typing import Any

from mailforge.meta import __version__

_LAZY_ATTRS: dict[str, tuple[str, str | None]] = {
    # config
    "ConfigLoader": ("mailforge.config.loader", "ConfigLoader"),
    "clear_config": ("mailforge.config.loader", "clear_config"),
    "get_config": ("mailforge.config.loader", "get_config"),
    "load_config": ("mailforge.config.loader", "load_config"),
    "load_from_env": ("mailforge.config.loader", "load_from_env"),
    "load_from_file": ("mailforge.config.loader", "load_from_file"),
    "require_config": ("mailforge.config.loader", "require_config"),
    "ConfigCircularIncludeError": ("mailforge.config.exceptions", "ConfigCircularIncludeError"),
    "ConfigError": ("mailforge.config.exceptions", "ConfigError"),
    "ConfigFileNotFoundError": ("mailforge.config.exceptions", "ConfigFileNotFoundError"),
    "ConfigFormatError": ("mailforge.config.exceptions", "ConfigFormatError"),
    "ConfigNotLoadedError": ("mailforge.config.exceptions", "ConfigNotLoadedError"),
    "MailforgeError": ("mailforge.config.exceptions", "MailforgeError"),
    # logging
    "LogManager": ("mailforge.logging.manager", "LogManager"),
    "init_logging": ("mailforge.logging.manager", "init_logging"),
    # mail
    "Email": ("mailforge.mail.email", "Email"),
    "SimpleEmail": ("mailforge.mail.email", "SimpleEmail"),
    "MailSession": ("mailforge.mail.session", "MailSession"),
    "MailError": ("mailforge.mail.exceptions", "MailError"),
    "MailValidationError": ("mailforge.mail.exceptions", "MailValidationError"),
    "MailConfigurationError": ("mailforge.mail.exceptions", "MailConfigurationError"),
    "MailTransportError": ("mailforge.mail.exceptions", "MailTransportError"),
    "MailStateError": ("mailforge.mail.exceptions", "MailStateError"),
    # submodules and CLI
    "mail": ("mailforge.mail", None),
    "app": ("mailforge.cli.app", "app"),
}

_loaded: dict[str, Any] = {}
_traceback_installed = False


def install_rich_traceback() -> None:
    """Install rich tracebacks once per process."""
    global _traceback_installed  # pylint: disable=global-statement
    if _traceback_installed:
        return
    from rich.traceback import install  # pylint: disable=import-outside-toplevel

    install(show_locals=False)
    _traceback_installed = True


if os.getenv("MAILFORGE_TRACEBACK", "0") == "1":
    install_rich_traceback()


def __getattr__(name: str) -> Any:
    if name in _loaded:
        return _loaded[name]
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module 'mailforge' has no attribute '{name}'")
    module_name, attr = target
    module = importlib.import_module(module_name)
    value = module if attr is None else getattr(module, attr)
    _loaded[name] = value
    return value


def __dir__() -> list[str]:
    return sorted([*globals(), *_LAZY_ATTRS])


__all__ = [
    "ConfigCircularIncludeError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigFormatError",
    "ConfigLoader",
    "ConfigNotLoadedError",
    "Email",
    "LogManager",
    "MailConfigurationError",
    "MailError",
    "MailSession",
    "MailStateError",
    "MailTransportError",
    "MailValidationError",
    "MailforgeError",
    "SimpleEmail",
    "__version__",
    "clear_config",
    "get_config",
    "init_logging",
    "install_rich_traceback",
    "load_config",
    "load_from_env",
    "load_from_file",
    "require_config",
]
