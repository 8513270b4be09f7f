"""Specialized exceptions raised by the mailforge.config module.

Exception hierarchy::

    MailforgeError
        ConfigError (base for all configuration errors)
            ConfigFileNotFoundError (missing file, also FileNotFoundError)
            ConfigFormatError (unsupported or unparsable file)
            ConfigCircularIncludeError (include cycle detected)
            ConfigNotLoadedError (singleton accessed before loading)
"""

from __future__ import annotations


class MailforgeError(Exception):
    """Root of every exception raised by mailforge."""


class ConfigError(MailforgeError):
    """Base exception for configuration errors."""


class ConfigFileNotFoundError(ConfigError, FileNotFoundError):
    """A configuration file or include target does not exist."""


class ConfigFormatError(ConfigError):
    """A configuration file has an unsupported extension or invalid content."""


class ConfigCircularIncludeError(ConfigError):
    """An include chain refers back to a file that is already being loaded."""


class ConfigNotLoadedError(ConfigError):
    """The configuration singleton was required before being loaded."""


__all__ = [
    "ConfigCircularIncludeError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigFormatError",
    "ConfigNotLoadedError",
    "MailforgeError",
]
