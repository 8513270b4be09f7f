"""Configuration loading for mailforge.

Public entry points return :class:`box.Box` objects assembled from the
packaged defaults and the user's ``mailforge.conf.yml`` files.
"""

from mailforge.config.exceptions import (
    ConfigCircularIncludeError,
    ConfigError,
    ConfigFileNotFoundError,
    ConfigFormatError,
    ConfigNotLoadedError,
    MailforgeError,
)
from mailforge.config.loader import (
    CONFIG_FILENAME,
    ConfigLoader,
    clear_config,
    get_config,
    load_config,
    load_from_env,
    load_from_file,
    require_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigCircularIncludeError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigFormatError",
    "ConfigLoader",
    "ConfigNotLoadedError",
    "MailforgeError",
    "clear_config",
    "get_config",
    "load_config",
    "load_from_env",
    "load_from_file",
    "require_config",
]
