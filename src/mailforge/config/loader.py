"""Cascading configuration loader.

Configuration is assembled from several layers, each overriding the
previous one:

1. the packaged ``mailforge.conf.yml`` defaults,
2. ``~/.config/mailforge.conf.yml``,
3. ``~/mailforge.conf.yml``,
4. ``./mailforge.conf.yml`` in the current working directory.

Any file may pull in other files through an ``include`` key (a path or a
list of paths, relative to the including file). Supported formats are
YAML, JSON, TOML and INI. The merged result is exposed as a
:class:`box.Box` so nested values are reachable with attribute access.

Examples:
    >>> from mailforge.config import load_from_file  # doctest: +SKIP
    >>> config = load_from_file("mailforge.conf.yml")  # doctest: +SKIP
    >>> config.mail.smtp.host  # doctest: +SKIP
    'smtp.example.com'
"""

from __future__ import annotations

import configparser
import json
import logging
import os
import threading
import time
import tomllib
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from box import Box

from mailforge.config.exceptions import (
    ConfigCircularIncludeError,
    ConfigFileNotFoundError,
    ConfigFormatError,
    ConfigNotLoadedError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

log = logging.getLogger(__name__)

CONFIG_FILENAME = "mailforge.conf.yml"
DEFAULT_ENCODING = "utf-8"
DEFAULT_ENV_VAR = "CONFIG_PATH"
INCLUDE_KEY = "include"

_YAML_SUFFIXES = frozenset({".yml", ".yaml"})
_SUFFIX_FAMILIES: dict[str, str] = {
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
    ".toml": "toml",
    ".ini": "ini",
}

_BOX_OPTIONS: dict[str, Any] = {"default_box": False, "box_dots": False}

_config_lock = threading.Lock()
_config_cache: Box | None = None
_config_loaded_at: float | None = None


# ─────────────────────────────────────────────────────────────────────────────
# File readers
# ─────────────────────────────────────────────────────────────────────────────


def _load_yaml_file(path: Path, encoding: str = DEFAULT_ENCODING) -> dict[str, Any]:
    """Parse a YAML file into a dictionary."""
    with path.open(encoding=encoding) as handle:
        try:
            data = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ConfigFormatError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFormatError(f"Top-level YAML value in {path} must be a mapping")
    return data


def _load_json_file(path: Path, encoding: str = DEFAULT_ENCODING) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding=encoding))
    except json.JSONDecodeError as exc:
        raise ConfigFormatError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigFormatError(f"Top-level JSON value in {path} must be an object")
    return data


def _load_toml_file(path: Path, encoding: str = DEFAULT_ENCODING) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding=encoding))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFormatError(f"Invalid TOML in {path}: {exc}") from exc


def _load_ini_file(path: Path, encoding: str = DEFAULT_ENCODING) -> dict[str, Any]:
    parser = configparser.ConfigParser()
    try:
        parser.read(path, encoding=encoding)
    except configparser.Error as exc:
        raise ConfigFormatError(f"Invalid INI in {path}: {exc}") from exc
    return {section: dict(parser.items(section)) for section in parser.sections()}


def _load_any_config_file(path: Path, encoding: str = DEFAULT_ENCODING) -> dict[str, Any]:
    """Dispatch to the reader matching the file suffix.

    Raises:
        ConfigFormatError: If the suffix is not supported.
    """
    suffix = path.suffix.lower()
    if suffix in _YAML_SUFFIXES:
        return _load_yaml_file(path, encoding)
    if suffix == ".json":
        return _load_json_file(path, encoding)
    if suffix == ".toml":
        return _load_toml_file(path, encoding)
    if suffix == ".ini":
        return _load_ini_file(path, encoding)
    raise ConfigFormatError(f"Unsupported config file type: {path.suffix or path.name}")


def _load_default_config(encoding: str = DEFAULT_ENCODING) -> dict[str, Any]:
    """Return the defaults shipped inside the package."""
    resource = resources.files("mailforge").joinpath(CONFIG_FILENAME)
    if not resource.is_file():  # pragma: no cover - broken installation
        log.warning("Packaged default configuration %s is missing", CONFIG_FILENAME)
        return {}
    data = yaml.safe_load(resource.read_text(encoding=encoding)) or {}
    if not isinstance(data, dict):  # pragma: no cover - packaged file is controlled
        raise ConfigFormatError("Packaged default configuration must be a mapping")
    return data


# ─────────────────────────────────────────────────────────────────────────────
# Merging and includes
# ─────────────────────────────────────────────────────────────────────────────


def deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base`` and return ``base``.

    Nested mappings are merged key by key; any other value in ``override``
    replaces the one in ``base``.

    Examples:
        >>> deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}, "b": 4})
        {'a': {'x': 1, 'y': 3}, 'b': 4}
    """
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            deep_merge(current, value)
        else:
            base[key] = value
    return base


def _normalize_includes(raw: Any, source: Path) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list) and all(isinstance(item, str) for item in raw):
        return list(raw)
    raise ConfigFormatError(f"'{INCLUDE_KEY}' in {source} must be a path or a list of paths")


class ConfigLoader:
    """Load and merge configuration files into a :class:`box.Box`.

    Args:
        strict_format: Reject includes whose format differs from the
            including file.
        encoding: Text encoding used for every file.

    Examples:
        >>> loader = ConfigLoader(strict_format=True)  # doctest: +SKIP
        >>> config = loader.load_from_file("main.yml")  # doctest: +SKIP
    """

    def __init__(self, *, strict_format: bool = False, encoding: str = DEFAULT_ENCODING) -> None:
        self.strict_format = strict_format
        self.encoding = encoding

    @classmethod
    def from_env(
        cls,
        env_var: str = DEFAULT_ENV_VAR,
        *,
        strict_format: bool = False,
        encoding: str = DEFAULT_ENCODING,
    ) -> Box:
        """Load the file whose path is stored in ``env_var``.

        Raises:
            ValueError: If the environment variable is not set.
        """
        value = os.environ.get(env_var)
        if not value:
            raise ValueError(f"Environment variable '{env_var}' is not set")
        return cls(strict_format=strict_format, encoding=encoding).load_from_file(value)

    def load_from_file(self, path: str | os.PathLike[str]) -> Box:
        """Load a single file (and its includes) without cascading."""
        resolved = Path(path).expanduser()
        if not resolved.is_file():
            raise ConfigFileNotFoundError(f"Config file not found: {resolved}")
        data = self._load_with_includes(resolved.resolve(), stack=())
        return Box(data, **_BOX_OPTIONS)

    def load(self, filename: str = CONFIG_FILENAME) -> Box:
        """Load packaged defaults and every cascading user layer."""
        merged = _load_default_config(self.encoding)
        for candidate in self._search_paths(filename):
            if candidate.is_file():
                log.debug("Merging configuration layer %s", candidate)
                deep_merge(merged, self._load_with_includes(candidate.resolve(), stack=()))
        return Box(merged, **_BOX_OPTIONS)

    @staticmethod
    def _search_paths(filename: str) -> list[Path]:
        home = Path.home()
        paths = [home / ".config" / filename, home / filename, Path.cwd() / filename]
        unique: list[Path] = []
        for path in paths:
            if path not in unique:
                unique.append(path)
        return unique

    def _load_with_includes(self, path: Path, stack: tuple[Path, ...]) -> dict[str, Any]:
        if path in stack:
            chain = " -> ".join(str(item) for item in (*stack, path))
            raise ConfigCircularIncludeError(f"Circular include detected: {chain}")

        data = _load_any_config_file(path, self.encoding)
        includes = _normalize_includes(data.pop(INCLUDE_KEY, None), path)

        merged: dict[str, Any] = {}
        for include in includes:
            target = Path(include).expanduser()
            if not target.is_absolute():
                target = path.parent / target
            if not target.is_file():
                raise ConfigFileNotFoundError(f"Included config file not found: {target} (from {path})")
            if self.strict_format and _SUFFIX_FAMILIES.get(target.suffix.lower()) != _SUFFIX_FAMILIES.get(
                path.suffix.lower()
            ):
                raise ConfigFormatError(f"Include format mismatch: {target.name} included from {path.name}")
            deep_merge(merged, self._load_with_includes(target.resolve(), (*stack, path)))

        return deep_merge(merged, data)


# ─────────────────────────────────────────────────────────────────────────────
# Functional API
# ─────────────────────────────────────────────────────────────────────────────


def load_config(
    filename: str | None = None,
    *,
    path: str | os.PathLike[str] | None = None,
    strict_format: bool = False,
    encoding: str = DEFAULT_ENCODING,
) -> Box:
    """Load configuration, either from an explicit path or by cascading.

    Args:
        filename: File name looked up in the cascading search locations.
        path: Explicit file to load; disables the cascade.
        strict_format: Reject includes with a different file format.
        encoding: Text encoding used for every file.
    """
    loader = ConfigLoader(strict_format=strict_format, encoding=encoding)
    if path is not None:
        return loader.load_from_file(path)
    return loader.load(filename or CONFIG_FILENAME)


def load_from_file(path: str | os.PathLike[str], *, strict_format: bool = False) -> Box:
    """Load one file and its includes."""
    return ConfigLoader(strict_format=strict_format).load_from_file(path)


def load_from_env(env_var: str = DEFAULT_ENV_VAR, *, strict_format: bool = False) -> Box:
    """Load the file referenced by an environment variable."""
    return ConfigLoader.from_env(env_var, strict_format=strict_format)


def get_config(*, force_reload: bool = False, max_age: float | None = None) -> Box:
    """Return the cached configuration, loading it on first use.

    Args:
        force_reload: Discard the cache and load again.
        max_age: Reload when the cached value is older than this many seconds.
    """
    global _config_cache, _config_loaded_at  # pylint: disable=global-statement

    with _config_lock:
        stale = (
            max_age is not None
            and _config_loaded_at is not None
            and (time.monotonic() - _config_loaded_at) > max_age
        )
        if _config_cache is None or force_reload or stale:
            _config_cache = load_config()
            _config_loaded_at = time.monotonic()
        return _config_cache


def require_config() -> Box:
    """Return the cached configuration or fail when nothing was loaded.

    Raises:
        ConfigNotLoadedError: If :func:`get_config` was never called.
    """
    if _config_cache is None:
        raise ConfigNotLoadedError("Configuration not loaded yet. Call get_config() first.")
    return _config_cache


def clear_config() -> None:
    """Drop the cached configuration."""
    global _config_cache, _config_loaded_at  # pylint: disable=global-statement

    with _config_lock:
        _config_cache = None
        _config_loaded_at = None


__all__ = [
    "CONFIG_FILENAME",
    "ConfigLoader",
    "clear_config",
    "deep_merge",
    "get_config",
    "load_config",
    "load_from_env",
    "load_from_file",
    "require_config",
]
