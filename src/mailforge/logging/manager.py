"""Rich-backed logger with presets, custom levels and structured context.

:class:`LogManager` is a :class:`logging.Logger` subclass. The logger itself
always accepts every level down to ``TRACE``; the handlers decide what is
emitted. Configuration is merged from, in order:

1. :data:`FALLBACK_PRESETS` ``defaults`` (used when no config file exists),
2. the ``logger.defaults`` section of the global configuration,
3. the selected preset (``dev``, ``prod`` or ``debug``),
4. the ``config`` mapping passed to the constructor.

Examples:
    >>> log = LogManager(name="demo", config={"output": "console"})  # doctest: +SKIP
    >>> log.info("Message queued", recipients=3)  # doctest: +SKIP
"""

from __future__ import annotations

import asyncio
import copy
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from mailforge.config.exceptions import ConfigError
from mailforge.config.loader import deep_merge, get_config

TRACE_LEVEL = 5
SUCCESS_LEVEL = 25

logging.addLevelName(TRACE_LEVEL, "TRACE")
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

LOGGING_LEVEL = SimpleNamespace(
    TRACE=TRACE_LEVEL,
    DEBUG=logging.DEBUG,
    INFO=logging.INFO,
    SUCCESS=SUCCESS_LEVEL,
    WARNING=logging.WARNING,
    ERROR=logging.ERROR,
    CRITICAL=logging.CRITICAL,
)

LEVEL_ICONS: dict[int, str] = {
    TRACE_LEVEL: "🔍",
    logging.DEBUG: "🐛",
    logging.INFO: "ℹ️",
    SUCCESS_LEVEL: "✅",
    logging.WARNING: "⚠️",
    logging.ERROR: "❌",
    logging.CRITICAL: "🔥",
}

FALLBACK_PRESETS: dict[str, dict[str, Any]] = {
    "defaults": {
        "output": "console",
        "console": {"level": "INFO", "show_path": False},
        "file": {
            "level": "DEBUG",
            "path": "./logs/mailforge.log",
            "max_bytes": 5 * 1024 * 1024,
            "backup_count": 3,
        },
        "icons": {"show": True},
    },
    "dev": {"output": "console", "console": {"level": "DEBUG", "show_path": True}},
    "prod": {"output": "file", "file": {"level": "INFO"}},
    "debug": {
        "output": "both",
        "console": {"level": "TRACE", "show_path": True},
        "file": {"level": "TRACE"},
    },
}

_VALID_OUTPUTS = frozenset({"console", "file", "both"})
_RESERVED_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def parse_level(value: str | int) -> int:
    """Convert a level name (case-insensitive) or number to a level number.

    Raises:
        ValueError: If the name is unknown.
    """
    if isinstance(value, int):
        return value
    level = getattr(LOGGING_LEVEL, str(value).strip().upper(), None)
    if level is None:
        valid = ", ".join(vars(LOGGING_LEVEL))
        raise ValueError(f"Invalid log level: {value!r}. Valid levels: {valid}")
    return int(level)


def format_with_icon(level: int, message: str) -> str:
    """Prefix ``message`` with the icon registered for ``level``."""
    icon = LEVEL_ICONS.get(level)
    return f"{icon} {message}" if icon else message


def _load_global_section() -> dict[str, Any]:
    try:
        config = get_config()
    except ConfigError:
        return {}
    section = config.get("logger") if hasattr(config, "get") else None
    if not section:
        return {}
    return section.to_dict() if hasattr(section, "to_dict") else dict(section)


class LogManager(logging.Logger):
    """Logger configured from presets with rich console and file output.

    Args:
        name: Logger name.
        config: Explicit configuration merged last.
        preset: One of ``dev``, ``prod`` or ``debug``.

    Raises:
        ValueError: If the preset or output mode is unknown.
    """

    def __init__(
        self,
        name: str = "mailforge",
        *,
        config: dict[str, Any] | None = None,
        preset: str | None = None,
    ) -> None:
        super().__init__(name, level=TRACE_LEVEL)
        self.config = self._resolve_config(config, preset)
        self._show_icons = bool(self.config.get("icons", {}).get("show", True))
        for handler in self.build_handlers():
            self.addHandler(handler)

    # ── configuration ──────────────────────────────────────────────────────

    @staticmethod
    def _resolve_config(config: dict[str, Any] | None, preset: str | None) -> dict[str, Any]:
        merged = copy.deepcopy(FALLBACK_PRESETS["defaults"])
        section = _load_global_section()
        deep_merge(merged, section.get("defaults", {}) or {})

        if preset is not None:
            presets = {
                key: value for key, value in FALLBACK_PRESETS.items() if key != "defaults"
            }
            deep_merge(presets, section.get("presets", {}) or {})
            if preset not in presets:
                raise ValueError(f"Unknown logging preset: {preset!r}. Available: {sorted(presets)}")
            deep_merge(merged, copy.deepcopy(presets[preset]))

        if config:
            deep_merge(merged, copy.deepcopy(dict(config)))

        if merged.get("output") not in _VALID_OUTPUTS:
            raise ValueError(f"Invalid logging output: {merged.get('output')!r}")
        return merged

    def build_handlers(self) -> list[logging.Handler]:
        """Create the handlers described by the resolved configuration."""
        handlers: list[logging.Handler] = []
        output = self.config["output"]
        if output in ("console", "both"):
            console_cfg = self.config.get("console", {})
            handler: logging.Handler = RichHandler(
                console=Console(stderr=True),
                show_path=bool(console_cfg.get("show_path", False)),
                rich_tracebacks=True,
                markup=False,
            )
            handler.setLevel(parse_level(console_cfg.get("level", "INFO")))
            handlers.append(handler)
        if output in ("file", "both"):
            file_cfg = self.config.get("file", {})
            path = Path(file_cfg.get("path", "./logs/mailforge.log"))
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 3)),
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"))
            handler.setLevel(parse_level(file_cfg.get("level", "DEBUG")))
            handlers.append(handler)
        return handlers

    # ── structured logging ────────────────────────────────────────────────

    def _log_with_context(self, level: int, msg: object, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        passthrough = {key: kwargs.pop(key) for key in list(kwargs) if key in _RESERVED_KWARGS}
        passthrough.setdefault("stacklevel", 3)
        message = str(msg)
        if kwargs:
            context = " ".join(f"{key}={value}" for key, value in kwargs.items())
            message = f"{message} | {context}"
        if self._show_icons:
            message = format_with_icon(level, message)
        self._log(level, message, args, **passthrough)

    def trace(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at TRACE level (protocol-level diagnostics)."""
        self._log_with_context(TRACE_LEVEL, msg, args, kwargs)

    def debug(self, msg: object, *args: Any, **kwargs: Any) -> None:
        self._log_with_context(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: object, *args: Any, **kwargs: Any) -> None:
        self._log_with_context(logging.INFO, msg, args, kwargs)

    def success(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at SUCCESS level, between INFO and WARNING."""
        self._log_with_context(SUCCESS_LEVEL, msg, args, kwargs)

    def warning(self, msg: object, *args: Any, **kwargs: Any) -> None:
        self._log_with_context(logging.WARNING, msg, args, kwargs)

    def error(self, msg: object, *args: Any, **kwargs: Any) -> None:
        self._log_with_context(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: object, *args: Any, **kwargs: Any) -> None:
        self._log_with_context(logging.CRITICAL, msg, args, kwargs)

    # ── async variants ────────────────────────────────────────────────────

    async def atrace(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.trace, msg, *args, **kwargs)

    async def adebug(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.debug, msg, *args, **kwargs)

    async def ainfo(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.info, msg, *args, **kwargs)

    async def asuccess(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.success, msg, *args, **kwargs)

    async def awarning(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.warning, msg, *args, **kwargs)

    async def aerror(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.error, msg, *args, **kwargs)

    async def acritical(self, msg: object, *args: Any, **kwargs: Any) -> None:
        await asyncio.to_thread(self.critical, msg, *args, **kwargs)


def init_logging(
    *,
    config: dict[str, Any] | None = None,
    preset: str | None = None,
    name: str = "mailforge",
) -> LogManager:
    """Attach LogManager handlers to the ``mailforge`` logger tree.

    Module loggers obtained with ``logging.getLogger(__name__)`` propagate to
    the package logger, so a single call makes SMTP ``TRACE`` output visible.
    The package logger level follows the most verbose installed handler.

    Returns:
        The :class:`LogManager` whose handlers were installed.
    """
    manager = LogManager(name=name, config=config, preset=preset)
    package_logger = logging.getLogger(name)
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
    for handler in manager.handlers:
        package_logger.addHandler(handler)
    package_logger.setLevel(min((handler.level for handler in manager.handlers), default=TRACE_LEVEL))
    return manager


__all__ = [
    "FALLBACK_PRESETS",
    "LOGGING_LEVEL",
    "SUCCESS_LEVEL",
    "TRACE_LEVEL",
    "LogManager",
    "format_with_icon",
    "init_logging",
    "parse_level",
]
