"""Logging helpers built on :mod:`logging` and rich."""

from mailforge.logging.manager import (
    FALLBACK_PRESETS,
    LOGGING_LEVEL,
    SUCCESS_LEVEL,
    TRACE_LEVEL,
    LogManager,
    init_logging,
    parse_level,
)

__all__ = [
    "FALLBACK_PRESETS",
    "LOGGING_LEVEL",
    "SUCCESS_LEVEL",
    "TRACE_LEVEL",
    "LogManager",
    "init_logging",
    "parse_level",
]
