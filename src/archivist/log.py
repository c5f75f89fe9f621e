"""Logging setup for archivist.

Loggers are created through ``get_logger(__name__)``. Each gets a single
stderr handler with a key=value formatter; the level is shared and set by
``configure_logging()`` (from ``logging.level`` / ``ARCHIVIST_LOG_LEVEL``).
"""

from __future__ import annotations

import logging
import sys

_DEFAULT_LEVEL = logging.INFO
_level: int = _DEFAULT_LEVEL


class KeyValueFormatter(logging.Formatter):
    """Format records as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        if hasattr(record, "object_id"):
            data["object_id"] = record.object_id
        line = " ".join(f"{k}={v}" for k, v in data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger for *name* (typically ``__name__``)."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(KeyValueFormatter())
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(_level)
    return logger


def configure_logging(level: str | int = _DEFAULT_LEVEL) -> None:
    """Set the level for every archivist logger.

    Args:
        level: Level name (``"DEBUG"``) or numeric level.

    Raises:
        ValueError: If *level* is not a known level name.
    """
    global _level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: '{level}'")
        level = resolved
    _level = level
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("archivist") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
