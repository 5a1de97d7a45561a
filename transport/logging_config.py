"""Logging setup for the transport package.

Configurable via environment variables:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR. Default: INFO

Usage:
    from transport.logging_config import configure_logging
    configure_logging()  # once, at startup
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class TextFormatter(logging.Formatter):
    """TIME LEVEL [logger] message, with file:line for debug and error records."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        name = record.name
        if name.startswith("transport."):
            name = name[len("transport."):]
        line = f"{timestamp} {record.levelname:8s} [{name}] {record.getMessage()}"
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            line += f" ({record.filename}:{record.lineno})"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_log_level(default: str = "INFO") -> int:
    """Level named by LOG_LEVEL; unknown names fall back to INFO."""
    return LEVELS.get(os.environ.get("LOG_LEVEL", default).upper(), logging.INFO)


def configure_logging(level: Optional[int] = None) -> logging.Logger:
    """Attach a stderr handler to the ``transport`` logger; safe to call twice."""
    if level is None:
        level = get_log_level()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(TextFormatter())

    root = logging.getLogger("transport")
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
    root.debug("Logging configured: level=%s", logging.getLevelName(level))
    return root
