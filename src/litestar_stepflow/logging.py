"""Logging configuration.

Uses standard library logging with a ``key=value`` formatter so the structured
fields passed through ``extra=`` stay readable in plain log output.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from typing import Any

__all__ = ["KeyValueFormatter", "configure_logging"]

PACKAGE_LOGGER = "litestar_stepflow"

_RESERVED_LOG_RECORD_ATTRS: set[str] = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):
    """Render records as ``ts=... level=... logger=... msg="..." key=value`` lines."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        fields: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS and not key.startswith("_")
        )

        line = " ".join(f"{key}={_render(value)}" for key, value in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() or ch in '"=' for ch in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Install the key=value formatter on the package logger.

    Calling this again replaces the handler instead of stacking a second one.

    Args:
        level: Level name for the package logger.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(KeyValueFormatter())
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger
