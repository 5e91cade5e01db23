"""Logging setup for contextkit."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from contextkit.config.logging_config import LoggingConfig

ROOT_LOGGER = "contextkit"

_SECRET_PATTERN = re.compile(
    r"(?i)\b(api[_-]?key|token|secret|password|authorization)\b(\s*[=:]\s*)(\S+)"
)

# Attributes every LogRecord has; anything else came in through ``extra``
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class SensitiveDataFilter(logging.Filter):
    """Mask values that follow secret-looking keys in log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PATTERN.sub(r"\1\2[REDACTED]", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class StructuredFormatter(logging.Formatter):
    """Format records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    config: LoggingConfig | None = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure the ``contextkit`` logger.

    Replaces handlers installed by a previous call, so it is safe to
    call again after settings change.

    Args:
        config: Logging configuration. Uses defaults if not provided.
        stream: Output stream. Defaults to stderr.

    Returns:
        The configured package logger.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(config.level)

    for handler in list(logger.handlers):
        if getattr(handler, "_contextkit", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler._contextkit = True  # type: ignore[attr-defined]
    if config.structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
    if config.redact_sensitive:
        handler.addFilter(SensitiveDataFilter())

    logger.addHandler(handler)
    return logger
