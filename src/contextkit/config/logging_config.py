"""Logging configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """Configuration for package logging.

    Attributes:
        level: Log level for the ``contextkit`` logger.
        structured: Emit JSON lines instead of plain text.
        redact_sensitive: Mask values that look like secrets.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    structured: bool = Field(
        default=False,
        description="Emit JSON lines instead of plain text",
    )
    redact_sensitive: bool = Field(
        default=True,
        description="Mask values that look like secrets",
    )
