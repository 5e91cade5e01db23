"""Error handling for context management."""

from contextkit.errors.exceptions import (
    CompactionFailedError,
    CompactionInProgressError,
    ConfigTooLargeError,
    ConfigurationError,
    ContextKitError,
    InvalidRangeError,
    OrphanToolResultError,
)

__all__ = [
    "CompactionFailedError",
    "CompactionInProgressError",
    "ConfigTooLargeError",
    "ConfigurationError",
    "ContextKitError",
    "InvalidRangeError",
    "OrphanToolResultError",
]
