"""Logging utilities.

Main exports:
- setup_logging, SensitiveDataFilter, StructuredFormatter
"""

from contextkit.observability.logging import (
    SensitiveDataFilter,
    StructuredFormatter,
    setup_logging,
)

__all__ = [
    "SensitiveDataFilter",
    "StructuredFormatter",
    "setup_logging",
]
