"""Compaction summary value type."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CompactionSummary:
    """Replacement for a range of conversation history.

    Attributes:
        summary: Condensed natural-language summary text.
        token_count: Tokens the summary item occupies.
        first_index: First replaced item index.
        last_index: Last replaced item index (inclusive).
        original_tokens: Aggregate tokens of the replaced range.
        strategy: Name of the summarizer that produced the text.
        timestamp: When the summary was produced.
    """

    summary: str
    token_count: int
    first_index: int
    last_index: int
    original_tokens: int
    strategy: str = "extractive"
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def item_count(self) -> int:
        """Number of items the summary replaces."""
        return self.last_index - self.first_index + 1

    @property
    def ratio(self) -> float:
        """Achieved reduction factor (original / summary tokens)."""
        if self.token_count == 0:
            return float("inf")
        return self.original_tokens / self.token_count

    @property
    def reduces(self) -> bool:
        """Whether the summary is strictly smaller than what it replaces."""
        return self.token_count < self.original_tokens

    def to_record(self) -> dict[str, Any]:
        """Flatten into a serializable audit record."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": "compaction",
            "before": self.original_tokens,
            "after": self.token_count,
            "first_index": self.first_index,
            "last_index": self.last_index,
            "strategy": self.strategy,
        }
