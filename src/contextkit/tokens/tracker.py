"""Per-turn token usage tracking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic_ai.usage import Usage


@dataclass
class TurnUsage:
    """Token usage for a single turn.

    Attributes:
        turn_number: 1-based turn index.
        input_tokens: Tokens sent to the model.
        output_tokens: Tokens produced by the model.
        total_tokens: Input plus output tokens.
        timestamp: When the turn was recorded.
        compaction_event: True if a compaction happened during this turn.
    """

    turn_number: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    timestamp: datetime
    compaction_event: bool = False


class UsageTracker:
    """Track token usage across the turns of one session.

    Feeds the telemetry snapshot: average turn size and an estimate of
    how many turns still fit in the window.
    """

    def __init__(self) -> None:
        """Initialize the usage tracker."""
        self._turns: list[TurnUsage] = []
        self._total_tokens = 0

    def record_usage(self, usage: Usage) -> TurnUsage:
        """Record a turn from a pydantic-ai usage object.

        Args:
            usage: Usage object from pydantic-ai.

        Returns:
            The recorded turn.
        """
        # Use new API (input_tokens/output_tokens) with fallback to deprecated names
        input_tokens = (
            getattr(usage, "input_tokens", None) or getattr(usage, "request_tokens", None) or 0
        )
        output_tokens = (
            getattr(usage, "output_tokens", None) or getattr(usage, "response_tokens", None) or 0
        )
        return self.record_raw(input_tokens, output_tokens)

    def record_raw(self, input_tokens: int, output_tokens: int) -> TurnUsage:
        """Record raw token counts for a turn.

        Args:
            input_tokens: Number of input tokens.
            output_tokens: Number of output tokens.

        Returns:
            The recorded turn.
        """
        turn = TurnUsage(
            turn_number=len(self._turns) + 1,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            timestamp=datetime.now(),
        )
        self._turns.append(turn)
        self._total_tokens += turn.total_tokens
        return turn

    def record_compaction(self) -> None:
        """Mark the latest turn as one where compaction occurred."""
        if self._turns:
            self._turns[-1].compaction_event = True

    @property
    def total_tokens(self) -> int:
        """Total tokens across all recorded turns."""
        return self._total_tokens

    @property
    def turn_count(self) -> int:
        """Number of recorded turns."""
        return len(self._turns)

    def average_turn_size(self) -> int:
        """Average tokens per turn, zero when nothing was recorded."""
        if not self._turns:
            return 0
        return self._total_tokens // len(self._turns)

    def estimate_remaining_turns(self, window: int, reserved: int, used: int) -> int:
        """Estimate how many more turns fit in the context window.

        Args:
            window: Model context window in tokens.
            reserved: Tokens reserved for model output.
            used: Tokens currently occupied by the conversation.

        Returns:
            Estimated number of turns, zero when no turn was recorded yet.
        """
        average = self.average_turn_size()
        if average == 0:
            return 0
        return max(0, window - reserved - used) // average

    def get_turns(self) -> list[TurnUsage]:
        """Get a copy of the per-turn history."""
        return self._turns.copy()

    def reset(self) -> None:
        """Reset all tracking data."""
        self._turns.clear()
        self._total_tokens = 0
