"""Context management configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

DEFAULT_CONTEXT_WINDOW = 1_000_000
DEFAULT_OUTPUT_LIMIT_BYTES = 10 * 1024
DEFAULT_OUTPUT_LIMIT_LINES = 256
# Newlines the omission marker adds to truncated output
MARKER_LINES = 2


class TruncationConfig(BaseModel):
    """Configuration for tool output truncation.

    Output is cut when it exceeds either the byte limit or the line
    limit; one marker replaces the dropped middle in both cases.

    Attributes:
        limit_bytes: Maximum size of a single tool output.
        head_bytes: Bytes kept from the start. Derived from the limit if None.
        tail_bytes: Bytes kept from the end. Derived from the limit if None.
        marker_reserve_bytes: Room left for the omission marker.
        limit_lines: Maximum newlines in a single tool output. None disables
            the line limit.
        head_lines: Lines kept from the start. Derived from the limit if None.
        tail_lines: Lines kept from the end. Derived from the limit if None.
    """

    limit_bytes: int = Field(
        default=DEFAULT_OUTPUT_LIMIT_BYTES,
        ge=256,
        description="Maximum size of a single tool output in bytes",
    )
    head_bytes: int | None = Field(
        default=None,
        ge=0,
        description="Bytes kept from the start of truncated output",
    )
    tail_bytes: int | None = Field(
        default=None,
        ge=0,
        description="Bytes kept from the end of truncated output",
    )
    marker_reserve_bytes: int = Field(
        default=128,
        ge=96,
        description="Bytes reserved for the omission marker",
    )
    limit_lines: int | None = Field(
        default=DEFAULT_OUTPUT_LIMIT_LINES,
        ge=MARKER_LINES + 2,
        description="Maximum number of lines in a single tool output",
    )
    head_lines: int | None = Field(
        default=None,
        ge=0,
        description="Lines kept from the start of truncated output",
    )
    tail_lines: int | None = Field(
        default=None,
        ge=0,
        description="Lines kept from the end of truncated output",
    )

    @model_validator(mode="after")
    def _check_segments_fit(self) -> TruncationConfig:
        if self.marker_reserve_bytes * 2 > self.limit_bytes:
            raise ValueError("limit_bytes must be at least twice marker_reserve_bytes")
        head = self.head_bytes or 0
        tail = self.tail_bytes or 0
        needed = head + tail + self.marker_reserve_bytes
        if needed > self.limit_bytes:
            raise ValueError(
                f"head_bytes + tail_bytes + marker_reserve_bytes ({needed}) "
                f"exceeds limit_bytes ({self.limit_bytes})"
            )
        if self.limit_lines is not None:
            needed_lines = (self.head_lines or 0) + (self.tail_lines or 0) + MARKER_LINES
            if needed_lines > self.limit_lines:
                raise ValueError(
                    f"head_lines + tail_lines + {MARKER_LINES} marker lines ({needed_lines}) "
                    f"exceeds limit_lines ({self.limit_lines})"
                )
        return self


class ContextConfig(BaseModel):
    """Configuration for the context window of one session.

    Attributes:
        context_window: Model context window in tokens.
        compaction_threshold_ratio: Usage ratio at which compaction is signalled.
        reserved_output_ratio: Share of the window reserved for model output.
    """

    context_window: int = Field(
        default=DEFAULT_CONTEXT_WINDOW,
        gt=0,
        description="Model context window in tokens",
    )
    compaction_threshold_ratio: float = Field(
        default=0.70,
        gt=0,
        le=1,
        description="Usage ratio at which compaction is signalled",
    )
    reserved_output_ratio: float = Field(
        default=0.10,
        ge=0,
        lt=1,
        description="Share of the window reserved for model output",
    )


class CompactionConfig(BaseModel):
    """Configuration for conversation compaction.

    Attributes:
        auto_compact: Compact automatically when the threshold is reached.
        target_ratio: Desired token reduction factor for the replaced range.
        preserve_recent_turns: User turns always kept out of compaction.
        max_transcript_tokens: Budget for the transcript sent to the summarizer.
        timeout_seconds: Timeout for the summarization call.
    """

    auto_compact: bool = Field(
        default=True,
        description="Compact automatically when the threshold is reached",
    )
    target_ratio: int = Field(
        default=10,
        ge=2,
        description="Desired token reduction factor",
    )
    preserve_recent_turns: int = Field(
        default=1,
        ge=1,
        description="Number of recent user turns never compacted",
    )
    max_transcript_tokens: int = Field(
        default=20_000,
        gt=0,
        description="Token budget for the transcript sent to the summarizer",
    )
    timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Timeout for the summarization call",
    )
