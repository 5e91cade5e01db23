"""Head and tail truncation of tool output."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from contextkit.context.config import MARKER_LINES, TruncationConfig

MARKER_TEMPLATE = "\n[... omitted {omitted} bytes ({lines} lines) of {total} bytes ...]\n"


@dataclass(frozen=True)
class TruncationRecord:
    """Outcome of one truncation, kept for the session audit trail.

    Attributes:
        original_bytes: Size of the content before truncation.
        retained_bytes: Bytes of original content kept (head plus tail).
        bytes_omitted: Bytes dropped from the middle.
        lines_omitted: Newlines contained in the dropped middle.
        head_bytes: Bytes kept from the start.
        tail_bytes: Bytes kept from the end.
        limit_bytes: Byte limit that was applied.
        limit_lines: Line limit that was applied, if any.
        source: Optional label, usually the tool name.
        timestamp: When the truncation happened.
    """

    original_bytes: int
    retained_bytes: int
    bytes_omitted: int
    lines_omitted: int
    head_bytes: int
    tail_bytes: int
    limit_bytes: int
    limit_lines: int | None = None
    source: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_record(self) -> dict[str, Any]:
        """Flatten into a serializable audit record."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": "truncation",
            "before": self.original_bytes,
            "after": self.retained_bytes,
            "bytes_omitted": self.bytes_omitted,
            "lines_omitted": self.lines_omitted,
            "head_bytes": self.head_bytes,
            "tail_bytes": self.tail_bytes,
            "limit_bytes": self.limit_bytes,
            "limit_lines": self.limit_lines,
            "source": self.source,
        }


def encode_output(text: str) -> bytes:
    """Encode text as UTF-8, keeping lone surrogates.

    Output decoded with ``errors="surrogateescape"`` carries lone
    surrogates; they are measured and kept as three-byte sequences
    instead of failing the encode.
    """
    return text.encode("utf-8", errors="surrogatepass")


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="surrogatepass")


def _is_continuation(byte: int) -> bool:
    return byte & 0xC0 == 0x80


def _align_head(data: bytes, end: int) -> int:
    # Back off to the start of the character the cut falls in
    end = min(max(end, 0), len(data))
    while 0 < end < len(data) and _is_continuation(data[end]):
        end -= 1
    return end


def _align_tail(data: bytes, start: int) -> int:
    start = min(max(start, 0), len(data))
    while start < len(data) and _is_continuation(data[start]):
        start += 1
    return start


def _head_lines_end(data: bytes, lines: int) -> int:
    end = 0
    for _ in range(lines):
        pos = data.find(b"\n", end)
        if pos < 0:
            return len(data)
        end = pos + 1
    return end


def _tail_lines_start(data: bytes, lines: int) -> int:
    # The tail holds at most ``lines`` newlines
    start = len(data)
    for _ in range(lines + 1):
        pos = data.rfind(b"\n", 0, start)
        if pos < 0:
            return 0
        start = pos
    return start + 1


class OutputTruncator:
    """Bound the size of a single tool or command output.

    Keeps the head and tail of the content verbatim and replaces the
    middle with a visible marker. Output is cut when it exceeds the byte
    limit or the line limit. The result fits both limits, so truncating
    an already truncated output is a no-op.

    The truncator holds no per-session state; callers own the audit
    trail the returned records are appended to.
    """

    def __init__(self, config: TruncationConfig | None = None) -> None:
        """Initialize the truncator.

        Args:
            config: Truncation configuration. Uses defaults if not provided.
        """
        self._config = config or TruncationConfig()

    @property
    def config(self) -> TruncationConfig:
        """Get the truncation configuration."""
        return self._config

    def segments_for(self, limit_bytes: int) -> tuple[int, int]:
        """Resolve head and tail sizes for a limit.

        Configured sizes are used when they fit the limit; otherwise the
        space left after the marker reserve is split evenly.

        Args:
            limit_bytes: Limit being applied.

        Returns:
            Tuple of (head_bytes, tail_bytes).

        Raises:
            ValueError: If the limit leaves no room for the marker.
        """
        reserve = self._config.marker_reserve_bytes
        if limit_bytes < reserve * 2:
            raise ValueError(f"limit_bytes must be at least {reserve * 2}, got {limit_bytes}")

        budget = limit_bytes - reserve
        head = self._config.head_bytes
        tail = self._config.tail_bytes

        if head is not None and tail is not None and head + tail <= budget:
            return head, tail
        if head is not None and tail is None and head <= budget:
            return head, budget - head
        if tail is not None and head is None and tail <= budget:
            return budget - tail, tail

        head = budget // 2
        return head, budget - head

    def line_segments(self) -> tuple[int, int] | None:
        """Resolve head and tail line counts, or None without a line limit."""
        limit = self._config.limit_lines
        if limit is None:
            return None

        budget = limit - MARKER_LINES
        head = self._config.head_lines
        tail = self._config.tail_lines
        if head is None and tail is None:
            head = budget // 2
        if head is None:
            return budget - tail, tail
        if tail is None:
            return head, budget - head
        return head, tail

    def truncate(
        self,
        content: str,
        limit_bytes: int | None = None,
        *,
        source: str | None = None,
    ) -> tuple[str, TruncationRecord | None]:
        """Truncate content that exceeds the byte or line limit.

        Args:
            content: Output to bound.
            limit_bytes: Byte limit. Uses the configured limit if None.
            source: Optional label stored on the record.

        Returns:
            Tuple of (result, record). ``record`` is None when the content
            already fits and is returned unchanged.
        """
        limit = limit_bytes if limit_bytes is not None else self._config.limit_bytes
        data = encode_output(content)
        total = len(data)
        line_limit = self._config.limit_lines
        over_lines = line_limit is not None and data.count(b"\n") > line_limit

        if total <= limit and not over_lines:
            return content, None

        head_size, tail_size = self.segments_for(limit)
        head_end = _align_head(data, head_size)
        tail_start = _align_tail(data, total - tail_size)

        lines = self.line_segments()
        if lines is not None:
            head_lines, tail_lines = lines
            head_end = min(head_end, _head_lines_end(data, head_lines))
            tail_start = max(tail_start, _tail_lines_start(data, tail_lines))

        middle = data[head_end:tail_start]
        omitted = len(middle)
        omitted_lines = middle.count(b"\n")

        marker = MARKER_TEMPLATE.format(omitted=omitted, lines=omitted_lines, total=total)
        record = TruncationRecord(
            original_bytes=total,
            retained_bytes=head_end + (total - tail_start),
            bytes_omitted=omitted,
            lines_omitted=omitted_lines,
            head_bytes=head_end,
            tail_bytes=total - tail_start,
            limit_bytes=limit,
            limit_lines=line_limit,
            source=source,
        )
        return _decode(data[:head_end]) + marker + _decode(data[tail_start:]), record


def truncate_output(
    content: str,
    limit_bytes: int | None = None,
) -> tuple[str, TruncationRecord | None]:
    """Truncate content with the default configuration.

    Convenience wrapper around ``OutputTruncator().truncate``.
    """
    return OutputTruncator().truncate(content, limit_bytes)
