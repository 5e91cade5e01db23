"""Audit trail for lossy context operations.

Every truncation, compaction, failed compaction, instruction trim and
pairing repair leaves one entry here and one log line.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from contextkit.context.items import ConversationItem
    from contextkit.context.summary import CompactionSummary
    from contextkit.context.truncation import TruncationRecord
    from contextkit.errors import CompactionFailedError
    from contextkit.instructions.config import InstructionTrim

logger = logging.getLogger(__name__)


class AuditKind(str, Enum):
    """Kind of audited operation."""

    TRUNCATION = "truncation"
    COMPACTION = "compaction"
    COMPACTION_FAILED = "compaction_failed"
    INSTRUCTION_TRIM = "instruction_trim"
    PAIR_REPAIR = "pair_repair"


@dataclass(frozen=True)
class AuditEntry:
    """A flat audit record.

    Attributes:
        kind: Operation kind.
        before: Size before the operation (bytes or tokens).
        after: Size after the operation.
        details: Kind-specific context.
        timestamp: When the operation happened.
    """

    kind: AuditKind
    before: int
    after: int
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_record(self) -> dict[str, Any]:
        """Flatten into a JSON-serializable dict."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "before": self.before,
            "after": self.after,
            **self.details,
        }


AuditSink = Callable[[AuditEntry], None]


class AuditTrail:
    """Ordered, append-only audit trail for one session.

    Args:
        sink: Optional callback receiving every entry as it is appended,
            for callers that persist or forward audit records.
    """

    def __init__(self, sink: AuditSink | None = None) -> None:
        self._entries: list[AuditEntry] = []
        self._sink = sink
        self._truncations: list[TruncationRecord] = []

    def _append(self, entry: AuditEntry) -> AuditEntry:
        self._entries.append(entry)
        if self._sink is not None:
            self._sink(entry)
        return entry

    def record_truncation(self, record: TruncationRecord) -> AuditEntry:
        """Record a truncation."""
        self._truncations.append(record)
        logger.info(
            "Truncated output%s: %d -> %d bytes (%d omitted)",
            f" from {record.source}" if record.source else "",
            record.original_bytes,
            record.retained_bytes,
            record.bytes_omitted,
        )
        return self._append(
            AuditEntry(
                kind=AuditKind.TRUNCATION,
                before=record.original_bytes,
                after=record.retained_bytes,
                details={
                    "bytes_omitted": record.bytes_omitted,
                    "lines_omitted": record.lines_omitted,
                    "head_bytes": record.head_bytes,
                    "tail_bytes": record.tail_bytes,
                    "source": record.source,
                },
                timestamp=record.timestamp,
            )
        )

    def record_compaction(self, summary: CompactionSummary) -> AuditEntry:
        """Record an applied compaction."""
        logger.info(
            "Compacted items %d-%d: %d -> %d tokens (%.1fx, %s)",
            summary.first_index,
            summary.last_index,
            summary.original_tokens,
            summary.token_count,
            summary.ratio,
            summary.strategy,
        )
        return self._append(
            AuditEntry(
                kind=AuditKind.COMPACTION,
                before=summary.original_tokens,
                after=summary.token_count,
                details={
                    "first_index": summary.first_index,
                    "last_index": summary.last_index,
                    "strategy": summary.strategy,
                },
                timestamp=summary.timestamp,
            )
        )

    def record_compaction_failed(self, error: CompactionFailedError) -> AuditEntry:
        """Record a compaction attempt that was not applied."""
        logger.warning("Compaction failed: %s", error)
        before = error.details.get("tokens_before", 0)
        return self._append(
            AuditEntry(
                kind=AuditKind.COMPACTION_FAILED,
                before=before,
                after=error.details.get("tokens_after", before),
                details={"reason": str(error)},
            )
        )

    def record_instruction_trim(self, trim: InstructionTrim) -> AuditEntry:
        """Record trimming of an instruction layer."""
        logger.warning(
            "Trimmed %s instructions: %d -> %d bytes",
            trim.layer.value,
            trim.original_bytes,
            trim.retained_bytes,
        )
        return self._append(
            AuditEntry(
                kind=AuditKind.INSTRUCTION_TRIM,
                before=trim.original_bytes,
                after=trim.retained_bytes,
                details={"layer": trim.layer.value},
            )
        )

    def record_pair_repair(self, dropped: list[ConversationItem]) -> AuditEntry:
        """Record tool items dropped to keep call/result pairs intact."""
        logger.warning("Dropped %d unpaired tool item(s) after compaction", len(dropped))
        return self._append(
            AuditEntry(
                kind=AuditKind.PAIR_REPAIR,
                before=sum(item.tokens for item in dropped),
                after=0,
                details={"tool_call_ids": [item.tool_call_id for item in dropped]},
            )
        )

    @property
    def entries(self) -> list[AuditEntry]:
        """Get a copy of all entries."""
        return self._entries.copy()

    def entries_of(self, kind: AuditKind) -> list[AuditEntry]:
        """Get entries of one kind."""
        return [entry for entry in self._entries if entry.kind == kind]

    @property
    def truncations(self) -> list[TruncationRecord]:
        """Get a copy of all truncation records."""
        return self._truncations.copy()

    @property
    def truncation_count(self) -> int:
        """Number of truncations recorded."""
        return len(self._truncations)

    def to_records(self) -> list[dict[str, Any]]:
        """Flatten all entries for persistence."""
        return [entry.to_record() for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
