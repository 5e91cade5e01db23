"""Context window management.

Provides token accounting, tool output truncation and compaction of
conversation history to stay within model context limits.

Session Usage (Recommended):
    >>> from contextkit.context import ContextSession, ConversationItem
    >>> session = ContextSession(context_window=200_000)
    >>> session.load_instructions_for(Path.cwd())
    >>> signal = await session.add(ConversationItem.user("Fix the failing test"))
    >>> print(session.snapshot().ratio)

Standalone Usage:
    >>> from contextkit.context import CompactionEngine, ContextConfig, ContextManager
    >>> manager = ContextManager(ContextConfig(context_window=128_000))
    >>> if manager.add_item(item):
    ...     summary = await CompactionEngine().compact(manager.items)
    ...     manager.apply_compaction(summary)
"""

from contextkit.context.audit import AuditEntry, AuditKind, AuditTrail
from contextkit.context.compaction import (
    CompactionEngine,
    CompactionSummary,
    ExtractiveSummarizer,
    ModelSummarizer,
    Summarizer,
)
from contextkit.context.config import CompactionConfig, ContextConfig, TruncationConfig
from contextkit.context.items import ConversationItem, Role
from contextkit.context.manager import (
    CompactionRequired,
    ContextManager,
    ContextState,
    ContextUsage,
)
from contextkit.context.session import ContextSession, UsageSnapshot
from contextkit.context.truncation import OutputTruncator, TruncationRecord, truncate_output

__all__ = [
    "AuditEntry",
    "AuditKind",
    "AuditTrail",
    "CompactionConfig",
    "CompactionEngine",
    "CompactionRequired",
    "CompactionSummary",
    "ContextConfig",
    "ContextManager",
    "ContextSession",
    "ContextState",
    "ContextUsage",
    "ConversationItem",
    "ExtractiveSummarizer",
    "ModelSummarizer",
    "OutputTruncator",
    "Role",
    "Summarizer",
    "TruncationConfig",
    "TruncationRecord",
    "UsageSnapshot",
    "truncate_output",
]
