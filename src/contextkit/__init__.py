"""contextkit - context window management for coding agents.

Token accounting, tool output truncation, conversation compaction and
hierarchical instruction loading for an agent loop talking to a model
with a bounded context window.
"""

from contextkit.config import ContextKitSettings
from contextkit.context import (
    AuditTrail,
    CompactionConfig,
    CompactionEngine,
    CompactionRequired,
    CompactionSummary,
    ContextConfig,
    ContextManager,
    ContextSession,
    ContextUsage,
    ConversationItem,
    ExtractiveSummarizer,
    ModelSummarizer,
    OutputTruncator,
    Role,
    TruncationConfig,
    TruncationRecord,
    UsageSnapshot,
)
from contextkit.display import print_usage, render_usage
from contextkit.errors import (
    CompactionFailedError,
    ConfigTooLargeError,
    ConfigurationError,
    ContextKitError,
)
from contextkit.instructions import InstructionLoader, InstructionSet
from contextkit.tokens import TokenCounter, TokenizerConfig, UsageTracker

__version__ = "0.1.0"

__all__ = [
    "AuditTrail",
    "CompactionConfig",
    "CompactionEngine",
    "CompactionFailedError",
    "CompactionRequired",
    "CompactionSummary",
    "ConfigTooLargeError",
    "ConfigurationError",
    "ContextConfig",
    "ContextKitError",
    "ContextKitSettings",
    "ContextManager",
    "ContextSession",
    "ContextUsage",
    "ConversationItem",
    "ExtractiveSummarizer",
    "InstructionLoader",
    "InstructionSet",
    "ModelSummarizer",
    "OutputTruncator",
    "Role",
    "TokenCounter",
    "TokenizerConfig",
    "TruncationConfig",
    "TruncationRecord",
    "UsageSnapshot",
    "UsageTracker",
    "__version__",
    "print_usage",
    "render_usage",
]
