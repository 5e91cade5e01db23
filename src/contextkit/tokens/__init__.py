"""Token estimation and usage tracking.

Provides token counting using tiktoken for accurate counts, with a
character heuristic for environments without encoding files.

Standalone Usage:
    >>> from contextkit.tokens import TokenCounter, TokenizerConfig, UsageTracker
    >>> counter = TokenCounter(TokenizerConfig(encoding="cl100k_base"))
    >>> count = counter.count("Hello, world!")
    >>> tracker = UsageTracker()
    >>> tracker.record_raw(input_tokens=100, output_tokens=50)
"""

from contextkit.tokens.config import TokenizerConfig
from contextkit.tokens.counter import TokenCounter
from contextkit.tokens.tracker import TurnUsage, UsageTracker

__all__ = ["TokenCounter", "TokenizerConfig", "TurnUsage", "UsageTracker"]
