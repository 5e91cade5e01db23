"""Token estimation."""

from __future__ import annotations

import functools
import json
import math
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import tiktoken

from contextkit.tokens.config import TokenizerConfig

if TYPE_CHECKING:
    from contextkit.context.items import ConversationItem


@functools.lru_cache(maxsize=8)
def _get_encoding(name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(name)


def content_to_text(content: Any) -> str:
    """Render item content as text.

    Strings pass through; structured payloads are serialized to JSON so
    they can be estimated and summarized.

    Args:
        content: Text or a JSON-serializable payload.

    Returns:
        Text form of the content.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, sort_keys=True, default=str)


class TokenCounter:
    """Approximate token counter.

    Stateless apart from a shared, read-only encoding cache, so a single
    instance can be used from several sessions at once.

    Example:
        >>> counter = TokenCounter(TokenizerConfig(method="heuristic"))
        >>> counter.count("abcdefgh")
        2
    """

    def __init__(self, config: TokenizerConfig | None = None) -> None:
        """Initialize the counter.

        Args:
            config: Tokenizer configuration. Uses defaults if not provided.
        """
        self._config = config or TokenizerConfig()

    @property
    def config(self) -> TokenizerConfig:
        """Get the tokenizer configuration."""
        return self._config

    @property
    def item_overhead(self) -> int:
        """Tokens added per conversation item."""
        return self._config.per_item_overhead

    def count(self, text: str) -> int:
        """Estimate the number of tokens in text.

        Args:
            text: Text to estimate.

        Returns:
            Estimated token count. Empty text yields zero.
        """
        if not text:
            return 0
        if self._config.method == "heuristic":
            return math.ceil(len(text) / self._config.chars_per_token)
        encoding = _get_encoding(self._config.encoding)
        return len(encoding.encode(text, disallowed_special=()))

    def count_content(self, content: Any) -> int:
        """Estimate tokens for text or a structured payload."""
        return self.count(content_to_text(content))

    def count_item(self, item: ConversationItem) -> int:
        """Estimate tokens for a conversation item including overhead.

        Args:
            item: Conversation item to estimate.

        Returns:
            Token count of the content plus the per-item overhead.
        """
        return self.count_content(item.content) + self.item_overhead

    def count_items(self, items: Iterable[ConversationItem]) -> int:
        """Estimate total tokens for a sequence of items."""
        return sum(self.count_item(item) for item in items)

    def clip(self, text: str, max_tokens: int) -> str:
        """Return the longest prefix of text within a token budget.

        Args:
            text: Text to clip.
            max_tokens: Maximum token count for the result.

        Returns:
            Text whose estimated count is at most ``max_tokens``.
        """
        if max_tokens <= 0:
            return ""
        if self.count(text) <= max_tokens:
            return text

        if self._config.method == "heuristic":
            return text[: int(max_tokens * self._config.chars_per_token)]

        encoding = _get_encoding(self._config.encoding)
        tokens = encoding.encode(text, disallowed_special=())
        keep = max_tokens
        clipped = encoding.decode(tokens[:keep])
        # Decoding can merge differently on re-encode; back off until it fits
        while keep > 0 and self.count(clipped) > max_tokens:
            keep -= 1
            clipped = encoding.decode(tokens[:keep])
        return clipped
