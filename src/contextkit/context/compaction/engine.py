"""Compaction engine: replace a prefix of history with a summary."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from contextkit.context.compaction.base import Summarizer
from contextkit.context.compaction.summarize import ExtractiveSummarizer
from contextkit.context.config import CompactionConfig
from contextkit.context.items import ConversationItem, Role
from contextkit.context.summary import CompactionSummary
from contextkit.errors import CompactionFailedError
from contextkit.tokens import TokenCounter

logger = logging.getLogger(__name__)


class CompactionEngine:
    """Produce summaries that replace a prefix of the conversation.

    The engine never mutates conversation state. It returns a
    ``CompactionSummary`` that the context manager applies.

    Range policy: the prefix ends before the most recent
    ``preserve_recent_turns`` user turns, and is moved so that no tool
    call is separated from its result.

    Example:
        >>> engine = CompactionEngine(ModelSummarizer("openai:gpt-4o-mini"))
        >>> summary = await engine.compact(manager.items)
        >>> manager.apply_compaction(summary)
    """

    def __init__(
        self,
        summarizer: Summarizer | None = None,
        *,
        counter: TokenCounter | None = None,
        config: CompactionConfig | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            summarizer: Summarizer writing the summary text. Defaults to
                the extractive summarizer.
            counter: Token counter for budgets and summary size.
            config: Compaction configuration. Uses defaults if not provided.
        """
        self._counter = counter or TokenCounter()
        self._summarizer = summarizer or ExtractiveSummarizer(self._counter)
        self._config = config or CompactionConfig()

    @property
    def config(self) -> CompactionConfig:
        """Get the compaction configuration."""
        return self._config

    @property
    def summarizer(self) -> Summarizer:
        """Get the summarizer."""
        return self._summarizer

    def protected_start(self, items: Sequence[ConversationItem]) -> int:
        """Index where the protected recent turns begin.

        A turn starts at a user item. Without user items the last item
        alone is protected.
        """
        users = [i for i, item in enumerate(items) if item.role is Role.USER]
        if not users:
            return max(len(items) - 1, 0)
        return users[-min(self._config.preserve_recent_turns, len(users))]

    def select_boundary(self, items: Sequence[ConversationItem]) -> int:
        """Default last index to compact, or -1 when nothing qualifies."""
        return self.align_boundary(items, self.protected_start(items) - 1)

    def align_boundary(self, items: Sequence[ConversationItem], up_to_index: int) -> int:
        """Clamp and move a boundary so tool pairs stay together.

        A call whose result lies beyond the boundary pulls the boundary
        forward to the result, unless that would reach the protected
        turns; then the boundary moves back before the call. Calls with
        no result yet are never compacted.

        Args:
            items: Conversation items.
            up_to_index: Requested last index (inclusive).

        Returns:
            Adjusted last index, or -1 when no valid prefix remains.
        """
        limit = self.protected_start(items) - 1
        boundary = min(up_to_index, limit)

        result_index: dict[str, int] = {
            item.tool_call_id: i for i, item in enumerate(items) if item.role is Role.TOOL_RESULT
        }

        while boundary >= 0:
            split = [
                (i, result_index.get(item.tool_call_id))
                for i, item in enumerate(items[: boundary + 1])
                if item.role is Role.TOOL_CALL
                and result_index.get(item.tool_call_id, len(items)) > boundary
            ]
            if not split:
                return boundary

            furthest = max(r if r is not None else len(items) for _, r in split)
            if furthest <= limit:
                boundary = furthest
            else:
                # Nothing at or after the earliest split call may be compacted
                limit = min(call for call, _ in split) - 1
                boundary = limit

        return -1

    async def compact(
        self,
        items: Sequence[ConversationItem],
        up_to_index: int | None = None,
    ) -> CompactionSummary:
        """Summarize a prefix of the conversation.

        Args:
            items: Current conversation items, with token estimates.
            up_to_index: Last index to compact. None selects the default
                boundary; explicit indices are clamped and aligned.

        Returns:
            Summary replacing ``items[0 : last_index + 1]``.

        Raises:
            CompactionFailedError: If no range qualifies, summarization
                fails, or the summary is not smaller than the range.
        """
        if up_to_index is None:
            last = self.select_boundary(items)
        else:
            last = self.align_boundary(items, up_to_index)

        if last < 0:
            raise CompactionFailedError(
                "Nothing to compact before the most recent turn",
                tokens_before=0,
                tokens_after=0,
            )

        replaced = list(items[: last + 1])
        original = sum(
            item.estimated_tokens
            if item.estimated_tokens is not None
            else self._counter.count_item(item)
            for item in replaced
        )
        budget = max(1, original // self._config.target_ratio)
        text_budget = max(1, budget - self._counter.item_overhead)

        try:
            text = await asyncio.wait_for(
                self._summarizer.summarize(replaced, text_budget),
                timeout=self._config.timeout_seconds,
            )
        except TimeoutError as e:
            raise CompactionFailedError(
                f"Summarization timed out after {self._config.timeout_seconds}s",
                cause=e,
                tokens_before=original,
                first_index=0,
                last_index=last,
            ) from e
        except Exception as e:
            raise CompactionFailedError(
                f"Summarization with '{self._summarizer.name}' failed",
                cause=e,
                tokens_before=original,
                first_index=0,
                last_index=last,
            ) from e

        text = text.strip()
        if not text:
            raise CompactionFailedError(
                "Summarizer produced no text",
                tokens_before=original,
                first_index=0,
                last_index=last,
            )

        if self._counter.count(text) > text_budget:
            logger.warning(
                "Summary exceeds budget (%d > %d tokens), clipping",
                self._counter.count(text),
                text_budget,
            )
            text = self._counter.clip(text, text_budget)

        token_count = self._counter.count(text) + self._counter.item_overhead
        if token_count >= original:
            raise CompactionFailedError(
                f"Summary ({token_count} tokens) is not smaller than the "
                f"range it replaces ({original} tokens)",
                tokens_before=original,
                tokens_after=token_count,
                first_index=0,
                last_index=last,
            )

        logger.debug(
            "Summarized items 0-%d: %d -> %d tokens with %s",
            last,
            original,
            token_count,
            self._summarizer.name,
        )
        return CompactionSummary(
            summary=text,
            token_count=token_count,
            first_index=0,
            last_index=last,
            original_tokens=original,
            strategy=self._summarizer.name,
        )
