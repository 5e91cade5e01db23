"""Base class for summarizers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from contextkit.context.items import ConversationItem, Role
from contextkit.context.summary import CompactionSummary
from contextkit.tokens import TokenCounter
from contextkit.tokens.counter import content_to_text

__all__ = ["CompactionSummary", "Summarizer", "render_item", "render_transcript"]


class Summarizer(ABC):
    """Abstract base class for compaction summarizers.

    Subclasses turn a range of conversation items into condensed text.
    The compaction engine handles range selection, token budgets and
    validation; a summarizer only writes the summary.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the summarizer name.

        Returns:
            Summarizer identifier.
        """
        ...

    @abstractmethod
    async def summarize(self, items: Sequence[ConversationItem], max_tokens: int) -> str:
        """Summarize items within a token budget.

        Args:
            items: Items being replaced, in conversation order.
            max_tokens: Token budget for the summary text.

        Returns:
            Summary text. May exceed the budget; the engine clips it.
        """
        ...


def render_item(item: ConversationItem) -> str:
    """Render one item as a transcript line."""
    text = content_to_text(item.content)
    match item.role:
        case Role.TOOL_CALL | Role.TOOL_RESULT:
            label = f"{item.role.value} {item.tool_name or 'tool'} #{item.tool_call_id}"
        case Role.USER | Role.ASSISTANT | Role.SUMMARY:
            label = item.role.value
    return f"[{label}] {text}"


def render_transcript(
    items: Sequence[ConversationItem],
    counter: TokenCounter,
    max_tokens: int,
) -> str:
    """Render items as a transcript within a token budget.

    Items are selected newest first; the item that crosses the budget is
    clipped and older items are left out.

    Args:
        items: Items to render.
        counter: Counter used for the budget.
        max_tokens: Token budget for the transcript.

    Returns:
        Transcript in chronological order.
    """
    lines: list[str] = []
    remaining = max_tokens

    for item in reversed(items):
        line = render_item(item)
        tokens = counter.count(line)
        if tokens <= remaining:
            lines.append(line)
            remaining -= tokens
            continue
        if remaining > 0:
            lines.append(counter.clip(line, remaining))
        break

    lines.reverse()
    return "\n".join(lines)
