"""Summarizers used by the compaction engine."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING

from pydantic_ai import Agent as PydanticAgent

from contextkit.context.compaction.base import Summarizer, render_transcript
from contextkit.context.compaction.prompts import (
    COMPACTION_SYSTEM_PROMPT,
    render_compaction_prompt,
)
from contextkit.context.items import ConversationItem, Role
from contextkit.tokens import TokenCounter
from contextkit.tokens.counter import content_to_text

if TYPE_CHECKING:
    from pydantic_ai.models import Model

logger = logging.getLogger(__name__)

_SENTENCE_END = re.compile(r"(?<=[.!?])\s")
_MAX_DECISIONS = 8
_MAX_TOOL_FACTS = 12


def _first_sentence(text: str, limit: int = 200) -> str:
    text = " ".join(text.split())
    sentence = _SENTENCE_END.split(text, maxsplit=1)[0]
    if len(sentence) > limit:
        return sentence[: limit - 3] + "..."
    return sentence


def _first_line(text: str, limit: int = 160) -> str:
    for line in text.splitlines():
        if line.strip():
            line = line.strip()
            return line if len(line) <= limit else line[: limit - 3] + "..."
    return ""


class ExtractiveSummarizer(Summarizer):
    """Deterministic summary built from the items themselves.

    Keeps the original goal, the latest request, any previous summary,
    the opening sentence of recent assistant replies and the first line
    of each tool result. Needs no model, so it also serves as fallback.
    """

    def __init__(self, counter: TokenCounter | None = None) -> None:
        """Initialize the summarizer.

        Args:
            counter: Counter used to respect the token budget.
        """
        self._counter = counter or TokenCounter()

    @property
    def name(self) -> str:
        return "extractive"

    async def summarize(self, items: Sequence[ConversationItem], max_tokens: int) -> str:
        return self._counter.clip(self.build(items), max_tokens)

    def build(self, items: Sequence[ConversationItem]) -> str:
        """Build the full digest before budget clipping."""
        user_texts = [content_to_text(i.content) for i in items if i.role is Role.USER]
        previous = [content_to_text(i.content) for i in items if i.role is Role.SUMMARY]
        decisions = [
            _first_sentence(content_to_text(i.content))
            for i in items
            if i.role is Role.ASSISTANT and content_to_text(i.content).strip()
        ]
        tool_facts = [
            f"{i.tool_name or 'tool'} (#{i.tool_call_id}): "
            f"{_first_line(content_to_text(i.content)) or '(no output)'}"
            for i in items
            if i.role is Role.TOOL_RESULT
        ]

        lines = [f"Summary of {len(items)} earlier conversation items."]
        if previous:
            lines.append(f"Earlier summary: {' '.join(_first_sentence(p, 400) for p in previous)}")
        if user_texts:
            lines.append(f"Goal: {_first_sentence(user_texts[0], 300)}")
            if len(user_texts) > 1:
                lines.append(f"Latest request: {_first_sentence(user_texts[-1], 300)}")
        if decisions:
            lines.append("Decisions:")
            lines.extend(f"- {d}" for d in decisions[-_MAX_DECISIONS:])
        if tool_facts:
            lines.append("Tool results:")
            lines.extend(f"- {f}" for f in tool_facts[-_MAX_TOOL_FACTS:])
        return "\n".join(lines)


class ModelSummarizer(Summarizer):
    """Summarize with a language model through pydantic-ai.

    The transcript sent to the model is limited to a token budget,
    newest items first. Empty model output falls back to an extractive
    summary.

    Example:
        >>> summarizer = ModelSummarizer("openai:gpt-4o-mini")
        >>> engine = CompactionEngine(summarizer)
    """

    def __init__(
        self,
        model: str | Model,
        *,
        counter: TokenCounter | None = None,
        max_transcript_tokens: int = 20_000,
        fallback: Summarizer | None = None,
    ) -> None:
        """Initialize the summarizer.

        Args:
            model: Model identifier or pydantic-ai Model instance.
            counter: Counter used for the transcript budget.
            max_transcript_tokens: Token budget for the transcript.
            fallback: Summarizer used when the model returns nothing.
        """
        self._counter = counter or TokenCounter()
        self._max_transcript_tokens = max_transcript_tokens
        self._fallback = fallback or ExtractiveSummarizer(self._counter)
        self._agent = PydanticAgent(
            model,
            output_type=str,
            system_prompt=COMPACTION_SYSTEM_PROMPT,
            name="conversation_compactor",
        )

    @property
    def name(self) -> str:
        return "model"

    async def summarize(self, items: Sequence[ConversationItem], max_tokens: int) -> str:
        transcript = render_transcript(items, self._counter, self._max_transcript_tokens)
        prompt = render_compaction_prompt(transcript, max_tokens, item_count=len(items))

        result = await self._agent.run(prompt)
        summary = (result.output or "").strip()
        if not summary:
            logger.warning("Summarization model returned no text, using %s", self._fallback.name)
            return await self._fallback.summarize(items, max_tokens)
        return summary
