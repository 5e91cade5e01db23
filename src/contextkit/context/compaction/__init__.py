"""Conversation compaction.

Summarizers:
    - extractive: Deterministic digest of goals, decisions and tool facts
    - model: LLM-based summary through pydantic-ai
"""

from contextkit.context.compaction.base import (
    CompactionSummary,
    Summarizer,
    render_item,
    render_transcript,
)
from contextkit.context.compaction.engine import CompactionEngine
from contextkit.context.compaction.summarize import ExtractiveSummarizer, ModelSummarizer

__all__ = [
    "CompactionEngine",
    "CompactionSummary",
    "ExtractiveSummarizer",
    "ModelSummarizer",
    "Summarizer",
    "render_item",
    "render_transcript",
]
