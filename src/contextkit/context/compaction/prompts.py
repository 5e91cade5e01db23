"""Prompts for model-backed summarization."""

from __future__ import annotations

from jinja2 import Environment

COMPACTION_SYSTEM_PROMPT = (
    "You are a conversation summarization expert working inside a coding "
    "assistant. You compress earlier conversation history so the assistant "
    "can continue the task from your summary alone. Be concise and factual."
)

_COMPACTION_USER_TEMPLATE = """\
Summarize the conversation below in at most {{ max_tokens }} tokens.

Cover:
- what the user is trying to accomplish and the current state of the task
- decisions made and their outcome
- key facts from tool results that are still needed (paths, errors, values)
{% if item_count %}

The conversation has {{ item_count }} items; the oldest may be omitted.
{% endif %}

Conversation:
{{ transcript }}
"""

_environment = Environment(
    autoescape=False,  # Prompts don't need HTML escaping
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)
_template = _environment.from_string(_COMPACTION_USER_TEMPLATE)


def render_compaction_prompt(transcript: str, max_tokens: int, item_count: int = 0) -> str:
    """Render the user prompt sent to the summarization model.

    Args:
        transcript: Rendered conversation transcript.
        max_tokens: Token budget for the summary.
        item_count: Number of items being summarized.

    Returns:
        Rendered prompt text.
    """
    return _template.render(transcript=transcript, max_tokens=max_tokens, item_count=item_count)
