"""Context window manager for one session."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contextkit.context.config import DEFAULT_CONTEXT_WINDOW, ContextConfig
from contextkit.context.items import ConversationItem, Role
from contextkit.errors import (
    CompactionFailedError,
    CompactionInProgressError,
    InvalidRangeError,
    OrphanToolResultError,
)
from contextkit.tokens import TokenCounter

if TYPE_CHECKING:
    from contextkit.context.summary import CompactionSummary
    from contextkit.instructions.config import InstructionSet

logger = logging.getLogger(__name__)


def threshold_tokens(context_window: int, ratio: float) -> int:
    """Smallest integer usage that reaches ``ratio`` of the window.

    Rounding first keeps float noise (``0.7 * 100_000``) from moving the
    boundary by one token.
    """
    return math.ceil(round(context_window * ratio, 6))


@dataclass
class ContextState:
    """Live conversation window for one session.

    Attributes:
        items: Conversation items in insertion order.
        cumulative_tokens: Sum of ``estimated_tokens`` over ``items``.
        model_context_window: Context window of the active model.
        compaction_threshold_ratio: Usage ratio that signals compaction.
        instruction_tokens: Fixed overhead of the instruction set.
    """

    items: list[ConversationItem] = field(default_factory=list)
    cumulative_tokens: int = 0
    model_context_window: int = DEFAULT_CONTEXT_WINDOW
    compaction_threshold_ratio: float = 0.70
    instruction_tokens: int = 0

    @property
    def used_tokens(self) -> int:
        """Conversation tokens plus instruction overhead."""
        return self.cumulative_tokens + self.instruction_tokens

    @property
    def threshold_tokens(self) -> int:
        """Usage at which compaction is signalled."""
        return threshold_tokens(self.model_context_window, self.compaction_threshold_ratio)

    @property
    def ratio(self) -> float:
        """Used share of the context window."""
        return self.used_tokens / self.model_context_window


@dataclass(frozen=True)
class CompactionRequired:
    """Signal returned when usage reaches the compaction threshold.

    Not an error: the item that triggered it was appended. The caller
    should compact before the next turn proceeds.

    Attributes:
        ratio: Used share of the context window.
        used_tokens: Conversation plus instruction tokens.
        threshold_tokens: Usage at which the signal fires.
        context_window: Model context window.
    """

    ratio: float
    used_tokens: int
    threshold_tokens: int
    context_window: int


@dataclass(frozen=True)
class ContextUsage:
    """Read-only usage snapshot.

    Attributes:
        cumulative_tokens: Tokens of the conversation items.
        context_window: Model context window.
        ratio: Used share of the window, including instruction overhead.
        instruction_tokens: Instruction set overhead.
        threshold_tokens: Usage at which compaction is signalled.
        reserved_tokens: Tokens reserved for model output.
        item_count: Number of items in the window.
    """

    cumulative_tokens: int
    context_window: int
    ratio: float
    instruction_tokens: int = 0
    threshold_tokens: int = 0
    reserved_tokens: int = 0
    item_count: int = 0

    @property
    def available_tokens(self) -> int:
        """Tokens left before the output reserve is reached."""
        return max(
            0,
            self.context_window
            - self.reserved_tokens
            - self.cumulative_tokens
            - self.instruction_tokens,
        )

    def as_tuple(self) -> tuple[int, int, float]:
        """Return (cumulative_tokens, context_window, ratio)."""
        return self.cumulative_tokens, self.context_window, self.ratio


class ContextManager:
    """Own the ordered conversation state and its token accounting.

    The manager never calls a summarizer. When usage reaches the
    threshold, ``add_item`` returns a ``CompactionRequired`` signal and
    the caller decides how to compact, then hands the result back via
    ``apply_compaction``.

    Mutators are serialized with a lock; one manager belongs to exactly
    one session.

    Example:
        >>> manager = ContextManager(ContextConfig(context_window=128_000))
        >>> signal = manager.add_item(ConversationItem.user("Fix the tests"))
        >>> if signal:
        ...     summary = await engine.compact(manager.items)
        ...     manager.apply_compaction(summary)
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        counter: TokenCounter | None = None,
    ) -> None:
        """Initialize the context manager.

        Args:
            config: Context configuration. Uses defaults if not provided.
            counter: Token counter for items without an estimate.
        """
        self._config = config or ContextConfig()
        self._counter = counter or TokenCounter()
        self._state = ContextState(
            model_context_window=self._config.context_window,
            compaction_threshold_ratio=self._config.compaction_threshold_ratio,
        )
        self._tool_call_ids: set[str] = set()
        self._turn = 0
        self._compacting = False
        self._lock = threading.RLock()

    @property
    def config(self) -> ContextConfig:
        """Get the context configuration."""
        return self._config

    @property
    def counter(self) -> TokenCounter:
        """Get the token counter."""
        return self._counter

    @property
    def items(self) -> list[ConversationItem]:
        """Get a copy of the current items."""
        with self._lock:
            return self._state.items.copy()

    @property
    def item_count(self) -> int:
        """Number of items in the window."""
        return len(self._state.items)

    @property
    def state(self) -> ContextState:
        """Get a snapshot of the context state."""
        with self._lock:
            return ContextState(
                items=self._state.items.copy(),
                cumulative_tokens=self._state.cumulative_tokens,
                model_context_window=self._state.model_context_window,
                compaction_threshold_ratio=self._state.compaction_threshold_ratio,
                instruction_tokens=self._state.instruction_tokens,
            )

    @property
    def compaction_in_progress(self) -> bool:
        """Whether a compaction for this session is in flight."""
        return self._compacting

    def set_instructions(self, instructions: InstructionSet | None) -> int:
        """Account for the instruction set overhead.

        Args:
            instructions: Merged instruction set, or None to clear.

        Returns:
            Token count of the instruction overhead.
        """
        tokens = self._counter.count(instructions.merged) if instructions else 0
        with self._lock:
            self._state.instruction_tokens = tokens
        logger.debug("Instruction overhead set to %d tokens", tokens)
        return tokens

    def add_item(self, item: ConversationItem) -> CompactionRequired | None:
        """Append an item and update token accounting.

        The item is always appended. When usage reaches the threshold the
        returned signal tells the caller to compact.

        Args:
            item: Item to append. Missing token estimates are filled in.

        Returns:
            ``CompactionRequired`` if usage reached the threshold, else None.

        Raises:
            OrphanToolResultError: If a tool result has no tool call in the window.
            CompactionInProgressError: If a compaction is in flight.
        """
        with self._lock:
            if self._compacting:
                raise CompactionInProgressError(
                    "Cannot add items while a compaction is in flight"
                )

            if item.role is Role.TOOL_RESULT and item.tool_call_id not in self._tool_call_ids:
                raise OrphanToolResultError(
                    f"Tool result '{item.tool_call_id}' has no matching tool call",
                    tool_call_id=item.tool_call_id,
                )

            if item.role is Role.USER:
                self._turn += 1

            tokens = (
                item.estimated_tokens
                if item.estimated_tokens is not None
                else self._counter.count_item(item)
            )
            item = item.with_updates(estimated_tokens=tokens, created_at=self._turn)

            self._state.items.append(item)
            self._state.cumulative_tokens += tokens
            if item.role is Role.TOOL_CALL:
                self._tool_call_ids.add(item.tool_call_id)

            logger.debug(
                "Added %s item (%d tokens), %d/%d used",
                item.role.value,
                tokens,
                self._state.used_tokens,
                self._state.model_context_window,
            )
            return self.check_threshold()

    def check_threshold(self) -> CompactionRequired | None:
        """Return a ``CompactionRequired`` signal if usage reached the threshold."""
        state = self._state
        if state.used_tokens < state.threshold_tokens:
            return None

        logger.info(
            "Compaction required: %d/%d tokens (%.1f%%)",
            state.used_tokens,
            state.model_context_window,
            state.ratio * 100,
        )
        return CompactionRequired(
            ratio=state.ratio,
            used_tokens=state.used_tokens,
            threshold_tokens=state.threshold_tokens,
            context_window=state.model_context_window,
        )

    def should_compact(self) -> bool:
        """Check whether usage has reached the compaction threshold."""
        with self._lock:
            return self._state.used_tokens >= self._state.threshold_tokens

    def current_usage(self) -> ContextUsage:
        """Get a read-only usage snapshot."""
        with self._lock:
            state = self._state
            return ContextUsage(
                cumulative_tokens=state.cumulative_tokens,
                context_window=state.model_context_window,
                ratio=state.ratio,
                instruction_tokens=state.instruction_tokens,
                threshold_tokens=state.threshold_tokens,
                reserved_tokens=int(
                    state.model_context_window * self._config.reserved_output_ratio
                ),
                item_count=len(state.items),
            )

    @contextmanager
    def compacting(self) -> Iterator[list[ConversationItem]]:
        """Mark a compaction as in flight.

        New items are rejected until the block exits, so the range being
        summarized cannot shift underneath the summarizer.

        Yields:
            Snapshot of the items to compact.
        """
        with self._lock:
            if self._compacting:
                raise CompactionInProgressError("A compaction is already in flight")
            self._compacting = True
            snapshot = self._state.items.copy()
        try:
            yield snapshot
        finally:
            with self._lock:
                self._compacting = False

    def apply_compaction(self, summary: CompactionSummary) -> list[ConversationItem]:
        """Replace a range of items with a single summary item.

        Tool results whose call was replaced, and tool calls whose result
        was replaced, are dropped in the same update. Token accounting is
        recomputed from the resulting items.

        Args:
            summary: Summary produced for the current items.

        Returns:
            Tool items dropped to keep call/result pairs intact.

        Raises:
            InvalidRangeError: If the range does not fit the current items.
            CompactionFailedError: If the summary is stale or does not
                reduce the token count.
        """
        with self._lock:
            items = self._state.items
            first, last = summary.first_index, summary.last_index
            if not 0 <= first <= last < len(items):
                raise InvalidRangeError(
                    f"Invalid compaction range [{first}, {last}] for {len(items)} items",
                    first_index=first,
                    last_index=last,
                    item_count=len(items),
                )

            replaced = items[first : last + 1]
            replaced_tokens = sum(item.tokens for item in replaced)
            if replaced_tokens != summary.original_tokens:
                raise CompactionFailedError(
                    "Summary does not match the current items; the range changed",
                    tokens_before=replaced_tokens,
                    tokens_after=summary.token_count,
                    first_index=first,
                    last_index=last,
                )
            if not summary.reduces:
                raise CompactionFailedError(
                    f"Summary ({summary.token_count} tokens) is not smaller than "
                    f"the replaced range ({summary.original_tokens} tokens)",
                    tokens_before=summary.original_tokens,
                    tokens_after=summary.token_count,
                    first_index=first,
                    last_index=last,
                )

            summary_item = ConversationItem(
                role=Role.SUMMARY,
                content=summary.summary,
                estimated_tokens=summary.token_count,
                created_at=replaced[0].created_at,
            )
            candidate = [*items[:first], summary_item, *items[last + 1 :]]
            kept, dropped = _repair_pairs(candidate, replaced)

            self._state.items = kept
            self._state.cumulative_tokens = sum(item.tokens for item in kept)
            self._tool_call_ids = {
                item.tool_call_id for item in kept if item.role is Role.TOOL_CALL
            }
            self._compacting = False

            logger.info(
                "Applied compaction over items %d-%d: %d -> %d tokens",
                first,
                last,
                summary.original_tokens,
                summary.token_count,
            )
            return dropped

    def clear(self) -> None:
        """Remove all items."""
        with self._lock:
            self._state.items = []
            self._state.cumulative_tokens = 0
            self._tool_call_ids.clear()
            self._turn = 0

    def find_tool_call(self, tool_call_id: str) -> ConversationItem | None:
        """Find the tool call item with the given id."""
        with self._lock:
            for item in self._state.items:
                if item.role is Role.TOOL_CALL and item.tool_call_id == tool_call_id:
                    return item
        return None


def _repair_pairs(
    items: list[ConversationItem],
    replaced: list[ConversationItem],
) -> tuple[list[ConversationItem], list[ConversationItem]]:
    """Drop tool items whose partner was replaced or is missing.

    Tool calls without any result yet stay: they are pending, not orphaned.
    """
    replaced_results = {item.tool_call_id for item in replaced if item.role is Role.TOOL_RESULT}
    seen_calls: set[str] = set()
    kept: list[ConversationItem] = []
    dropped: list[ConversationItem] = []

    for item in items:
        match item.role:
            case Role.TOOL_CALL:
                if item.tool_call_id in replaced_results:
                    dropped.append(item)
                    continue
                seen_calls.add(item.tool_call_id)
            case Role.TOOL_RESULT:
                if item.tool_call_id not in seen_calls:
                    dropped.append(item)
                    continue
            case Role.USER | Role.ASSISTANT | Role.SUMMARY:
                pass
        kept.append(item)

    return kept, dropped
