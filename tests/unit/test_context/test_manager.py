"""Tests for ContextManager."""

from __future__ import annotations

import pytest

from contextkit.context.config import ContextConfig
from contextkit.context.items import ConversationItem, Role
from contextkit.context.manager import (
    CompactionRequired,
    ContextManager,
    ContextUsage,
    threshold_tokens,
)
from contextkit.context.summary import CompactionSummary
from contextkit.errors import (
    CompactionFailedError,
    CompactionInProgressError,
    InvalidRangeError,
    OrphanToolResultError,
)
from contextkit.instructions.config import InstructionSet
from contextkit.tokens import TokenCounter


@pytest.fixture
def manager(counter: TokenCounter) -> ContextManager:
    """Provide a manager with a 1000 token window and 0.70 threshold."""
    return ContextManager(ContextConfig(context_window=1000), counter)


def _summary_for(
    manager: ContextManager, last_index: int, token_count: int, first_index: int = 0
) -> CompactionSummary:
    items = manager.items
    return CompactionSummary(
        summary="summary of earlier work",
        token_count=token_count,
        first_index=first_index,
        last_index=last_index,
        original_tokens=sum(item.tokens for item in items[first_index : last_index + 1]),
    )


class TestThreshold:
    """Tests for threshold signalling."""

    def test_threshold_tokens_avoids_float_noise(self) -> None:
        """0.7 of 100k is exactly 70k."""
        assert threshold_tokens(100_000, 0.7) == 70_000
        assert threshold_tokens(1000, 0.7) == 700

    def test_below_threshold_no_signal(self, manager: ContextManager) -> None:
        """699/1000 does not signal."""
        assert manager.add_item(ConversationItem.user("x", estimated_tokens=699)) is None
        assert manager.should_compact() is False

    def test_at_threshold_signals(self, manager: ContextManager) -> None:
        """Exactly 700/1000 signals compaction."""
        signal = manager.add_item(ConversationItem.user("x", estimated_tokens=700))

        assert isinstance(signal, CompactionRequired)
        assert signal.used_tokens == 700
        assert signal.threshold_tokens == 700
        assert signal.ratio == pytest.approx(0.7)
        assert manager.should_compact() is True

    def test_item_appended_even_when_signalling(self, manager: ContextManager) -> None:
        """The triggering item is kept."""
        manager.add_item(ConversationItem.user("x", estimated_tokens=900))
        assert manager.item_count == 1

    def test_crossing_threshold_incrementally(self, manager: ContextManager) -> None:
        """The signal fires on the item that crosses the threshold."""
        assert manager.add_item(ConversationItem.user("a", estimated_tokens=400)) is None
        assert manager.add_item(ConversationItem.assistant("b", estimated_tokens=299)) is None
        assert manager.add_item(ConversationItem.assistant("c", estimated_tokens=1)) is not None

    def test_instruction_overhead_counts(self, counter: TokenCounter) -> None:
        """20k instruction tokens plus 50k of items reach 70% of 100k."""
        manager = ContextManager(ContextConfig(context_window=100_000), counter)
        overhead = manager.set_instructions(InstructionSet(merged="i" * 80_000))
        assert overhead == 20_000

        assert manager.add_item(ConversationItem.user("x", estimated_tokens=49_999)) is None
        signal = manager.add_item(ConversationItem.assistant("y", estimated_tokens=1))

        assert signal is not None
        assert signal.used_tokens == 70_000
        assert manager.current_usage().ratio == pytest.approx(0.7)

    def test_clearing_instructions(self, manager: ContextManager) -> None:
        """set_instructions(None) removes the overhead."""
        manager.set_instructions(InstructionSet(merged="i" * 400))
        assert manager.set_instructions(None) == 0
        assert manager.state.instruction_tokens == 0

    def test_check_threshold_without_adding(self, manager: ContextManager) -> None:
        """check_threshold() reflects a threshold reached by instruction changes."""
        manager.add_item(ConversationItem.user("x", estimated_tokens=500))
        assert manager.check_threshold() is None

        manager.set_instructions(InstructionSet(merged="i" * 800))
        assert manager.check_threshold() is not None


class TestAddItem:
    """Tests for add_item() accounting."""

    def test_cumulative_tokens_sum_estimates(
        self, manager: ContextManager, sample_items: list[ConversationItem]
    ) -> None:
        """cumulative_tokens always equals the sum of item estimates."""
        for item in sample_items:
            manager.add_item(item)

        state = manager.state
        assert state.cumulative_tokens == sum(item.tokens for item in state.items)
        assert all(item.estimated_tokens is not None for item in state.items)

    def test_missing_estimate_filled_in(self, manager: ContextManager) -> None:
        """Items without an estimate are counted on insertion."""
        manager.add_item(ConversationItem.user("x" * 40))
        assert manager.items[0].estimated_tokens == 10

    def test_existing_estimate_kept(self, manager: ContextManager) -> None:
        """Provided estimates are trusted."""
        manager.add_item(ConversationItem.user("x" * 40, estimated_tokens=3))
        assert manager.items[0].estimated_tokens == 3

    def test_turn_index_assigned(
        self, manager: ContextManager, sample_items: list[ConversationItem]
    ) -> None:
        """User items start a new logical turn."""
        for item in sample_items:
            manager.add_item(item)

        turns = [item.created_at for item in manager.items]
        assert turns == [1, 1, 1, 1, 1, 2]

    def test_orphan_tool_result_rejected(self, manager: ContextManager) -> None:
        """A result with no call in the window raises and is not added."""
        with pytest.raises(OrphanToolResultError) as exc_info:
            manager.add_item(ConversationItem.tool_result("missing", "out"))

        assert exc_info.value.tool_call_id == "missing"
        assert manager.item_count == 0

    def test_items_returns_copy(self, manager: ContextManager) -> None:
        """Mutating the returned list does not affect the manager."""
        manager.add_item(ConversationItem.user("x"))
        manager.items.clear()
        assert manager.item_count == 1

    def test_find_tool_call(
        self, manager: ContextManager, sample_items: list[ConversationItem]
    ) -> None:
        """find_tool_call() locates a call by id."""
        for item in sample_items:
            manager.add_item(item)

        call = manager.find_tool_call("call_123")
        assert call is not None
        assert call.tool_name == "bash"
        assert manager.find_tool_call("nope") is None

    def test_clear(self, manager: ContextManager, sample_items: list[ConversationItem]) -> None:
        """clear() empties the window."""
        for item in sample_items:
            manager.add_item(item)
        manager.clear()

        assert manager.item_count == 0
        assert manager.state.cumulative_tokens == 0


class TestCurrentUsage:
    """Tests for current_usage()."""

    def test_usage_snapshot(self, manager: ContextManager) -> None:
        """Usage reports tokens, window and ratio."""
        manager.add_item(ConversationItem.user("x", estimated_tokens=250))
        usage = manager.current_usage()

        assert isinstance(usage, ContextUsage)
        assert usage.as_tuple() == (250, 1000, 0.25)
        assert usage.item_count == 1
        assert usage.threshold_tokens == 700

    def test_available_tokens_subtract_reserve(self, manager: ContextManager) -> None:
        """Available tokens exclude the 10% output reserve."""
        manager.add_item(ConversationItem.user("x", estimated_tokens=250))
        usage = manager.current_usage()

        assert usage.reserved_tokens == 100
        assert usage.available_tokens == 650


class TestApplyCompaction:
    """Tests for apply_compaction()."""

    def _fill(self, manager: ContextManager) -> None:
        manager.add_item(ConversationItem.user("u1", estimated_tokens=100))
        manager.add_item(ConversationItem.assistant("a1", estimated_tokens=100))
        manager.add_item(ConversationItem.tool_call("c1", "ls", estimated_tokens=50))
        manager.add_item(ConversationItem.tool_result("c1", "out", estimated_tokens=200))
        manager.add_item(ConversationItem.assistant("a2", estimated_tokens=100))
        manager.add_item(ConversationItem.user("u2", estimated_tokens=100))

    def test_replaces_range_with_summary(self, manager: ContextManager) -> None:
        """The range becomes one summary item and tokens are recomputed."""
        self._fill(manager)
        summary = _summary_for(manager, last_index=4, token_count=55)

        dropped = manager.apply_compaction(summary)

        items = manager.items
        assert dropped == []
        assert [item.role for item in items] == [Role.SUMMARY, Role.USER]
        assert items[0].content == "summary of earlier work"
        assert manager.state.cumulative_tokens == 155

    def test_cumulative_matches_items_after_compaction(self, manager: ContextManager) -> None:
        """Accounting is exact after the update."""
        self._fill(manager)
        manager.apply_compaction(_summary_for(manager, last_index=2, token_count=20))

        state = manager.state
        assert state.cumulative_tokens == sum(item.tokens for item in state.items)

    def test_result_of_replaced_call_is_dropped(self, manager: ContextManager) -> None:
        """Replacing a call but not its result drops the result."""
        self._fill(manager)
        dropped = manager.apply_compaction(_summary_for(manager, last_index=2, token_count=20))

        assert [item.tool_call_id for item in dropped] == ["c1"]
        assert dropped[0].role is Role.TOOL_RESULT
        assert all(item.role is not Role.TOOL_RESULT for item in manager.items)

    def test_call_of_replaced_result_is_dropped(self, manager: ContextManager) -> None:
        """Replacing a result but not its call drops the call."""
        self._fill(manager)
        dropped = manager.apply_compaction(
            _summary_for(manager, first_index=3, last_index=4, token_count=30)
        )

        assert [item.role for item in dropped] == [Role.TOOL_CALL]
        assert [item.role for item in manager.items] == [
            Role.USER,
            Role.ASSISTANT,
            Role.SUMMARY,
            Role.USER,
        ]

    def test_pending_call_kept(self, manager: ContextManager) -> None:
        """A call still awaiting its result stays after compaction."""
        manager.add_item(ConversationItem.user("u1", estimated_tokens=100))
        manager.add_item(ConversationItem.assistant("a1", estimated_tokens=100))
        manager.add_item(ConversationItem.user("u2", estimated_tokens=10))
        manager.add_item(ConversationItem.tool_call("c9", "ls", estimated_tokens=10))

        manager.apply_compaction(_summary_for(manager, last_index=1, token_count=20))

        assert manager.items[-1].tool_call_id == "c9"
        manager.add_item(ConversationItem.tool_result("c9", "out"))

    def test_invalid_range(self, manager: ContextManager) -> None:
        """Ranges outside the items raise InvalidRangeError."""
        self._fill(manager)
        summary = CompactionSummary(
            summary="s", token_count=1, first_index=3, last_index=99, original_tokens=100
        )
        with pytest.raises(InvalidRangeError):
            manager.apply_compaction(summary)

    def test_reversed_range(self, manager: ContextManager) -> None:
        """first_index after last_index is invalid."""
        self._fill(manager)
        summary = CompactionSummary(
            summary="s", token_count=1, first_index=3, last_index=1, original_tokens=100
        )
        with pytest.raises(InvalidRangeError):
            manager.apply_compaction(summary)

    def test_non_reducing_summary_rejected(self, manager: ContextManager) -> None:
        """A summary as large as the range is rejected and nothing changes."""
        self._fill(manager)
        before = manager.items
        summary = _summary_for(manager, last_index=1, token_count=200)

        with pytest.raises(CompactionFailedError) as exc_info:
            manager.apply_compaction(summary)

        assert exc_info.value.tokens_before == 200
        assert exc_info.value.retryable is True
        assert manager.items == before

    def test_stale_summary_rejected(self, manager: ContextManager) -> None:
        """A summary whose token total no longer matches is rejected."""
        self._fill(manager)
        summary = CompactionSummary(
            summary="s", token_count=1, first_index=0, last_index=1, original_tokens=150
        )
        with pytest.raises(CompactionFailedError, match="range changed"):
            manager.apply_compaction(summary)


class TestCompactingGuard:
    """Tests for the in-flight compaction guard."""

    def test_add_rejected_while_compacting(self, manager: ContextManager) -> None:
        """Items cannot be added while a compaction is in flight."""
        manager.add_item(ConversationItem.user("x", estimated_tokens=10))
        with manager.compacting() as snapshot:
            assert len(snapshot) == 1
            assert manager.compaction_in_progress is True
            with pytest.raises(CompactionInProgressError):
                manager.add_item(ConversationItem.user("y"))

        assert manager.compaction_in_progress is False
        manager.add_item(ConversationItem.user("y"))

    def test_nested_compaction_rejected(self, manager: ContextManager) -> None:
        """Only one compaction can be in flight."""
        with manager.compacting():
            with pytest.raises(CompactionInProgressError):
                with manager.compacting():
                    pass

    def test_guard_cleared_on_error(self, manager: ContextManager) -> None:
        """The flag is cleared when the block raises."""
        with pytest.raises(RuntimeError):
            with manager.compacting():
                raise RuntimeError("summarizer crashed")
        assert manager.compaction_in_progress is False
