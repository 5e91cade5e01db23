"""Per-session context handling for the agent loop.

``ContextSession`` wires the stateless pieces (counter, truncator,
compaction engine) to one ``ContextManager`` and one audit trail, and
serializes all mutations so new items wait for an in-flight compaction.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from contextkit.context.audit import AuditSink, AuditTrail
from contextkit.context.compaction import CompactionEngine, CompactionSummary, ModelSummarizer
from contextkit.context.items import ConversationItem, Role
from contextkit.context.manager import CompactionRequired, ContextManager
from contextkit.context.truncation import OutputTruncator
from contextkit.errors import CompactionFailedError
from contextkit.instructions import InstructionLoader, InstructionSet
from contextkit.tokens import TokenCounter, UsageTracker
from contextkit.tokens.counter import content_to_text

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic_ai.models import Model
    from pydantic_ai.usage import Usage
    from rich.console import Console

    from contextkit.config import ContextKitSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    """Usage snapshot for telemetry and the REPL status line.

    Attributes:
        used_tokens: Conversation plus instruction tokens.
        context_window: Model context window.
        ratio: Used share of the window.
        threshold_ratio: Ratio at which compaction is signalled.
        instruction_tokens: Instruction overhead.
        item_count: Items in the window.
        last_truncation_count: Truncations during the current turn.
        total_truncations: Truncations during the session.
        compactions: Compactions applied during the session.
        remaining_turns: Estimated turns left before the window is full.
    """

    used_tokens: int
    context_window: int
    ratio: float
    threshold_ratio: float
    instruction_tokens: int
    item_count: int
    last_truncation_count: int
    total_truncations: int
    compactions: int
    remaining_turns: int


class ContextSession:
    """Context state and policies for one agent session.

    Example:
        >>> session = ContextSession(context_window=200_000, model="openai:gpt-4o-mini")
        >>> session.load_instructions_for(Path.cwd())
        >>> await session.add(ConversationItem.user("Run the tests"))
        >>> print(session.snapshot().ratio)
    """

    def __init__(
        self,
        context_window: int | None = None,
        *,
        settings: ContextKitSettings | None = None,
        model: str | Model | None = None,
        engine: CompactionEngine | None = None,
        counter: TokenCounter | None = None,
        truncator: OutputTruncator | None = None,
        tracker: UsageTracker | None = None,
        audit_sink: AuditSink | None = None,
        session_id: str | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            context_window: Context window of the active model. None or 0
                uses the configured default.
            settings: Package settings. Loaded from the environment if not provided.
            model: Model used for summaries. Ignored when ``engine`` is given;
                without either, summaries are extractive.
            engine: Compaction engine.
            counter: Token counter shared with the engine.
            truncator: Output truncator for tool results.
            tracker: Per-turn usage tracker.
            audit_sink: Callback receiving every audit entry.
            session_id: Identifier used in log lines.
        """
        if settings is None:
            from contextkit.config import ContextKitSettings

            settings = ContextKitSettings()
        self._settings = settings
        self.session_id = session_id or uuid.uuid4().hex[:12]

        context_config = settings.context
        if context_window:
            context_config = context_config.model_copy(update={"context_window": context_window})

        self._counter = counter or TokenCounter(settings.tokenizer)
        self._manager = ContextManager(context_config, self._counter)
        self._truncator = truncator or OutputTruncator(settings.truncation)
        self._tracker = tracker or UsageTracker()
        self._audit = AuditTrail(sink=audit_sink)
        self._loader = InstructionLoader(settings.instructions, audit=self._audit)
        self._instructions: InstructionSet | None = None

        if engine is None:
            summarizer = None
            if model is not None:
                summarizer = ModelSummarizer(
                    model,
                    counter=self._counter,
                    max_transcript_tokens=settings.compaction.max_transcript_tokens,
                )
            engine = CompactionEngine(
                summarizer, counter=self._counter, config=settings.compaction
            )
        self._engine = engine

        self._lock = asyncio.Lock()
        self._compactions = 0
        self._turn_truncations = 0

    @property
    def manager(self) -> ContextManager:
        """Get the context manager."""
        return self._manager

    @property
    def engine(self) -> CompactionEngine:
        """Get the compaction engine."""
        return self._engine

    @property
    def audit(self) -> AuditTrail:
        """Get the audit trail."""
        return self._audit

    @property
    def tracker(self) -> UsageTracker:
        """Get the usage tracker."""
        return self._tracker

    @property
    def instructions(self) -> InstructionSet | None:
        """Get the loaded instruction set."""
        return self._instructions

    def load_instructions(
        self,
        global_path: Path | str | None = None,
        project_path: Path | str | None = None,
        local_path: Path | str | Sequence[Path | str] | None = None,
    ) -> InstructionSet:
        """Load instructions and account for their overhead.

        Raises:
            ConfigTooLargeError: If local instructions alone exceed the ceiling.
        """
        return self._set_instructions(self._loader.load(global_path, project_path, local_path))

    def load_instructions_for(self, workdir: Path) -> InstructionSet:
        """Discover and load instructions for a working directory."""
        return self._set_instructions(self._loader.load_for(workdir))

    def refresh_instructions(self) -> InstructionSet:
        """Reload the instruction files used last."""
        return self._set_instructions(self._loader.refresh())

    def _set_instructions(self, instructions: InstructionSet) -> InstructionSet:
        self._instructions = instructions
        tokens = self._manager.set_instructions(instructions)
        logger.info(
            "[%s] Loaded instructions from %d file(s): %d bytes, %d tokens",
            self.session_id,
            len(instructions.sources),
            instructions.size_bytes,
            tokens,
        )
        return instructions

    def truncate_output(self, content: str, *, source: str | None = None) -> tuple[str, bool]:
        """Bound a tool output and audit the truncation.

        Args:
            content: Raw tool output.
            source: Label for the audit record, usually the tool name.

        Returns:
            Tuple of (content, truncated).
        """
        result, record = self._truncator.truncate(content, source=source)
        if record is None:
            return content, False
        self._audit.record_truncation(record)
        self._turn_truncations += 1
        return result, True

    async def add(self, item: ConversationItem) -> CompactionRequired | None:
        """Add an item, truncating tool output first.

        Waits for an in-flight compaction. With ``auto_compact`` enabled
        a threshold signal triggers compaction right away.

        Args:
            item: Item to add.

        Returns:
            ``CompactionRequired`` if usage is still at or above the threshold.
        """
        async with self._lock:
            if item.role is Role.USER:
                self._turn_truncations = 0

            if item.role is Role.TOOL_RESULT:
                # Structured payloads are bounded through their JSON form
                content, truncated = self.truncate_output(
                    content_to_text(item.content), source=item.tool_name
                )
                if truncated:
                    item = item.with_updates(content=content, truncated=True, estimated_tokens=None)

            signal = self._manager.add_item(item)
            if signal is None or not self._engine.config.auto_compact:
                return signal

            await self._compact_locked(None)
            return self._manager.check_threshold()

    async def compact(self, up_to_index: int | None = None) -> CompactionSummary | None:
        """Compact the conversation.

        A failed compaction is audited and logged; the conversation stays
        un-compacted and will signal again on the next added item.

        Args:
            up_to_index: Last index to compact. None uses the default policy.

        Returns:
            The applied summary, or None when compaction failed.
        """
        async with self._lock:
            return await self._compact_locked(up_to_index)

    async def _compact_locked(self, up_to_index: int | None) -> CompactionSummary | None:
        try:
            with self._manager.compacting() as items:
                summary = await self._engine.compact(items, up_to_index)
                dropped = self._manager.apply_compaction(summary)
        except CompactionFailedError as e:
            self._audit.record_compaction_failed(e)
            return None

        self._audit.record_compaction(summary)
        if dropped:
            self._audit.record_pair_repair(dropped)
        self._tracker.record_compaction()
        self._compactions += 1
        return summary

    def record_usage(self, usage: Usage) -> None:
        """Record model-reported usage for the current turn."""
        self._tracker.record_usage(usage)

    def snapshot(self) -> UsageSnapshot:
        """Get a read-only usage snapshot."""
        usage = self._manager.current_usage()
        return UsageSnapshot(
            used_tokens=usage.cumulative_tokens + usage.instruction_tokens,
            context_window=usage.context_window,
            ratio=usage.ratio,
            threshold_ratio=self._manager.config.compaction_threshold_ratio,
            instruction_tokens=usage.instruction_tokens,
            item_count=usage.item_count,
            last_truncation_count=self._turn_truncations,
            total_truncations=self._audit.truncation_count,
            compactions=self._compactions,
            remaining_turns=self._tracker.estimate_remaining_turns(
                usage.context_window,
                usage.reserved_tokens,
                usage.cumulative_tokens + usage.instruction_tokens,
            ),
        )

    def print_usage(self, console: Console | None = None) -> str:
        """Render the current usage snapshot as a rich table.

        Delegates to :func:`contextkit.display.print_usage`.

        Args:
            console: Optional Rich Console.

        Returns:
            The rendered string.
        """
        from contextkit.display import print_usage as _print_usage

        return _print_usage(self.snapshot(), console)
