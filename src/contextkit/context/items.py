"""Conversation items and roles."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Role of a conversation item.

    Attributes:
        USER: Message from the operator.
        ASSISTANT: Reply from the model.
        TOOL_CALL: Tool invocation requested by the model.
        TOOL_RESULT: Outcome of a tool invocation.
        SUMMARY: Compaction summary replacing earlier history.
    """

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    SUMMARY = "summary"

    @property
    def is_tool(self) -> bool:
        """Whether the role takes part in call/result pairing."""
        return self in (Role.TOOL_CALL, Role.TOOL_RESULT)


@dataclass(frozen=True)
class ConversationItem:
    """One unit of dialogue history.

    Attributes:
        role: Item role.
        content: Text or a JSON-serializable payload.
        estimated_tokens: Estimated token count. ``None`` until the
            context manager estimates it.
        created_at: Logical turn index assigned by the context manager.
        truncated: Whether the content was truncated before insertion.
        tool_call_id: Pairing key, required for tool calls and results.
        tool_name: Name of the invoked tool, if known.
    """

    role: Role
    content: Any = ""
    estimated_tokens: int | None = None
    created_at: int = 0
    truncated: bool = False
    tool_call_id: str | None = None
    tool_name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            # Accept plain strings but keep the closed set of roles
            object.__setattr__(self, "role", Role(self.role))
        if self.role.is_tool and not self.tool_call_id:
            raise ValueError(f"{self.role.value} items require a tool_call_id")
        if not self.role.is_tool and self.tool_call_id is not None:
            raise ValueError(f"{self.role.value} items cannot carry a tool_call_id")
        if self.estimated_tokens is not None and self.estimated_tokens < 0:
            raise ValueError("estimated_tokens must be >= 0")

    @property
    def tokens(self) -> int:
        """Estimated tokens, zero if not yet estimated."""
        return self.estimated_tokens or 0

    def with_updates(self, **changes: Any) -> ConversationItem:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @classmethod
    def user(cls, content: Any, **kwargs: Any) -> ConversationItem:
        """Create a user item."""
        return cls(role=Role.USER, content=content, **kwargs)

    @classmethod
    def assistant(cls, content: Any, **kwargs: Any) -> ConversationItem:
        """Create an assistant item."""
        return cls(role=Role.ASSISTANT, content=content, **kwargs)

    @classmethod
    def tool_call(
        cls, tool_call_id: str, content: Any = "", *, tool_name: str | None = None, **kwargs: Any
    ) -> ConversationItem:
        """Create a tool call item."""
        return cls(
            role=Role.TOOL_CALL,
            content=content,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            **kwargs,
        )

    @classmethod
    def tool_result(
        cls, tool_call_id: str, content: Any = "", *, tool_name: str | None = None, **kwargs: Any
    ) -> ConversationItem:
        """Create a tool result item."""
        return cls(
            role=Role.TOOL_RESULT,
            content=content,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            **kwargs,
        )
