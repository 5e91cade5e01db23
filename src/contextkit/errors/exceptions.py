"""Custom exception hierarchy for context management."""

from __future__ import annotations

from typing import Any, ClassVar


class ContextKitError(Exception):
    """Base exception for all context management errors.

    All custom exceptions in this package inherit from this class,
    allowing for easy catching of all context-related errors.

    Attributes:
        message: Human-readable error message.
        cause: Original exception that caused this error.
        details: Additional error context as key-value pairs.

    Details can be accessed as attributes (e.g., error.max_bytes).
    """

    # Map attribute names to default values when not in details
    _defaults: ClassVar[dict[str, Any]] = {}

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        **details: Any,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            cause: Original exception that caused this error.
            **details: Additional error context.
        """
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details

    def __getattr__(self, name: str) -> Any:
        """Access details as attributes."""
        # Guard against lookups before __init__ ran (e.g. during unpickling)
        if name in ("details", "message", "cause"):
            raise AttributeError(name)
        if name in self.details:
            return self.details[name]
        if name in self._defaults:
            return self._defaults[name]
        raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __str__(self) -> str:
        """Return string representation."""
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"{type(self).__name__}({self.message!r})"


class ConfigurationError(ContextKitError):
    """Error in context configuration.

    Raised when configuration is invalid, missing required fields,
    or contains incompatible settings.

    Attributes from details: config_key, expected, actual.
    """


class ConfigTooLargeError(ContextKitError):
    """Local instructions alone exceed the instruction size ceiling.

    Fatal to session startup: the operator has to shrink the local
    instruction document. No trimming of local content is attempted.

    Attributes from details: path, local_bytes, max_bytes.
    """


class CompactionFailedError(ContextKitError):
    """Compaction could not reduce the conversation.

    Raised when the summarization step errors, times out, or cannot
    produce output smaller than the range it replaces. The conversation
    continues un-compacted and re-signals on the next added item.

    Attributes from details: tokens_before, tokens_after, first_index,
    last_index, retryable (default: True).
    """

    _defaults: ClassVar[dict[str, Any]] = {"retryable": True}


class InvalidRangeError(ContextKitError):
    """A compaction range does not fit the current conversation.

    This is a programmer error: indices out of bounds or reversed.

    Attributes from details: first_index, last_index, item_count.
    """


class OrphanToolResultError(ContextKitError):
    """A tool result was added without a matching tool call.

    Attributes from details: tool_call_id.
    """


class CompactionInProgressError(ContextKitError):
    """An item was added while a compaction for the session is in flight.

    Callers must queue new items until the compaction is applied or has
    failed.
    """
