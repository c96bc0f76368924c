"""Exceptions for loop-counters."""

from typing import Any

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class LoopCountersError(Exception):
    """
    Base exception for all loop-counters errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Category Exceptions
# ---------------------------------------------------------------------------


class CounterError(LoopCountersError):
    """
    Base exception for failed counter operations.

    Raised when initializing, incrementing, or aggregating a sharded
    counter fails in the underlying document store. The original store
    exception is available as ``cause`` (and as ``__cause__``).

    Attributes:
        cause: The underlying exception raised by the document store
        parent_path: Path of the parent record owning the counter
        field: Counter field involved in the operation (if applicable)
        family: Counter family name (if applicable)
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        parent_path: str | None = None,
        field: str | None = None,
        family: str | None = None,
    ) -> None:
        self.cause = cause
        self.parent_path = parent_path
        self.field = field
        self.family = family
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        parts = [message]
        context = []
        if self.parent_path:
            context.append(f"parent={self.parent_path}")
        if self.family:
            context.append(f"family={self.family}")
        if self.field:
            context.append(f"field={self.field}")
        if context:
            parts.append(f"[{', '.join(context)}]")
        if self.cause is not None:
            parts.append(f"({type(self.cause).__name__}: {self.cause})")
        return " ".join(parts)


class StoreError(LoopCountersError):
    """
    Base exception for errors raised by document store adapters.

    Adapters raise these for conditions the counter logic must react to,
    such as a conditional create that found an existing document.
    """

    pass


# ---------------------------------------------------------------------------
# Counter Exceptions
# ---------------------------------------------------------------------------


class BatchWriteFailed(CounterError):  # noqa: N818
    """
    Raised when the initializer's batch commit fails.

    No partial shard set is guaranteed one way or the other beyond what
    the store's batch primitive itself guarantees.
    """

    pass


class ShardReadFailed(CounterError):  # noqa: N818
    """Raised when the writer cannot read the chosen shard."""

    pass


class ShardWriteFailed(CounterError):  # noqa: N818
    """
    Raised when the writer cannot create or increment the chosen shard.

    The increment is lost. Retrying may double-apply the delta if the
    original write succeeded but its acknowledgment did not arrive.
    """

    pass


class AggregationQueryFailed(CounterError):  # noqa: N818
    """
    Raised when the reader cannot enumerate shard records.

    Callers should treat the counter value as unknown, never as zero.
    """

    pass


# ---------------------------------------------------------------------------
# Store Exceptions
# ---------------------------------------------------------------------------


class DocumentExistsError(StoreError):
    """Raised by a create-only write when the document already exists."""

    def __init__(self, location: Any) -> None:
        self.location = location
        super().__init__(f"Document already exists: {location}")


class DocumentNotFoundError(StoreError):
    """Raised by a plain increment when the document does not exist."""

    def __init__(self, location: Any) -> None:
        self.location = location
        super().__init__(f"Document not found: {location}")


class BatchTooLargeError(StoreError):
    """Raised when a batch exceeds the store's maximum batch size."""

    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size
        super().__init__(f"Batch of {size} writes exceeds limit of {max_size}")


# ---------------------------------------------------------------------------
# Validation Exceptions
# ---------------------------------------------------------------------------


class ValidationError(LoopCountersError, ValueError):
    """
    Raised when an argument fails validation.

    Attributes:
        field: Name of the argument that failed validation
        value: The rejected value
        reason: Human-readable explanation
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


# ---------------------------------------------------------------------------
# Search / Feed Exceptions
# ---------------------------------------------------------------------------


class SearchFailed(LoopCountersError):  # noqa: N818
    """Raised when a candidate provider fails during a user search."""

    def __init__(self, term: str, provider: str, cause: BaseException) -> None:
        self.term = term
        self.provider = provider
        self.cause = cause
        super().__init__(f"Error searching users for {term!r} via {provider}: {cause}")


class FeedQueryFailed(LoopCountersError):  # noqa: N818
    """Raised when the followed-producers feed cannot be assembled."""

    def __init__(self, user_id: str, cause: BaseException) -> None:
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"Error fetching feed for user {user_id}: {cause}")
