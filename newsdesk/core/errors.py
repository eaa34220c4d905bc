"""
Error taxonomy for the engagement and moderation subsystem.

- TransientStoreError: network/lock/timeout at the store; retryable.
- ConstraintViolation: uniqueness conflict; a duplicate view insert is a no-op.
- InvalidTransitionError: rejected moderation or reply request, nothing mutated.
- AggregationInputGap: a rollup input references a row that no longer exists.
- AggregationError: a dashboard metric could not be computed at all.
"""

from __future__ import annotations

from uuid import UUID


class NewsdeskError(Exception):
    """Base class for subsystem errors."""


# --- Store ---


class StoreError(NewsdeskError):
    """Raised when the persistent store rejects or fails an operation."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        msg = f"Store operation '{operation}' failed"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TransientStoreError(StoreError):
    """Raised for failures that may succeed on retry (locked db, timeout)."""


class ConstraintViolation(StoreError):
    """Raised when a write conflicts with a uniqueness constraint."""


class NotFoundError(StoreError):
    """Raised when a row targeted by a write does not exist."""

    def __init__(self, table: str, row_id: UUID) -> None:
        self.table = table
        self.row_id = row_id
        super().__init__(f"{table}.get", f"no row with id {row_id}")


# --- Moderation ---


class InvalidTransitionError(NewsdeskError):
    """Raised when a moderation or reply request is not allowed."""

    def __init__(self, comment_id: UUID | None, reason: str) -> None:
        self.comment_id = comment_id
        self.reason = reason
        if comment_id is None:
            super().__init__(reason)
        else:
            super().__init__(f"Comment {comment_id}: {reason}")


class CommentNotFoundError(InvalidTransitionError):
    """Raised when moderating a comment that does not exist (or was deleted)."""

    def __init__(self, comment_id: UUID) -> None:
        super().__init__(comment_id, "comment not found")


# --- Aggregation ---


class AggregationInputGap(NewsdeskError):
    """Raised when an event references a missing article/ad/comment."""

    def __init__(self, kind: str, ref_id: UUID) -> None:
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"Missing {kind} {ref_id} referenced by an event")


class AggregationError(NewsdeskError):
    """Raised when a metric group cannot be computed."""

    def __init__(self, metric: str, cause: Exception) -> None:
        self.metric = metric
        self.cause = cause
        super().__init__(f"Failed to compute {metric} metrics: {cause}")
