"""
Comment moderation models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal
from uuid import UUID

from newsdesk.core.entities import Comment


class CommentState(str, Enum):
    """Effective moderation state. Spam wins over approved."""

    PENDING = "pending"
    APPROVED = "approved"
    SPAM = "spam"


ModerationActionKind = Literal["approve", "reject", "mark_spam", "delete"]

MODERATION_ACTIONS: tuple[str, ...] = ("approve", "reject", "mark_spam", "delete")

DeletePolicy = Literal["forbid", "cascade"]


@dataclass(frozen=True)
class CommentValidationError:
    """Comment submission validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class SubmitCommentInput:
    """Public comment submission. parent_id makes it a reply."""

    article_id: UUID
    author_name: str
    author_email: str
    content: str
    author_ip: str
    parent_id: UUID | None = None


@dataclass(frozen=True)
class CommentFilterInput:
    """Admin comment list filters."""

    status: CommentState | None = None
    search: str | None = None
    article_id: UUID | None = None


# --- Output Models ---


@dataclass(frozen=True)
class SubmitCommentOutput:
    comment: Comment | None
    errors: list[CommentValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class BulkResult:
    """
    Per-item outcome of a bulk moderation command.

    Items are independent: one failure never blocks the others.
    """

    action: str
    succeeded: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)
    errors: dict[UUID, str] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class ModerationCounts:
    pending: int
    approved: int
    spam: int
    total: int
