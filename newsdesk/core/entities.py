"""
Domain entities for the engagement and moderation subsystem.

Rows mirror the external store's tables (articles, article_views,
advertisements, comments). Effective states are never stored here; see
components.ads and components.moderation for the derivations.

Engagement events are tagged variants over the closed EventKind enum so
consumers can dispatch exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(UTC)


# --- Articles (read-only snapshot; CRUD is external) ---


@dataclass(frozen=True)
class Article:
    """Published article snapshot used by the aggregation engine."""

    title: str
    id: UUID = field(default_factory=uuid4)
    category: str | None = None
    is_published: bool = True
    published_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


# --- Article views ---


@dataclass(frozen=True)
class ArticleView:
    """
    One qualifying view.

    Invariant: at most one row per (article_id, viewer_ip, view_day), where
    view_day is the calendar day (YYYY-MM-DD) in the site timezone.
    """

    article_id: UUID
    viewer_ip: str
    viewed_at: datetime
    view_day: str
    id: UUID = field(default_factory=uuid4)


# --- Advertisements ---

Placement = Literal[
    "header_banner",
    "sidebar_rectangle",
    "footer_banner",
    "in_content",
    "mobile_banner",
]

PLACEMENTS: tuple[str, ...] = (
    "header_banner",
    "sidebar_rectangle",
    "footer_banner",
    "in_content",
    "mobile_banner",
)

AdCounter = Literal["impressions", "clicks"]


@dataclass(frozen=True)
class Advertisement:
    """
    Advertisement row.

    impressions/clicks only move through the store's atomic increment.
    """

    name: str
    image_url: str
    link_url: str
    placement: Placement
    id: UUID = field(default_factory=uuid4)
    is_active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None
    impressions: int = 0
    clicks: int = 0
    created_at: datetime = field(default_factory=utcnow)


# --- Comments ---


@dataclass(frozen=True)
class Comment:
    """
    Comment row as stored.

    is_approved and is_spam are independent flags in storage; the effective
    state is derived (spam wins over approved).
    """

    article_id: UUID
    author_name: str
    author_email: str
    author_ip: str
    content: str
    id: UUID = field(default_factory=uuid4)
    parent_id: UUID | None = None
    is_approved: bool = False
    is_spam: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True)
class Reply:
    """A reply to a top-level comment. Replies never carry children."""

    comment: Comment
    parent_id: UUID

    def __post_init__(self) -> None:
        if self.comment.parent_id != self.parent_id:
            raise ValueError(
                f"Reply {self.comment.id} does not belong to parent {self.parent_id}"
            )


@dataclass(frozen=True)
class TopLevel:
    """A top-level comment with its (single level of) replies."""

    comment: Comment
    replies: tuple[Reply, ...] = ()

    def __post_init__(self) -> None:
        if self.comment.parent_id is not None:
            raise ValueError(f"Comment {self.comment.id} is a reply, not top-level")
        for reply in self.replies:
            if reply.parent_id != self.comment.id:
                raise ValueError(
                    f"Reply {reply.comment.id} is attached to the wrong parent"
                )


# --- Engagement events ---


class EventKind(str, Enum):
    """Closed set of engagement event kinds."""

    VIEW_RECORDED = "view_recorded"
    AD_IMPRESSION = "ad_impression"
    AD_CLICK = "ad_click"
    COMMENT_SUBMITTED = "comment_submitted"
    MODERATION_ACTION = "moderation_action"


@dataclass(frozen=True)
class ViewRecorded:
    article_id: UUID
    occurred_at: datetime
    kind: EventKind = field(default=EventKind.VIEW_RECORDED, init=False)


@dataclass(frozen=True)
class AdImpression:
    ad_id: UUID
    occurred_at: datetime
    kind: EventKind = field(default=EventKind.AD_IMPRESSION, init=False)


@dataclass(frozen=True)
class AdClick:
    ad_id: UUID
    occurred_at: datetime
    kind: EventKind = field(default=EventKind.AD_CLICK, init=False)


@dataclass(frozen=True)
class CommentSubmitted:
    comment_id: UUID
    article_id: UUID
    occurred_at: datetime
    kind: EventKind = field(default=EventKind.COMMENT_SUBMITTED, init=False)


@dataclass(frozen=True)
class ModerationAction:
    comment_id: UUID
    action: str  # approve | reject | mark_spam | delete
    occurred_at: datetime
    kind: EventKind = field(default=EventKind.MODERATION_ACTION, init=False)


EngagementEvent = ViewRecorded | AdImpression | AdClick | CommentSubmitted | ModerationAction


# --- Change feed ---

ChangeOperation = Literal["INSERT", "UPDATE", "DELETE"]


@dataclass(frozen=True)
class ChangeEvent:
    """Row-level change notification delivered by the change feed."""

    table: str
    operation: ChangeOperation
    row: dict[str, Any]
    occurred_at: datetime = field(default_factory=utcnow)
