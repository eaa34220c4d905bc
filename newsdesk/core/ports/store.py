"""
Event Store Adapter interfaces.

The persistent store is an external service. These protocols describe the
only primitives the subsystem relies on:

- conditional insert for article views (unique on article/ip/day)
- atomic increment of named advertisement counters
- comment rows with equality filters and ordering
- read models for the aggregation engine

Correctness under concurrent writers is delegated to the store's row-level
atomicity; callers hold no in-process locks.

Implementations raise TransientStoreError for retryable failures,
ConstraintViolation for uniqueness conflicts, and NotFoundError when a
write targets a missing row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from newsdesk.core.entities import AdCounter, Advertisement, Article, ArticleView, Comment


class ArticleReadPort(Protocol):
    """Read access to article snapshots."""

    def get_article(self, article_id: UUID) -> Article | None:
        """Get an article by ID."""
        ...

    def list_published_articles(self) -> list[Article]:
        """Published articles with a publication date, newest first."""
        ...

    def count_articles_published_since(self, since: datetime) -> int:
        """Count published articles with published_at >= since."""
        ...


class ViewStorePort(Protocol):
    """Article view storage."""

    def insert_view_if_absent(self, view: ArticleView) -> bool:
        """
        Insert the view unless (article_id, viewer_ip, view_day) exists.

        Single atomic conditional write. Returns True if a row was inserted,
        False if the day's view already existed.
        """
        ...

    def list_views(self, since: datetime | None = None) -> list[ArticleView]:
        """List views, optionally only those with viewed_at >= since."""
        ...

    def count_views_on_day(self, view_day: str) -> int:
        """Count views recorded for a site-local calendar day (YYYY-MM-DD)."""
        ...

    def count_distinct_viewers_since(self, since: datetime) -> int:
        """Count distinct viewer IPs with a view at or after since."""
        ...


class AdStorePort(Protocol):
    """Advertisement storage."""

    def get_advertisement(self, ad_id: UUID) -> Advertisement | None:
        """Get an advertisement by ID."""
        ...

    def list_advertisements(self, placement: str | None = None) -> list[Advertisement]:
        """List advertisements (optionally by placement), newest first."""
        ...

    def increment_ad_counter(self, ad_id: UUID, counter: AdCounter) -> int:
        """
        Atomically add one to impressions or clicks.

        Returns the new counter value. Raises NotFoundError if the ad is gone.
        """
        ...


class CommentStorePort(Protocol):
    """Comment storage with equality filters and ordering."""

    def insert_comment(self, comment: Comment) -> Comment:
        """Insert a new comment row."""
        ...

    def get_comment(self, comment_id: UUID) -> Comment | None:
        """Get a comment by ID."""
        ...

    def update_comment_flags(
        self,
        comment_id: UUID,
        is_approved: bool,
        is_spam: bool,
        updated_at: datetime,
    ) -> Comment | None:
        """Set both moderation flags in one write. Returns None if missing."""
        ...

    def delete_comment(self, comment_id: UUID) -> bool:
        """Hard-delete a comment. Returns False if it did not exist."""
        ...

    def delete_comment_tree(self, comment_id: UUID) -> list[UUID]:
        """
        Delete a comment and its direct replies in one atomic write.

        Returns the deleted ids, replies first; empty if the comment is gone.
        """
        ...

    def count_replies(self, parent_id: UUID) -> int:
        """Count comments whose parent_id is the given comment."""
        ...

    def list_comments(
        self,
        filters: dict[str, Any] | None = None,
        order_by: str = "created_at",
        descending: bool = False,
    ) -> list[Comment]:
        """
        List comments matching all equality filters.

        A filter value of None matches NULL (e.g. {"parent_id": None}).
        """
        ...

    def count_comments_by_article(self, approved_only: bool = True) -> dict[UUID, int]:
        """Comment counts keyed by article ID (approved and not spam by default)."""
        ...

    def count_comments_between(
        self,
        start: datetime,
        end: datetime,
        approved_only: bool = True,
    ) -> int:
        """Count comments created in [start, end)."""
        ...
