"""
In-memory Event Store Adapter for testing/dev.

Implements ArticleReadPort, ViewStorePort, AdStorePort and CommentStorePort
behind a single lock so each primitive is atomic, matching the row-level
guarantees of the SQLite adapter. Writes publish to the attached change
feed after the lock is released.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any
from uuid import UUID

from newsdesk.core.entities import (
    AdCounter,
    Advertisement,
    Article,
    ArticleView,
    ChangeEvent,
    ChangeOperation,
    Comment,
)
from newsdesk.core.errors import ConstraintViolation, NotFoundError, StoreError, TransientStoreError
from newsdesk.core.ports.feed import ChangeFeedPort


class InMemoryStore:
    """In-memory store for testing/dev."""

    def __init__(self, feed: ChangeFeedPort | None = None) -> None:
        self._lock = threading.Lock()
        self._feed = feed
        self._articles: dict[UUID, Article] = {}
        self._views: dict[UUID, ArticleView] = {}
        self._view_keys: set[tuple[UUID, str, str]] = set()
        self._ads: dict[UUID, Advertisement] = {}
        self._comments: dict[UUID, Comment] = {}
        self._pending_failures = 0
        self._failure: type[StoreError] = TransientStoreError

    # --- Failure injection ---

    def fail_next(self, count: int = 1, error: type[StoreError] = TransientStoreError) -> None:
        """Make the next `count` store calls raise `error` (for testing)."""
        with self._lock:
            self._pending_failures = count
            self._failure = error

    def _maybe_fail(self, operation: str) -> None:
        # Caller holds the lock.
        if self._pending_failures > 0:
            self._pending_failures -= 1
            raise self._failure(operation, "injected failure")

    def _publish(self, table: str, operation: ChangeOperation, row: dict[str, Any]) -> None:
        if self._feed is not None:
            self._feed.publish(ChangeEvent(table=table, operation=operation, row=row))

    # --- Seeding ---

    def save_article(self, article: Article) -> Article:
        with self._lock:
            self._articles[article.id] = article
        self._publish("articles", "UPDATE", {"id": str(article.id)})
        return article

    def delete_article(self, article_id: UUID) -> bool:
        with self._lock:
            removed = self._articles.pop(article_id, None) is not None
        if removed:
            self._publish("articles", "DELETE", {"id": str(article_id)})
        return removed

    def save_advertisement(self, ad: Advertisement) -> Advertisement:
        with self._lock:
            self._ads[ad.id] = ad
        self._publish("advertisements", "UPDATE", {"id": str(ad.id)})
        return ad

    # --- ArticleReadPort ---

    def get_article(self, article_id: UUID) -> Article | None:
        with self._lock:
            self._maybe_fail("articles.get")
            return self._articles.get(article_id)

    def list_published_articles(self) -> list[Article]:
        with self._lock:
            self._maybe_fail("articles.list_published")
            articles = [
                a for a in self._articles.values()
                if a.is_published and a.published_at is not None
            ]
        return sorted(
            articles, key=lambda a: a.published_at, reverse=True  # type: ignore[arg-type]
        )

    def count_articles_published_since(self, since: datetime) -> int:
        with self._lock:
            self._maybe_fail("articles.count_since")
            return sum(
                1
                for a in self._articles.values()
                if a.is_published and a.published_at is not None and a.published_at >= since
            )

    # --- ViewStorePort ---

    def insert_view_if_absent(self, view: ArticleView) -> bool:
        key = (view.article_id, view.viewer_ip, view.view_day)
        with self._lock:
            self._maybe_fail("article_views.insert")
            if key in self._view_keys:
                return False
            if view.id in self._views:
                raise ConstraintViolation("article_views.insert", f"duplicate id {view.id}")
            self._view_keys.add(key)
            self._views[view.id] = view
        self._publish(
            "article_views",
            "INSERT",
            {"id": str(view.id), "article_id": str(view.article_id)},
        )
        return True

    def list_views(self, since: datetime | None = None) -> list[ArticleView]:
        with self._lock:
            self._maybe_fail("article_views.list")
            views = list(self._views.values())
        if since is not None:
            views = [v for v in views if v.viewed_at >= since]
        return views

    def count_views_on_day(self, view_day: str) -> int:
        with self._lock:
            self._maybe_fail("article_views.count_day")
            return sum(1 for v in self._views.values() if v.view_day == view_day)

    def count_distinct_viewers_since(self, since: datetime) -> int:
        with self._lock:
            self._maybe_fail("article_views.count_viewers")
            return len({v.viewer_ip for v in self._views.values() if v.viewed_at >= since})

    # --- AdStorePort ---

    def get_advertisement(self, ad_id: UUID) -> Advertisement | None:
        with self._lock:
            self._maybe_fail("advertisements.get")
            return self._ads.get(ad_id)

    def list_advertisements(self, placement: str | None = None) -> list[Advertisement]:
        with self._lock:
            self._maybe_fail("advertisements.list")
            ads = list(self._ads.values())
        if placement:
            ads = [a for a in ads if a.placement == placement]
        return sorted(ads, key=lambda a: a.created_at, reverse=True)

    def increment_ad_counter(self, ad_id: UUID, counter: AdCounter) -> int:
        if counter not in ("impressions", "clicks"):
            raise ValueError(f"Unknown advertisement counter: {counter}")
        with self._lock:
            self._maybe_fail(f"advertisements.increment_{counter}")
            ad = self._ads.get(ad_id)
            if ad is None:
                raise NotFoundError("advertisements", ad_id)
            value = getattr(ad, counter) + 1
            self._ads[ad_id] = replace(ad, **{counter: value})
        self._publish("advertisements", "UPDATE", {"id": str(ad_id), counter: value})
        return value

    # --- CommentStorePort ---

    def insert_comment(self, comment: Comment) -> Comment:
        with self._lock:
            self._maybe_fail("comments.insert")
            if comment.id in self._comments:
                raise ConstraintViolation("comments.insert", f"duplicate id {comment.id}")
            self._comments[comment.id] = comment
        self._publish(
            "comments",
            "INSERT",
            {"id": str(comment.id), "article_id": str(comment.article_id)},
        )
        return comment

    def get_comment(self, comment_id: UUID) -> Comment | None:
        with self._lock:
            self._maybe_fail("comments.get")
            return self._comments.get(comment_id)

    def update_comment_flags(
        self,
        comment_id: UUID,
        is_approved: bool,
        is_spam: bool,
        updated_at: datetime,
    ) -> Comment | None:
        with self._lock:
            self._maybe_fail("comments.update_flags")
            existing = self._comments.get(comment_id)
            if existing is None:
                return None
            updated = replace(
                existing, is_approved=is_approved, is_spam=is_spam, updated_at=updated_at
            )
            self._comments[comment_id] = updated
        self._publish(
            "comments",
            "UPDATE",
            {"id": str(comment_id), "is_approved": is_approved, "is_spam": is_spam},
        )
        return updated

    def delete_comment(self, comment_id: UUID) -> bool:
        with self._lock:
            self._maybe_fail("comments.delete")
            removed = self._comments.pop(comment_id, None) is not None
        if removed:
            self._publish("comments", "DELETE", {"id": str(comment_id)})
        return removed

    def delete_comment_tree(self, comment_id: UUID) -> list[UUID]:
        with self._lock:
            self._maybe_fail("comments.delete_tree")
            if comment_id not in self._comments:
                return []
            removed = [c.id for c in self._comments.values() if c.parent_id == comment_id]
            removed.append(comment_id)
            for cid in removed:
                del self._comments[cid]
        for cid in removed:
            self._publish("comments", "DELETE", {"id": str(cid)})
        return removed

    def count_replies(self, parent_id: UUID) -> int:
        with self._lock:
            self._maybe_fail("comments.count_replies")
            return sum(1 for c in self._comments.values() if c.parent_id == parent_id)

    def list_comments(
        self,
        filters: dict[str, Any] | None = None,
        order_by: str = "created_at",
        descending: bool = False,
    ) -> list[Comment]:
        if order_by not in ("created_at", "updated_at"):
            raise ValueError(f"Cannot order comments by {order_by}")
        with self._lock:
            self._maybe_fail("comments.list")
            comments = list(self._comments.values())
        for column, value in (filters or {}).items():
            comments = [c for c in comments if getattr(c, column) == value]
        return sorted(comments, key=lambda c: getattr(c, order_by), reverse=descending)

    def count_comments_by_article(self, approved_only: bool = True) -> dict[UUID, int]:
        with self._lock:
            self._maybe_fail("comments.count_by_article")
            comments = list(self._comments.values())
        counts: dict[UUID, int] = {}
        for c in comments:
            if approved_only and not (c.is_approved and not c.is_spam):
                continue
            counts[c.article_id] = counts.get(c.article_id, 0) + 1
        return counts

    def count_comments_between(
        self,
        start: datetime,
        end: datetime,
        approved_only: bool = True,
    ) -> int:
        with self._lock:
            self._maybe_fail("comments.count_between")
            comments = list(self._comments.values())
        return sum(
            1
            for c in comments
            if start <= c.created_at < end
            and (not approved_only or (c.is_approved and not c.is_spam))
        )
