"""
SQLite Event Store Adapter.

Implements the store ports over SQLite. Row-level atomicity is the only
concurrency control:
- views: INSERT ... ON CONFLICT DO NOTHING against the daily unique index
- ad counters: UPDATE ... SET n = n + 1 ... RETURNING n
- comment flags: a single UPDATE setting both flags

sqlite3 errors are translated into the store error taxonomy; a locked or
busy database surfaces as TransientStoreError, any other operational error
as StoreError. Every committed write is published to the attached change
feed.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
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

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO string so lexical order matches time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def parse_uuid(s: str | None) -> UUID | None:
    """Parse UUID string."""
    return UUID(s) if s else None


def _is_contention(e: sqlite3.OperationalError) -> bool:
    """Locked or busy database; anything else (missing table, bad SQL) is permanent."""
    name = getattr(e, "sqlite_errorname", None) or ""
    if name.startswith(("SQLITE_BUSY", "SQLITE_LOCKED")):
        return True
    message = str(e).lower()
    return "locked" in message or "busy" in message


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate sqlite3 exceptions into store errors."""
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(operation, str(e)) from e
    except sqlite3.OperationalError as e:
        if _is_contention(e):
            raise TransientStoreError(operation, str(e)) from e
        raise StoreError(operation, str(e)) from e
    except sqlite3.DatabaseError as e:
        raise StoreError(operation, str(e)) from e


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(
        self,
        db_path: str,
        connection: sqlite3.Connection | None = None,
        feed: ChangeFeedPort | None = None,
    ):
        self.db_path = db_path
        self._external_conn = connection
        self._feed = feed

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = dict_factory
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def _publish(self, table: str, operation: ChangeOperation, row: dict[str, Any]) -> None:
        if self._feed is not None:
            self._feed.publish(ChangeEvent(table=table, operation=operation, row=row))


# -----------------------------------------------------------------------------
# Articles (snapshot reads; save/delete exist for seeding and admin tooling)
# -----------------------------------------------------------------------------


class SQLiteArticleRepo(SQLiteRepoBase):
    """SQLite implementation of ArticleReadPort."""

    def get_article(self, article_id: UUID) -> Article | None:
        conn = self._get_conn()
        try:
            with store_errors("articles.get"):
                row = conn.execute(
                    "SELECT * FROM articles WHERE id = ?", (str(article_id),)
                ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def list_published_articles(self) -> list[Article]:
        conn = self._get_conn()
        try:
            with store_errors("articles.list_published"):
                rows = conn.execute(
                    """
                    SELECT * FROM articles
                    WHERE is_published = 1 AND published_at IS NOT NULL
                    ORDER BY published_at DESC
                    """
                ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count_articles_published_since(self, since: datetime) -> int:
        conn = self._get_conn()
        try:
            with store_errors("articles.count_since"):
                row = conn.execute(
                    """
                    SELECT COUNT(*) AS n FROM articles
                    WHERE is_published = 1 AND published_at >= ?
                    """,
                    (to_iso(since),),
                ).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def save(self, article: Article) -> Article:
        conn = self._get_conn()
        try:
            with store_errors("articles.save"):
                conn.execute(
                    """
                    INSERT INTO articles
                        (id, title, category, is_published, published_at, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title=excluded.title,
                        category=excluded.category,
                        is_published=excluded.is_published,
                        published_at=excluded.published_at
                    """,
                    (
                        str(article.id),
                        article.title,
                        article.category,
                        1 if article.is_published else 0,
                        to_iso(article.published_at) if article.published_at else None,
                        to_iso(article.created_at),
                    ),
                )
                if self._should_close():
                    conn.commit()
            self._publish("articles", "UPDATE", {"id": str(article.id)})
            return article
        finally:
            if self._should_close():
                conn.close()

    def delete(self, article_id: UUID) -> bool:
        conn = self._get_conn()
        try:
            with store_errors("articles.delete"):
                cur = conn.execute("DELETE FROM articles WHERE id = ?", (str(article_id),))
                if self._should_close():
                    conn.commit()
            if cur.rowcount:
                self._publish("articles", "DELETE", {"id": str(article_id)})
            return cur.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Article:
        return Article(
            id=UUID(row["id"]),
            title=row["title"],
            category=row["category"],
            is_published=bool(row["is_published"]),
            published_at=parse_dt(row["published_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Article views
# -----------------------------------------------------------------------------


class SQLiteViewRepo(SQLiteRepoBase):
    """SQLite implementation of ViewStorePort."""

    def insert_view_if_absent(self, view: ArticleView) -> bool:
        conn = self._get_conn()
        try:
            with store_errors("article_views.insert"):
                cur = conn.execute(
                    """
                    INSERT INTO article_views (id, article_id, viewer_ip, viewed_at, view_day)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(article_id, viewer_ip, view_day) DO NOTHING
                    """,
                    (
                        str(view.id),
                        str(view.article_id),
                        view.viewer_ip,
                        to_iso(view.viewed_at),
                        view.view_day,
                    ),
                )
                if self._should_close():
                    conn.commit()
            inserted = cur.rowcount == 1
            if inserted:
                self._publish(
                    "article_views",
                    "INSERT",
                    {"id": str(view.id), "article_id": str(view.article_id)},
                )
            return inserted
        finally:
            if self._should_close():
                conn.close()

    def list_views(self, since: datetime | None = None) -> list[ArticleView]:
        conn = self._get_conn()
        try:
            with store_errors("article_views.list"):
                if since is None:
                    rows = conn.execute("SELECT * FROM article_views").fetchall()
                else:
                    rows = conn.execute(
                        "SELECT * FROM article_views WHERE viewed_at >= ?",
                        (to_iso(since),),
                    ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count_views_on_day(self, view_day: str) -> int:
        conn = self._get_conn()
        try:
            with store_errors("article_views.count_day"):
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM article_views WHERE view_day = ?",
                    (view_day,),
                ).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def count_distinct_viewers_since(self, since: datetime) -> int:
        conn = self._get_conn()
        try:
            with store_errors("article_views.count_viewers"):
                row = conn.execute(
                    """
                    SELECT COUNT(DISTINCT viewer_ip) AS n FROM article_views
                    WHERE viewed_at >= ?
                    """,
                    (to_iso(since),),
                ).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> ArticleView:
        return ArticleView(
            id=UUID(row["id"]),
            article_id=UUID(row["article_id"]),
            viewer_ip=row["viewer_ip"],
            viewed_at=datetime.fromisoformat(row["viewed_at"]),
            view_day=row["view_day"],
        )


# -----------------------------------------------------------------------------
# Advertisements
# -----------------------------------------------------------------------------

_AD_COUNTERS: frozenset[str] = frozenset({"impressions", "clicks"})


class SQLiteAdRepo(SQLiteRepoBase):
    """SQLite implementation of AdStorePort."""

    def get_advertisement(self, ad_id: UUID) -> Advertisement | None:
        conn = self._get_conn()
        try:
            with store_errors("advertisements.get"):
                row = conn.execute(
                    "SELECT * FROM advertisements WHERE id = ?", (str(ad_id),)
                ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def list_advertisements(self, placement: str | None = None) -> list[Advertisement]:
        conn = self._get_conn()
        try:
            with store_errors("advertisements.list"):
                if placement:
                    rows = conn.execute(
                        """
                        SELECT * FROM advertisements WHERE placement = ?
                        ORDER BY created_at DESC
                        """,
                        (placement,),
                    ).fetchall()
                else:
                    rows = conn.execute(
                        "SELECT * FROM advertisements ORDER BY created_at DESC"
                    ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def increment_ad_counter(self, ad_id: UUID, counter: AdCounter) -> int:
        if counter not in _AD_COUNTERS:
            raise ValueError(f"Unknown advertisement counter: {counter}")

        conn = self._get_conn()
        try:
            with store_errors(f"advertisements.increment_{counter}"):
                rows = conn.execute(
                    f"""
                    UPDATE advertisements SET {counter} = {counter} + 1
                    WHERE id = ?
                    RETURNING {counter} AS value
                    """,
                    (str(ad_id),),
                ).fetchall()
                if self._should_close():
                    conn.commit()
            row = rows[0] if rows else None
            if row is None:
                raise NotFoundError("advertisements", ad_id)
            self._publish(
                "advertisements", "UPDATE", {"id": str(ad_id), counter: row["value"]}
            )
            return int(row["value"])
        finally:
            if self._should_close():
                conn.close()

    def save(self, ad: Advertisement) -> Advertisement:
        conn = self._get_conn()
        try:
            with store_errors("advertisements.save"):
                conn.execute(
                    """
                    INSERT INTO advertisements (
                        id, name, image_url, link_url, placement, is_active,
                        start_date, end_date, impressions, clicks, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        name=excluded.name,
                        image_url=excluded.image_url,
                        link_url=excluded.link_url,
                        placement=excluded.placement,
                        is_active=excluded.is_active,
                        start_date=excluded.start_date,
                        end_date=excluded.end_date
                    """,
                    (
                        str(ad.id),
                        ad.name,
                        ad.image_url,
                        ad.link_url,
                        ad.placement,
                        1 if ad.is_active else 0,
                        to_iso(ad.start_date) if ad.start_date else None,
                        to_iso(ad.end_date) if ad.end_date else None,
                        ad.impressions,
                        ad.clicks,
                        to_iso(ad.created_at),
                    ),
                )
                if self._should_close():
                    conn.commit()
            self._publish("advertisements", "UPDATE", {"id": str(ad.id)})
            return ad
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Advertisement:
        return Advertisement(
            id=UUID(row["id"]),
            name=row["name"],
            image_url=row["image_url"],
            link_url=row["link_url"],
            placement=row["placement"],
            is_active=bool(row["is_active"]),
            start_date=parse_dt(row["start_date"]),
            end_date=parse_dt(row["end_date"]),
            impressions=row["impressions"],
            clicks=row["clicks"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Comments
# -----------------------------------------------------------------------------

_COMMENT_FILTER_COLUMNS: frozenset[str] = frozenset(
    {"article_id", "parent_id", "is_approved", "is_spam", "author_email"}
)
_COMMENT_ORDER_COLUMNS: frozenset[str] = frozenset({"created_at", "updated_at"})


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, UUID):
        return str(value)
    return value


class SQLiteCommentRepo(SQLiteRepoBase):
    """SQLite implementation of CommentStorePort."""

    def insert_comment(self, comment: Comment) -> Comment:
        conn = self._get_conn()
        try:
            with store_errors("comments.insert"):
                conn.execute(
                    """
                    INSERT INTO comments (
                        id, article_id, parent_id, author_name, author_email,
                        author_ip, content, is_approved, is_spam, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(comment.id),
                        str(comment.article_id),
                        str(comment.parent_id) if comment.parent_id else None,
                        comment.author_name,
                        comment.author_email,
                        comment.author_ip,
                        comment.content,
                        1 if comment.is_approved else 0,
                        1 if comment.is_spam else 0,
                        to_iso(comment.created_at),
                        to_iso(comment.updated_at),
                    ),
                )
                if self._should_close():
                    conn.commit()
            self._publish(
                "comments",
                "INSERT",
                {"id": str(comment.id), "article_id": str(comment.article_id)},
            )
            return comment
        finally:
            if self._should_close():
                conn.close()

    def get_comment(self, comment_id: UUID) -> Comment | None:
        conn = self._get_conn()
        try:
            with store_errors("comments.get"):
                row = conn.execute(
                    "SELECT * FROM comments WHERE id = ?", (str(comment_id),)
                ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def update_comment_flags(
        self,
        comment_id: UUID,
        is_approved: bool,
        is_spam: bool,
        updated_at: datetime,
    ) -> Comment | None:
        conn = self._get_conn()
        try:
            with store_errors("comments.update_flags"):
                rows = conn.execute(
                    """
                    UPDATE comments SET is_approved = ?, is_spam = ?, updated_at = ?
                    WHERE id = ?
                    RETURNING *
                    """,
                    (
                        1 if is_approved else 0,
                        1 if is_spam else 0,
                        to_iso(updated_at),
                        str(comment_id),
                    ),
                ).fetchall()
                if self._should_close():
                    conn.commit()
            row = rows[0] if rows else None
            if row is None:
                return None
            self._publish(
                "comments",
                "UPDATE",
                {"id": str(comment_id), "is_approved": is_approved, "is_spam": is_spam},
            )
            return self._map_row(row)
        finally:
            if self._should_close():
                conn.close()

    def delete_comment(self, comment_id: UUID) -> bool:
        conn = self._get_conn()
        try:
            with store_errors("comments.delete"):
                cur = conn.execute("DELETE FROM comments WHERE id = ?", (str(comment_id),))
                if self._should_close():
                    conn.commit()
            if cur.rowcount:
                self._publish("comments", "DELETE", {"id": str(comment_id)})
            return cur.rowcount > 0
        finally:
            if self._should_close():
                conn.close()

    def delete_comment_tree(self, comment_id: UUID) -> list[UUID]:
        conn = self._get_conn()
        try:
            with store_errors("comments.delete_tree"):
                cur = conn.execute("DELETE FROM comments WHERE id = ?", (str(comment_id),))
                if cur.rowcount == 0:
                    return []
                # Same transaction as the parent delete; nothing is kept on failure
                reply_rows = conn.execute(
                    "DELETE FROM comments WHERE parent_id = ? RETURNING id",
                    (str(comment_id),),
                ).fetchall()
                if self._should_close():
                    conn.commit()
            removed = [UUID(r["id"]) for r in reply_rows] + [comment_id]
            for cid in removed:
                self._publish("comments", "DELETE", {"id": str(cid)})
            return removed
        finally:
            if self._should_close():
                conn.close()

    def count_replies(self, parent_id: UUID) -> int:
        conn = self._get_conn()
        try:
            with store_errors("comments.count_replies"):
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM comments WHERE parent_id = ?",
                    (str(parent_id),),
                ).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def list_comments(
        self,
        filters: dict[str, Any] | None = None,
        order_by: str = "created_at",
        descending: bool = False,
    ) -> list[Comment]:
        if order_by not in _COMMENT_ORDER_COLUMNS:
            raise ValueError(f"Cannot order comments by {order_by}")

        query = "SELECT * FROM comments WHERE 1=1"
        params: list[Any] = []
        for column, value in (filters or {}).items():
            if column not in _COMMENT_FILTER_COLUMNS:
                raise ValueError(f"Cannot filter comments by {column}")
            if value is None:
                query += f" AND {column} IS NULL"
            else:
                query += f" AND {column} = ?"
                params.append(_filter_value(value))
        query += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"

        conn = self._get_conn()
        try:
            with store_errors("comments.list"):
                rows = conn.execute(query, params).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count_comments_by_article(self, approved_only: bool = True) -> dict[UUID, int]:
        query = "SELECT article_id, COUNT(*) AS n FROM comments"
        if approved_only:
            query += " WHERE is_approved = 1 AND is_spam = 0"
        query += " GROUP BY article_id"

        conn = self._get_conn()
        try:
            with store_errors("comments.count_by_article"):
                rows = conn.execute(query).fetchall()
            return {UUID(r["article_id"]): r["n"] for r in rows}
        finally:
            if self._should_close():
                conn.close()

    def count_comments_between(
        self,
        start: datetime,
        end: datetime,
        approved_only: bool = True,
    ) -> int:
        query = "SELECT COUNT(*) AS n FROM comments WHERE created_at >= ? AND created_at < ?"
        if approved_only:
            query += " AND is_approved = 1 AND is_spam = 0"

        conn = self._get_conn()
        try:
            with store_errors("comments.count_between"):
                row = conn.execute(query, (to_iso(start), to_iso(end))).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Comment:
        return Comment(
            id=UUID(row["id"]),
            article_id=UUID(row["article_id"]),
            parent_id=parse_uuid(row["parent_id"]),
            author_name=row["author_name"],
            author_email=row["author_email"],
            author_ip=row["author_ip"],
            content=row["content"],
            is_approved=bool(row["is_approved"]),
            is_spam=bool(row["is_spam"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
