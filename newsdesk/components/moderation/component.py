"""
Comment Moderation State Machine.

States are derived from the stored flags:
- Pending:  not approved, not spam (initial, on submission)
- Approved: approved, not spam
- Spam:     spam, regardless of approved

Transitions (all set both flags in a single store write):
- approve   -> approved=True,  spam=False
- reject    -> approved=False, spam=False (re-opens, does not delete)
- mark_spam -> approved=False, spam=True
- delete    -> row removed (terminal)

Moderation commands are never retried: a store failure surfaces to the
operator as-is. Moderating a comment that does not exist raises
CommentNotFoundError and mutates nothing.

Threads are materialized one level deep: approved top-level comments newest
first, each with its approved replies oldest first.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from uuid import UUID

from newsdesk.core.entities import Comment, CommentSubmitted, ModerationAction, Reply, TopLevel
from newsdesk.core.errors import CommentNotFoundError, InvalidTransitionError, NewsdeskError

from .models import (
    BulkResult,
    CommentFilterInput,
    CommentState,
    CommentValidationError,
    DeletePolicy,
    ModerationActionKind,
    ModerationCounts,
    SubmitCommentInput,
    SubmitCommentOutput,
)
from .ports import ArticleReadPort, CommentStorePort, EventSinkPort, TimePort

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_MIN_CONTENT_LENGTH = 10
DEFAULT_MAX_CONTENT_LENGTH = 5000
MAX_AUTHOR_NAME_LENGTH = 100

_FLAGS: dict[str, tuple[bool, bool]] = {
    # action: (is_approved, is_spam)
    "approve": (True, False),
    "reject": (False, False),
    "mark_spam": (False, True),
}


# --- Pure Functions (Functional Core) ---


def effective_state(comment: Comment) -> CommentState:
    if comment.is_spam:
        return CommentState.SPAM
    if comment.is_approved:
        return CommentState.APPROVED
    return CommentState.PENDING


def is_visible(comment: Comment) -> bool:
    """Shown on the public site."""
    return effective_state(comment) is CommentState.APPROVED


def flags_for(action: str) -> tuple[bool, bool]:
    """(is_approved, is_spam) written by a flag-setting action."""
    try:
        return _FLAGS[action]
    except KeyError:
        raise ValueError(f"Unknown moderation action: {action}") from None


def validate_submission(
    inp: SubmitCommentInput,
    min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
) -> list[CommentValidationError]:
    """Validate a public comment submission."""
    errors: list[CommentValidationError] = []

    name = (inp.author_name or "").strip()
    if not name:
        errors.append(
            CommentValidationError(
                code="author_name_required",
                message="Name is required",
                field_name="author_name",
            )
        )
    elif len(name) > MAX_AUTHOR_NAME_LENGTH:
        errors.append(
            CommentValidationError(
                code="author_name_too_long",
                message=f"Name must be at most {MAX_AUTHOR_NAME_LENGTH} characters",
                field_name="author_name",
            )
        )

    email = (inp.author_email or "").strip()
    if not email:
        errors.append(
            CommentValidationError(
                code="author_email_required",
                message="Email is required",
                field_name="author_email",
            )
        )
    elif not EMAIL_PATTERN.match(email):
        errors.append(
            CommentValidationError(
                code="author_email_invalid",
                message="Please enter a valid email address",
                field_name="author_email",
            )
        )

    content = (inp.content or "").strip()
    if not content:
        errors.append(
            CommentValidationError(
                code="content_required",
                message="Comment is required",
                field_name="content",
            )
        )
    elif len(content) < min_content_length:
        errors.append(
            CommentValidationError(
                code="content_too_short",
                message=f"Comment must be at least {min_content_length} characters",
                field_name="content",
            )
        )
    elif len(content) > max_content_length:
        errors.append(
            CommentValidationError(
                code="content_too_long",
                message=f"Comment must be at most {max_content_length} characters",
                field_name="content",
            )
        )

    return errors


def build_thread(
    top_level: Iterable[Comment],
    replies_for: Callable[[UUID], Iterable[Comment]],
) -> tuple[TopLevel, ...]:
    """Assemble TopLevel nodes; replies_for is only asked about top-level ids."""
    thread: list[TopLevel] = []
    for comment in top_level:
        if comment.parent_id is not None:
            continue
        replies = tuple(
            Reply(comment=r, parent_id=comment.id)
            for r in replies_for(comment.id)
            if r.parent_id == comment.id
        )
        thread.append(TopLevel(comment=comment, replies=replies))
    return tuple(thread)


def moderation_counts(comments: Iterable[Comment]) -> ModerationCounts:
    pending = approved = spam = 0
    for c in comments:
        state = effective_state(c)
        if state is CommentState.SPAM:
            spam += 1
        elif state is CommentState.APPROVED:
            approved += 1
        else:
            pending += 1
    return ModerationCounts(
        pending=pending, approved=approved, spam=spam, total=pending + approved + spam
    )


def filter_comments(
    comments: Iterable[Comment],
    status: CommentState | None = None,
    search: str | None = None,
    article_id: UUID | None = None,
) -> list[Comment]:
    """Admin list filter: status, article and a case-insensitive search."""
    needle = search.strip().lower() if search else ""
    result = []
    for c in comments:
        if status is not None and effective_state(c) is not status:
            continue
        if article_id is not None and c.article_id != article_id:
            continue
        if needle and not (
            needle in c.content.lower()
            or needle in c.author_name.lower()
            or needle in c.author_email.lower()
        ):
            continue
        result.append(c)
    return result


# --- Moderation Service ---


class ModerationService:
    """Comment submission, moderation commands and thread reads."""

    def __init__(
        self,
        store: CommentStorePort,
        articles: ArticleReadPort | None = None,
        time_port: TimePort | None = None,
        sink: EventSinkPort | None = None,
        delete_with_replies: DeletePolicy = "forbid",
        min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
    ) -> None:
        self._store = store
        self._articles = articles
        self._time = time_port
        self._sink = sink
        self._delete_with_replies = delete_with_replies
        self._min_content_length = min_content_length
        self._max_content_length = max_content_length

    def _now(self) -> datetime:
        return self._time.now_utc() if self._time else datetime.now(UTC)

    def _emit(self, comment_id: UUID, action: str) -> None:
        if self._sink is not None:
            self._sink.emit(
                ModerationAction(comment_id=comment_id, action=action, occurred_at=self._now())
            )

    # --- Submission ---

    def submit_comment(self, inp: SubmitCommentInput) -> SubmitCommentOutput:
        """
        Store a new comment in Pending.

        Raises InvalidTransitionError when replying to a reply, to a missing
        comment, or to a comment on another article.
        """
        errors = validate_submission(inp, self._min_content_length, self._max_content_length)
        if errors:
            return SubmitCommentOutput(comment=None, errors=errors, success=False)

        if self._articles is not None:
            article = self._articles.get_article(inp.article_id)
            if article is None or not article.is_published:
                return SubmitCommentOutput(
                    comment=None,
                    errors=[
                        CommentValidationError(
                            code="article_not_found",
                            message=f"Article {inp.article_id} not found",
                            field_name="article_id",
                        )
                    ],
                    success=False,
                )

        if inp.parent_id is not None:
            parent = self._store.get_comment(inp.parent_id)
            if parent is None:
                raise InvalidTransitionError(inp.parent_id, "parent comment not found")
            if not parent.is_top_level:
                raise InvalidTransitionError(inp.parent_id, "cannot reply to a reply")
            if parent.article_id != inp.article_id:
                raise InvalidTransitionError(
                    inp.parent_id, "parent comment belongs to another article"
                )

        now = self._now()
        comment = self._store.insert_comment(
            Comment(
                article_id=inp.article_id,
                parent_id=inp.parent_id,
                author_name=inp.author_name.strip(),
                author_email=inp.author_email.strip(),
                author_ip=inp.author_ip,
                content=inp.content.strip(),
                is_approved=False,
                is_spam=False,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Comment %s submitted on article %s", comment.id, comment.article_id)
        if self._sink is not None:
            self._sink.emit(
                CommentSubmitted(
                    comment_id=comment.id, article_id=comment.article_id, occurred_at=now
                )
            )
        return SubmitCommentOutput(comment=comment)

    # --- Moderation commands ---

    def _set_flags(self, comment_id: UUID, action: str) -> Comment:
        is_approved, is_spam = flags_for(action)
        if self._store.get_comment(comment_id) is None:
            raise CommentNotFoundError(comment_id)

        updated = self._store.update_comment_flags(
            comment_id, is_approved=is_approved, is_spam=is_spam, updated_at=self._now()
        )
        if updated is None:
            # Deleted between the read and the write
            raise CommentNotFoundError(comment_id)

        logger.info("Comment %s: %s -> %s", comment_id, action, effective_state(updated).value)
        self._emit(comment_id, action)
        return updated

    def approve(self, comment_id: UUID) -> Comment:
        return self._set_flags(comment_id, "approve")

    def reject(self, comment_id: UUID) -> Comment:
        """Un-approve: the comment goes back to Pending."""
        return self._set_flags(comment_id, "reject")

    def mark_spam(self, comment_id: UUID) -> Comment:
        return self._set_flags(comment_id, "mark_spam")

    def delete(self, comment_id: UUID) -> None:
        """
        Hard-delete a comment.

        A top-level comment with replies is refused under the "forbid"
        policy. Under "cascade" the comment and its replies go in a single
        store write, so either all of them are removed or none are.
        """
        comment = self._store.get_comment(comment_id)
        if comment is None:
            raise CommentNotFoundError(comment_id)

        if comment.is_top_level:
            reply_count = self._store.count_replies(comment_id)
            if reply_count and self._delete_with_replies == "forbid":
                raise InvalidTransitionError(
                    comment_id,
                    f"comment has {reply_count} replies; delete the replies first",
                )
            if reply_count:
                removed = self._store.delete_comment_tree(comment_id)
                if not removed:
                    raise CommentNotFoundError(comment_id)
                logger.info(
                    "Comment %s deleted with %d replies", comment_id, len(removed) - 1
                )
                for cid in removed:
                    self._emit(cid, "delete")
                return

        if not self._store.delete_comment(comment_id):
            raise CommentNotFoundError(comment_id)

        logger.info("Comment %s deleted", comment_id)
        self._emit(comment_id, "delete")

    def apply(self, action: ModerationActionKind, comment_id: UUID) -> Comment | None:
        """Dispatch a single moderation command by name."""
        if action == "approve":
            return self.approve(comment_id)
        elif action == "reject":
            return self.reject(comment_id)
        elif action == "mark_spam":
            return self.mark_spam(comment_id)
        elif action == "delete":
            self.delete(comment_id)
            return None
        else:
            raise ValueError(f"Unknown moderation action: {action}")

    def bulk(self, action: ModerationActionKind, comment_ids: Iterable[UUID]) -> BulkResult:
        """
        Apply one action to many comments, independently per item.

        Duplicate ids are processed once.
        """
        if action not in _FLAGS and action != "delete":
            raise ValueError(f"Unknown moderation action: {action}")

        result = BulkResult(action=action)
        for comment_id in dict.fromkeys(comment_ids):
            try:
                self.apply(action, comment_id)
            except NewsdeskError as e:
                logger.warning("Bulk %s failed for comment %s: %s", action, comment_id, e)
                result.failed.append(comment_id)
                result.errors[comment_id] = str(e)
            else:
                result.succeeded.append(comment_id)
        return result

    def bulk_approve(self, comment_ids: Iterable[UUID]) -> BulkResult:
        return self.bulk("approve", comment_ids)

    def bulk_reject(self, comment_ids: Iterable[UUID]) -> BulkResult:
        return self.bulk("reject", comment_ids)

    def bulk_mark_spam(self, comment_ids: Iterable[UUID]) -> BulkResult:
        return self.bulk("mark_spam", comment_ids)

    def bulk_delete(self, comment_ids: Iterable[UUID]) -> BulkResult:
        return self.bulk("delete", comment_ids)

    # --- Reads ---

    def materialize_thread(self, article_id: UUID) -> tuple[TopLevel, ...]:
        """Approved comments of an article, one level of replies deep."""
        top_level = self._store.list_comments(
            {"article_id": article_id, "parent_id": None, "is_approved": True, "is_spam": False},
            order_by="created_at",
            descending=True,
        )
        return build_thread(
            top_level,
            lambda parent_id: self._store.list_comments(
                {"parent_id": parent_id, "is_approved": True, "is_spam": False},
                order_by="created_at",
                descending=False,
            ),
        )

    def list_comments(self, inp: CommentFilterInput) -> list[Comment]:
        """Admin moderation queue, newest first."""
        filters = {"article_id": inp.article_id} if inp.article_id else None
        comments = self._store.list_comments(filters, order_by="created_at", descending=True)
        return filter_comments(comments, status=inp.status, search=inp.search)

    def counts(self) -> ModerationCounts:
        return moderation_counts(self._store.list_comments())


def create_moderation_service(
    store: CommentStorePort,
    articles: ArticleReadPort | None = None,
    time_port: TimePort | None = None,
    sink: EventSinkPort | None = None,
    delete_with_replies: DeletePolicy = "forbid",
    min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
) -> ModerationService:
    """Factory function to create a moderation service."""
    return ModerationService(
        store,
        articles=articles,
        time_port=time_port,
        sink=sink,
        delete_with_replies=delete_with_replies,
        min_content_length=min_content_length,
        max_content_length=max_content_length,
    )
