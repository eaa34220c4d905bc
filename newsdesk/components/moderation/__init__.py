"""
Moderation component - Comment submission, moderation and threads.
"""

from .component import (
    EMAIL_PATTERN,
    ModerationService,
    build_thread,
    create_moderation_service,
    effective_state,
    filter_comments,
    flags_for,
    is_visible,
    moderation_counts,
    validate_submission,
)
from .models import (
    MODERATION_ACTIONS,
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

__all__ = [
    # Service
    "ModerationService",
    "create_moderation_service",
    # Pure functions
    "build_thread",
    "effective_state",
    "filter_comments",
    "flags_for",
    "is_visible",
    "moderation_counts",
    "validate_submission",
    "EMAIL_PATTERN",
    # Models
    "MODERATION_ACTIONS",
    "BulkResult",
    "CommentFilterInput",
    "CommentState",
    "CommentValidationError",
    "DeletePolicy",
    "ModerationActionKind",
    "ModerationCounts",
    "SubmitCommentInput",
    "SubmitCommentOutput",
    # Ports
    "ArticleReadPort",
    "CommentStorePort",
    "EventSinkPort",
    "TimePort",
]
