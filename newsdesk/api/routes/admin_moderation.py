"""
Admin Comment Moderation API.

Every command reports its own outcome. Bulk commands return the ids that
succeeded and failed instead of failing as a whole.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from newsdesk.api.deps import get_moderation_service
from newsdesk.components.moderation import (
    CommentFilterInput,
    CommentState,
    ModerationService,
    effective_state,
)
from newsdesk.core.entities import Comment
from newsdesk.core.errors import CommentNotFoundError, InvalidTransitionError, StoreError

router = APIRouter()


# --- Request/Response Models ---


class AdminCommentResponse(BaseModel):
    id: str
    article_id: str
    parent_id: str | None
    author_name: str
    author_email: str
    author_ip: str
    content: str
    status: str
    is_approved: bool
    is_spam: bool
    created_at: datetime
    updated_at: datetime


class ModerationCountsResponse(BaseModel):
    pending: int
    approved: int
    spam: int
    total: int


class BulkRequest(BaseModel):
    action: Literal["approve", "reject", "mark_spam", "delete"]
    ids: list[UUID] = Field(..., min_length=1)


class BulkResponse(BaseModel):
    action: str
    succeeded: list[str]
    failed: list[str]
    errors: dict[str, str]


def _to_response(comment: Comment) -> AdminCommentResponse:
    return AdminCommentResponse(
        id=str(comment.id),
        article_id=str(comment.article_id),
        parent_id=str(comment.parent_id) if comment.parent_id else None,
        author_name=comment.author_name,
        author_email=comment.author_email,
        author_ip=comment.author_ip,
        content=comment.content,
        status=effective_state(comment).value,
        is_approved=comment.is_approved,
        is_spam=comment.is_spam,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
    )


def _http_error(e: InvalidTransitionError | StoreError) -> HTTPException:
    if isinstance(e, CommentNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Store unavailable: {e}",
    )


# --- Queries ---


@router.get("", response_model=list[AdminCommentResponse])
def list_comments(
    status_filter: CommentState | None = Query(None, alias="status"),
    search: str | None = Query(None),
    article_id: UUID | None = Query(None),
    service: ModerationService = Depends(get_moderation_service),
) -> list[AdminCommentResponse]:
    """Moderation queue, newest first."""
    try:
        comments = service.list_comments(
            CommentFilterInput(status=status_filter, search=search, article_id=article_id)
        )
    except StoreError as e:
        raise _http_error(e) from e
    return [_to_response(c) for c in comments]


@router.get("/counts", response_model=ModerationCountsResponse)
def get_counts(
    service: ModerationService = Depends(get_moderation_service),
) -> ModerationCountsResponse:
    try:
        counts = service.counts()
    except StoreError as e:
        raise _http_error(e) from e
    return ModerationCountsResponse(
        pending=counts.pending,
        approved=counts.approved,
        spam=counts.spam,
        total=counts.total,
    )


# --- Commands ---


@router.post("/bulk", response_model=BulkResponse)
def bulk_moderate(
    body: BulkRequest,
    service: ModerationService = Depends(get_moderation_service),
) -> BulkResponse:
    result = service.bulk(body.action, body.ids)
    return BulkResponse(
        action=result.action,
        succeeded=[str(i) for i in result.succeeded],
        failed=[str(i) for i in result.failed],
        errors={str(k): v for k, v in result.errors.items()},
    )


@router.post("/{comment_id}/approve", response_model=AdminCommentResponse)
def approve_comment(
    comment_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
) -> AdminCommentResponse:
    try:
        return _to_response(service.approve(comment_id))
    except (InvalidTransitionError, StoreError) as e:
        raise _http_error(e) from e


@router.post("/{comment_id}/reject", response_model=AdminCommentResponse)
def reject_comment(
    comment_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
) -> AdminCommentResponse:
    """Un-approve: the comment goes back to pending."""
    try:
        return _to_response(service.reject(comment_id))
    except (InvalidTransitionError, StoreError) as e:
        raise _http_error(e) from e


@router.post("/{comment_id}/spam", response_model=AdminCommentResponse)
def mark_comment_spam(
    comment_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
) -> AdminCommentResponse:
    try:
        return _to_response(service.mark_spam(comment_id))
    except (InvalidTransitionError, StoreError) as e:
        raise _http_error(e) from e


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
) -> Response:
    try:
        service.delete(comment_id)
    except (InvalidTransitionError, StoreError) as e:
        raise _http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
