"""
Public engagement API.

Telemetry endpoints (views, impressions, clicks) always answer 200: store
failures are logged server-side and never reach the reader.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from newsdesk.adapters.event_log import RecentEventLog
from newsdesk.api.deps import (
    get_ad_repo,
    get_article_repo,
    get_client_ip,
    get_event_log,
    get_moderation_service,
    get_rules,
    get_time_port,
    get_view_repo,
)
from newsdesk.components.ads import EligibleAdsInput, run_eligible_ads
from newsdesk.components.engagement import (
    RecordAdClickInput,
    RecordAdImpressionInput,
    RecordViewInput,
    run_record_ad_click,
    run_record_ad_impression,
    run_record_view,
)
from newsdesk.components.moderation import ModerationService, SubmitCommentInput
from newsdesk.core.entities import PLACEMENTS, Comment, TopLevel
from newsdesk.core.errors import InvalidTransitionError, StoreError
from newsdesk.core.ports import AdStorePort, ArticleReadPort, TimePort, ViewStorePort
from newsdesk.rules.models import Rules

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Request/Response Models ---


class RecordViewResponse(BaseModel):
    recorded: bool


class AdResponse(BaseModel):
    """Public ad payload (no counters)."""

    id: str
    name: str
    image_url: str
    link_url: str
    placement: str


class VisibilityPolicyResponse(BaseModel):
    threshold: float
    root_margin_px: int


class AdEventResponse(BaseModel):
    counted: bool
    reason: str | None = None
    target_url: str | None = None


class PublicCommentResponse(BaseModel):
    """Comment as shown to readers (no email or IP)."""

    id: str
    author_name: str
    content: str
    created_at: datetime


class ThreadItemResponse(PublicCommentResponse):
    replies: list[PublicCommentResponse] = Field(default_factory=list)


class SubmitCommentRequest(BaseModel):
    author_name: str = ""
    author_email: str = ""
    content: str = ""
    parent_id: UUID | None = None


class SubmitCommentResponse(BaseModel):
    id: str
    status: str
    message: str


def _public_comment(comment: Comment) -> PublicCommentResponse:
    return PublicCommentResponse(
        id=str(comment.id),
        author_name=comment.author_name,
        content=comment.content,
        created_at=comment.created_at,
    )


def _thread_item(node: TopLevel) -> ThreadItemResponse:
    return ThreadItemResponse(
        **_public_comment(node.comment).model_dump(),
        replies=[_public_comment(r.comment) for r in node.replies],
    )


# --- Views ---


@router.post("/articles/{article_id}/views", response_model=RecordViewResponse)
def record_view(
    article_id: UUID,
    request: Request,
    views: ViewStorePort = Depends(get_view_repo),
    articles: ArticleReadPort = Depends(get_article_repo),
    time_port: TimePort = Depends(get_time_port),
    event_log: RecentEventLog = Depends(get_event_log),
    rules: Rules = Depends(get_rules),
) -> RecordViewResponse:
    """Record one view per viewer per article per day."""
    result = run_record_view(
        RecordViewInput(article_id=article_id, viewer_ip=get_client_ip(request)),
        store=views,
        articles=articles,
        time_port=time_port,
        sink=event_log,
        backoff_seconds=tuple(rules.engagement.retry_backoff_seconds),
    )
    return RecordViewResponse(recorded=result.recorded)


# --- Ads ---


@router.get("/ads", response_model=list[AdResponse])
def list_ads(
    placement: str | None = Query(None),
    ads: AdStorePort = Depends(get_ad_repo),
    time_port: TimePort = Depends(get_time_port),
) -> list[AdResponse]:
    """Ads currently Active, optionally for one placement."""
    if placement is not None and placement not in PLACEMENTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown placement: {placement}",
        )
    try:
        result = run_eligible_ads(
            EligibleAdsInput(placement=placement), store=ads, time_port=time_port
        )
    except StoreError as e:
        logger.warning("Ad list unavailable: %s", e)
        return []
    return [
        AdResponse(
            id=str(v.ad.id),
            name=v.ad.name,
            image_url=v.ad.image_url,
            link_url=v.ad.link_url,
            placement=v.ad.placement,
        )
        for v in result.ads
    ]


@router.get("/ads/visibility-policy", response_model=VisibilityPolicyResponse)
def visibility_policy(rules: Rules = Depends(get_rules)) -> VisibilityPolicyResponse:
    """Client rule for firing one impression per visibility session."""
    return VisibilityPolicyResponse(
        threshold=rules.engagement.visibility_threshold,
        root_margin_px=rules.engagement.visibility_root_margin_px,
    )


@router.post("/ads/{ad_id}/impression", response_model=AdEventResponse)
def record_impression(
    ad_id: UUID,
    ads: AdStorePort = Depends(get_ad_repo),
    time_port: TimePort = Depends(get_time_port),
    event_log: RecentEventLog = Depends(get_event_log),
    rules: Rules = Depends(get_rules),
) -> AdEventResponse:
    result = run_record_ad_impression(
        RecordAdImpressionInput(ad_id=ad_id),
        store=ads,
        time_port=time_port,
        sink=event_log,
        backoff_seconds=tuple(rules.engagement.retry_backoff_seconds),
    )
    return AdEventResponse(counted=result.counted, reason=result.reason)


@router.post("/ads/{ad_id}/click", response_model=AdEventResponse)
def record_click(
    ad_id: UUID,
    ads: AdStorePort = Depends(get_ad_repo),
    time_port: TimePort = Depends(get_time_port),
    event_log: RecentEventLog = Depends(get_event_log),
    rules: Rules = Depends(get_rules),
) -> AdEventResponse:
    """Count a click and return where the reader should be sent."""
    result = run_record_ad_click(
        RecordAdClickInput(ad_id=ad_id),
        store=ads,
        time_port=time_port,
        sink=event_log,
        backoff_seconds=tuple(rules.engagement.retry_backoff_seconds),
    )
    return AdEventResponse(
        counted=result.counted, reason=result.reason, target_url=result.target_url
    )


# --- Comments ---


@router.get("/articles/{article_id}/comments", response_model=list[ThreadItemResponse])
def get_comments(
    article_id: UUID,
    service: ModerationService = Depends(get_moderation_service),
) -> list[ThreadItemResponse]:
    """Approved comments, newest first, each with its replies oldest first."""
    try:
        thread = service.materialize_thread(article_id)
    except StoreError as e:
        logger.warning("Comments unavailable for article %s: %s", article_id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comments are temporarily unavailable",
        ) from e
    return [_thread_item(node) for node in thread]


@router.post(
    "/articles/{article_id}/comments",
    response_model=SubmitCommentResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_comment(
    article_id: UUID,
    body: SubmitCommentRequest,
    request: Request,
    service: ModerationService = Depends(get_moderation_service),
) -> SubmitCommentResponse:
    """Submit a comment or reply; it waits for moderation."""
    try:
        result = service.submit_comment(
            SubmitCommentInput(
                article_id=article_id,
                author_name=body.author_name,
                author_email=body.author_email,
                content=body.content,
                author_ip=get_client_ip(request),
                parent_id=body.parent_id,
            )
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except StoreError as e:
        logger.error("Comment submission failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment could not be saved, please try again",
        ) from e

    if not result.success or result.comment is None:
        if any(err.code == "article_not_found" for err in result.errors):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=result.errors[0].message,
            )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=[
                {"code": err.code, "message": err.message, "field": err.field_name}
                for err in result.errors
            ],
        )

    return SubmitCommentResponse(
        id=str(result.comment.id),
        status="pending",
        message="Thanks! Your comment will appear once it has been approved.",
    )
