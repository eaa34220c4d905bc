"""
Admin Analytics API.

Serves the dashboard snapshots kept by the refresh coordinator. A snapshot
that has not been computed yet (or whose last refresh failed) is computed
on the request. A metric that cannot be computed answers 503 naming it.
"""

from collections.abc import Callable
from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from newsdesk.adapters.event_log import RecentEventLog
from newsdesk.api.deps import get_aggregation_engine, get_event_log, get_refresh_coordinator
from newsdesk.components.analytics import (
    AdMetrics,
    AggregationEngine,
    ArticleMetrics,
    ArticleStat,
    LiveMetrics,
    OverviewMetrics,
    tally_events,
)
from newsdesk.components.realtime import RefreshCoordinator
from newsdesk.core.entities import AdClick, AdImpression, EngagementEvent, ViewRecorded
from newsdesk.core.errors import AggregationError

router = APIRouter()


# --- Response Models ---


class ArticleStatResponse(BaseModel):
    article_id: str
    title: str
    category: str
    published_at: datetime | None
    views: int
    views_today: int
    views_this_week: int
    comments: int


class TrendPointResponse(BaseModel):
    day: date
    count: int


class CategoryStatResponse(BaseModel):
    category: str
    article_count: int
    total_views: int
    avg_views: int


class ArticleMetricsResponse(BaseModel):
    top_viewed: list[ArticleStatResponse]
    top_commented: list[ArticleStatResponse]
    publication_trend: list[TrendPointResponse]
    category_performance: list[CategoryStatResponse]
    total_articles: int
    total_views: int
    skipped_orphans: int
    computed_at: datetime | None


class AdPerformanceResponse(BaseModel):
    ad_id: str
    name: str
    placement: str
    state: str
    impressions: int
    clicks: int
    ctr: float


class AdMetricsResponse(BaseModel):
    total_clicks: int
    total_impressions: int
    ctr: float
    data_quality_warning: bool
    total_ads: int
    active_ads: int
    ads: list[AdPerformanceResponse]
    computed_at: datetime | None


class LiveMetricsResponse(BaseModel):
    """current_visitors is an approximation (distinct recent viewer IPs)."""

    current_visitors: int
    today_views: int
    today_comments: int
    active_articles: int
    computed_at: datetime | None


class CategoryCountResponse(BaseModel):
    category: str
    article_count: int


class ActivityItemResponse(BaseModel):
    kind: str
    ref_id: str
    title: str
    description: str
    occurred_at: datetime
    author: str | None


class OverviewMetricsResponse(BaseModel):
    total_articles: int
    total_views: int
    total_comments: int
    total_ad_clicks: int
    total_ad_impressions: int
    engagement_rate: float
    engagement_rate_percent: int
    popular_categories: list[CategoryCountResponse]
    activity_feed: list[ActivityItemResponse]
    computed_at: datetime | None


class RefreshResponse(BaseModel):
    refreshed: list[str]
    failed: dict[str, str]
    state: str


class EventItem(BaseModel):
    kind: str
    occurred_at: datetime
    ref_id: str


class EventsResponse(BaseModel):
    counts: dict[str, int]
    items: list[EventItem]


# --- Helpers ---


def _snapshot(
    name: str,
    coordinator: RefreshCoordinator,
    compute: Callable[[], Any],
) -> Any:
    entry = coordinator.cache.get(name)
    if entry is not None and entry.value is not None and entry.error is None:
        return entry.value
    try:
        value = compute()
    except AggregationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Could not compute {e.metric} metrics",
        ) from e
    coordinator.cache.set(name, value)
    return value


def _event_ref(event: EngagementEvent) -> UUID:
    if isinstance(event, ViewRecorded):
        return event.article_id
    if isinstance(event, AdImpression | AdClick):
        return event.ad_id
    return event.comment_id


def _article_stat(s: ArticleStat) -> ArticleStatResponse:
    return ArticleStatResponse(
        article_id=str(s.article_id),
        title=s.title,
        category=s.category,
        published_at=s.published_at,
        views=s.views,
        views_today=s.views_today,
        views_this_week=s.views_this_week,
        comments=s.comments,
    )


# --- Endpoints ---


@router.get("/articles", response_model=ArticleMetricsResponse)
def get_article_metrics(
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> ArticleMetricsResponse:
    m: ArticleMetrics = _snapshot("articles", coordinator, engine.compute_article_metrics)
    return ArticleMetricsResponse(
        top_viewed=[_article_stat(s) for s in m.top_viewed],
        top_commented=[_article_stat(s) for s in m.top_commented],
        publication_trend=[
            TrendPointResponse(day=p.day, count=p.count) for p in m.publication_trend
        ],
        category_performance=[
            CategoryStatResponse(
                category=c.category,
                article_count=c.article_count,
                total_views=c.total_views,
                avg_views=c.avg_views,
            )
            for c in m.category_performance
        ],
        total_articles=m.total_articles,
        total_views=m.total_views,
        skipped_orphans=m.skipped_orphans,
        computed_at=m.computed_at,
    )


@router.get("/ads", response_model=AdMetricsResponse)
def get_ad_metrics(
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> AdMetricsResponse:
    m: AdMetrics = _snapshot("ads", coordinator, engine.compute_ad_metrics)
    return AdMetricsResponse(
        total_clicks=m.total_clicks,
        total_impressions=m.total_impressions,
        ctr=m.ctr,
        data_quality_warning=m.data_quality_warning,
        total_ads=m.total_ads,
        active_ads=m.active_ads,
        ads=[
            AdPerformanceResponse(
                ad_id=str(a.ad_id),
                name=a.name,
                placement=a.placement,
                state=a.state,
                impressions=a.impressions,
                clicks=a.clicks,
                ctr=a.ctr,
            )
            for a in m.ads
        ],
        computed_at=m.computed_at,
    )


@router.get("/live", response_model=LiveMetricsResponse)
def get_live_metrics(
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> LiveMetricsResponse:
    m: LiveMetrics = _snapshot("live", coordinator, engine.compute_live_metrics)
    return LiveMetricsResponse(
        current_visitors=m.current_visitors,
        today_views=m.today_views,
        today_comments=m.today_comments,
        active_articles=m.active_articles,
        computed_at=m.computed_at,
    )


@router.get("/overview", response_model=OverviewMetricsResponse)
def get_overview_metrics(
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
    engine: AggregationEngine = Depends(get_aggregation_engine),
) -> OverviewMetricsResponse:
    m: OverviewMetrics = _snapshot("overview", coordinator, engine.compute_overview_metrics)
    return OverviewMetricsResponse(
        total_articles=m.total_articles,
        total_views=m.total_views,
        total_comments=m.total_comments,
        total_ad_clicks=m.total_ad_clicks,
        total_ad_impressions=m.total_ad_impressions,
        engagement_rate=m.engagement_rate,
        engagement_rate_percent=m.engagement_rate_percent,
        popular_categories=[
            CategoryCountResponse(category=c.category, article_count=c.article_count)
            for c in m.popular_categories
        ],
        activity_feed=[
            ActivityItemResponse(
                kind=i.kind,
                ref_id=str(i.ref_id),
                title=i.title,
                description=i.description,
                occurred_at=i.occurred_at,
                author=i.author,
            )
            for i in m.activity_feed
        ],
        computed_at=m.computed_at,
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh_metrics(
    target: list[str] | None = Query(None),
    coordinator: RefreshCoordinator = Depends(get_refresh_coordinator),
) -> RefreshResponse:
    """Recompute snapshots now. Failures are reported per metric."""
    try:
        result = coordinator.refresh(target)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return RefreshResponse(
        refreshed=result.refreshed,
        failed=result.failed,
        state=coordinator.state.value,
    )


@router.get("/events", response_model=EventsResponse)
def recent_events(
    limit: int = Query(50, ge=1, le=1000),
    event_log: RecentEventLog = Depends(get_event_log),
) -> EventsResponse:
    """Most recent engagement events accepted by this process."""
    events = event_log.recent()
    counts = tally_events(events)
    items = []
    for event in events[:limit]:
        items.append(
            EventItem(
                kind=event.kind.value,
                occurred_at=event.occurred_at,
                ref_id=str(_event_ref(event)),
            )
        )
    return EventsResponse(counts={k.value: v for k, v in counts.items()}, items=items)
