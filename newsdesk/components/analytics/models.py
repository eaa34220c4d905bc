"""
Aggregation engine output models.

These are the dashboard snapshots: recomputed on demand from the store and
never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class ArticleStat:
    """Per-article engagement numbers."""

    article_id: UUID
    title: str
    category: str
    published_at: datetime | None
    views: int = 0
    views_today: int = 0
    views_this_week: int = 0
    comments: int = 0


@dataclass(frozen=True)
class TrendPoint:
    """Articles published on one site-local calendar day."""

    day: date
    count: int


@dataclass(frozen=True)
class CategoryStat:
    category: str
    article_count: int
    total_views: int
    avg_views: int  # round-half-up of total_views / article_count


@dataclass(frozen=True)
class ArticleMetrics:
    top_viewed: list[ArticleStat]
    top_commented: list[ArticleStat]
    publication_trend: list[TrendPoint]
    category_performance: list[CategoryStat]
    total_articles: int
    total_views: int
    skipped_orphans: int = 0
    computed_at: datetime | None = None


@dataclass(frozen=True)
class AdPerformance:
    ad_id: UUID
    name: str
    placement: str
    state: str
    impressions: int
    clicks: int
    ctr: float


@dataclass(frozen=True)
class AdMetrics:
    """
    Ad totals. ctr is clicks / impressions clamped to [0, 1]; 0 with no
    impressions. data_quality_warning is set when clicks exceed impressions.
    """

    total_clicks: int
    total_impressions: int
    ctr: float
    data_quality_warning: bool = False
    total_ads: int = 0
    active_ads: int = 0
    ads: list[AdPerformance] = field(default_factory=list)
    computed_at: datetime | None = None


@dataclass(frozen=True)
class LiveMetrics:
    """
    Live dashboard numbers.

    current_visitors is an approximation: distinct viewer IPs with a
    recorded view in a short trailing window. It is not a session count.
    """

    current_visitors: int
    today_views: int
    today_comments: int
    active_articles: int
    computed_at: datetime | None = None


@dataclass(frozen=True)
class CategoryCount:
    """Published articles in one category."""

    category: str
    article_count: int


@dataclass(frozen=True)
class ActivityItem:
    kind: str  # article | comment
    ref_id: UUID
    title: str
    description: str
    occurred_at: datetime
    author: str | None = None


@dataclass(frozen=True)
class OverviewMetrics:
    """
    Site-wide totals for the admin overview.

    engagement_rate is approved comments / views, 0 with no views. It is not
    clamped: a quiet article with a lively thread can exceed 1.
    engagement_rate_percent is the same value as a half-up rounded percent.
    """

    total_articles: int
    total_views: int
    total_comments: int
    total_ad_clicks: int
    total_ad_impressions: int
    engagement_rate: float
    engagement_rate_percent: int
    popular_categories: list[CategoryCount] = field(default_factory=list)
    activity_feed: list[ActivityItem] = field(default_factory=list)
    computed_at: datetime | None = None
