"""
Aggregation Engine.

Builds dashboard snapshots from the store's read models. All aggregation is
commutative over unordered event sets, so the order in which views and
counters were recorded does not matter.

Rules:
- top_viewed / top_commented: ties break by most recent published_at, then
  article id. top_commented leaves out articles without comments.
- publication_trend: exactly trend_days points, oldest first, zero-filled,
  bucketed by site-local calendar day.
- category_performance: ordered by total_views, avg_views rounded half-up;
  categories with no articles never appear.
- ctr: 0 when there are no impressions, never above 1.
- engagement_rate: approved comments / views, 0 when there are no views.
- Views and comment counts that reference an article missing from the
  snapshot are skipped and counted, never fatal.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from uuid import UUID

from newsdesk.components.ads import AdState, click_through_rate, effective_state
from newsdesk.core.entities import (
    AdClick,
    AdImpression,
    Article,
    ArticleView,
    Comment,
    CommentSubmitted,
    EngagementEvent,
    EventKind,
    ModerationAction,
    ViewRecorded,
)
from newsdesk.core.errors import AggregationError, AggregationInputGap, StoreError

from .models import (
    UNCATEGORIZED,
    ActivityItem,
    AdMetrics,
    AdPerformance,
    ArticleMetrics,
    ArticleStat,
    CategoryCount,
    CategoryStat,
    LiveMetrics,
    OverviewMetrics,
    TrendPoint,
)
from .ports import AdStorePort, ArticleReadPort, CommentStorePort, TimePort, ViewStorePort

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10
DEFAULT_TREND_DAYS = 30
DEFAULT_LIVE_WINDOW_MINUTES = 5
DEFAULT_ACTIVE_ARTICLE_DAYS = 7
WEEK_DAYS = 7
ACTIVITY_PER_KIND = 3
ACTIVITY_LIMIT = 10
ACTIVITY_SNIPPET_CHARS = 100


# --- Pure Functions (Functional Core) ---


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half-up, for non-negative operands."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (2 * numerator + denominator) // (2 * denominator)


def _recency(stat: ArticleStat) -> float:
    # Unpublished sorts after everything published
    return -stat.published_at.timestamp() if stat.published_at else float("inf")


def rank_articles(
    stats: Iterable[ArticleStat],
    value: Callable[[ArticleStat], int],
    limit: int = DEFAULT_TOP_N,
) -> list[ArticleStat]:
    """Highest value first; ties by newest published_at, then id."""
    ranked = sorted(stats, key=lambda s: (-value(s), _recency(s), str(s.article_id)))
    return ranked[:limit]


def publication_trend(
    published: Iterable[datetime],
    today: date,
    to_local_date: Callable[[datetime], date],
    days: int = DEFAULT_TREND_DAYS,
) -> list[TrendPoint]:
    """Daily publication counts for the trailing window ending today."""
    start = today - timedelta(days=days - 1)
    counts: dict[date, int] = {}
    for ts in published:
        day = to_local_date(ts)
        if start <= day <= today:
            counts[day] = counts.get(day, 0) + 1
    return [
        TrendPoint(day=start + timedelta(days=i), count=counts.get(start + timedelta(days=i), 0))
        for i in range(days)
    ]


def category_performance(stats: Iterable[ArticleStat]) -> list[CategoryStat]:
    """Per-category totals, most viewed category first."""
    totals: dict[str, list[int]] = {}
    for s in stats:
        entry = totals.setdefault(s.category, [0, 0])
        entry[0] += 1
        entry[1] += s.views

    result = [
        CategoryStat(
            category=name,
            article_count=count,
            total_views=views,
            avg_views=round_half_up(views, count),
        )
        for name, (count, views) in totals.items()
        if count > 0
    ]
    return sorted(result, key=lambda c: (-c.total_views, c.category))


def engagement_rate(comments: int, views: int) -> float:
    """Approved comments per view; 0 when there are no views."""
    if views <= 0:
        return 0.0
    return comments / views


def popular_categories(articles: Iterable[Article]) -> list[CategoryCount]:
    """Published article count per category, largest first."""
    counts: dict[str, int] = {}
    for a in articles:
        name = a.category or UNCATEGORIZED
        counts[name] = counts.get(name, 0) + 1
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [CategoryCount(category=name, article_count=n) for name, n in ranked]


def _snippet(text: str, limit: int = ACTIVITY_SNIPPET_CHARS) -> str:
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def activity_feed(
    articles: Iterable[Article],
    comments: Iterable[Comment],
    per_kind: int = ACTIVITY_PER_KIND,
    limit: int = ACTIVITY_LIMIT,
) -> list[ActivityItem]:
    """
    Newest published articles and approved comments, merged newest first.

    Takes at most per_kind of each; comments are expected approved and not
    spam already.
    """
    recent_articles = sorted(
        (a for a in articles if a.published_at is not None),
        key=lambda a: a.published_at,  # type: ignore[arg-type,return-value]
        reverse=True,
    )[:per_kind]
    recent_comments = sorted(comments, key=lambda c: c.created_at, reverse=True)[:per_kind]

    items = [
        ActivityItem(
            kind="article",
            ref_id=a.id,
            title="New article published",
            description=a.title,
            occurred_at=a.published_at,  # type: ignore[arg-type]
        )
        for a in recent_articles
    ]
    items.extend(
        ActivityItem(
            kind="comment",
            ref_id=c.id,
            title="New comment",
            description=_snippet(c.content),
            occurred_at=c.created_at,
            author=c.author_name,
        )
        for c in recent_comments
    )
    items.sort(key=lambda i: (i.occurred_at, str(i.ref_id)), reverse=True)
    return items[:limit]


def build_article_stats(
    articles: Iterable[Article],
    views: Iterable[ArticleView],
    comment_counts: dict[UUID, int],
    today: str,
    week_start: str,
) -> tuple[list[ArticleStat], list[AggregationInputGap], int]:
    """
    Join articles with their views and approved comment counts.

    today and week_start are site-local days (YYYY-MM-DD). Returns the
    stats, one gap per missing article referenced, and the number of
    skipped view rows and comment counts.
    """
    by_id = {a.id: a for a in articles}
    totals: dict[UUID, list[int]] = {aid: [0, 0, 0] for aid in by_id}
    missing: set[UUID] = set()
    skipped = 0

    for v in views:
        entry = totals.get(v.article_id)
        if entry is None:
            missing.add(v.article_id)
            skipped += 1
            continue
        entry[0] += 1
        if v.view_day == today:
            entry[1] += 1
        if v.view_day >= week_start:
            entry[2] += 1

    for article_id, n in comment_counts.items():
        if article_id not in by_id:
            missing.add(article_id)
            skipped += n

    stats = [
        ArticleStat(
            article_id=a.id,
            title=a.title,
            category=a.category or UNCATEGORIZED,
            published_at=a.published_at,
            views=totals[a.id][0],
            views_today=totals[a.id][1],
            views_this_week=totals[a.id][2],
            comments=comment_counts.get(a.id, 0),
        )
        for a in by_id.values()
    ]
    gaps = [AggregationInputGap("article", aid) for aid in sorted(missing, key=str)]
    return stats, gaps, skipped


def tally_events(events: Iterable[EngagementEvent]) -> dict[EventKind, int]:
    """Count engagement events per kind; every kind is present in the result."""
    counts = {kind: 0 for kind in EventKind}
    for event in events:
        if isinstance(event, ViewRecorded):
            counts[EventKind.VIEW_RECORDED] += 1
        elif isinstance(event, AdImpression):
            counts[EventKind.AD_IMPRESSION] += 1
        elif isinstance(event, AdClick):
            counts[EventKind.AD_CLICK] += 1
        elif isinstance(event, CommentSubmitted):
            counts[EventKind.COMMENT_SUBMITTED] += 1
        elif isinstance(event, ModerationAction):
            counts[EventKind.MODERATION_ACTION] += 1
        else:
            raise ValueError(f"Unknown event type: {type(event)}")
    return counts


# --- Aggregation Engine ---


class AggregationEngine:
    """Computes article, ad, live and overview dashboard snapshots."""

    def __init__(
        self,
        articles: ArticleReadPort,
        views: ViewStorePort,
        ads: AdStorePort,
        comments: CommentStorePort,
        time_port: TimePort,
        top_n: int = DEFAULT_TOP_N,
        trend_days: int = DEFAULT_TREND_DAYS,
        live_window_minutes: int = DEFAULT_LIVE_WINDOW_MINUTES,
        active_article_days: int = DEFAULT_ACTIVE_ARTICLE_DAYS,
    ) -> None:
        self._articles = articles
        self._views = views
        self._ads = ads
        self._comments = comments
        self._time = time_port
        self.top_n = top_n
        self.trend_days = trend_days
        self.live_window_minutes = live_window_minutes
        self.active_article_days = active_article_days

    def compute_article_metrics(self, now: datetime | None = None) -> ArticleMetrics:
        now = now or self._time.now_utc()
        today = self._time.local_date(now)
        try:
            articles = self._articles.list_published_articles()
            views = self._views.list_views()
            comment_counts = self._comments.count_comments_by_article(approved_only=True)
        except StoreError as e:
            logger.error("Article metrics failed: %s", e)
            raise AggregationError("articles", e) from e

        stats, gaps, skipped = build_article_stats(
            articles,
            views,
            comment_counts,
            today=today.isoformat(),
            week_start=(today - timedelta(days=WEEK_DAYS - 1)).isoformat(),
        )
        if gaps:
            logger.warning(
                "Skipped %d orphaned rows referencing %d missing articles", skipped, len(gaps)
            )

        return ArticleMetrics(
            top_viewed=rank_articles(stats, lambda s: s.views, self.top_n),
            top_commented=rank_articles(
                [s for s in stats if s.comments > 0], lambda s: s.comments, self.top_n
            ),
            publication_trend=publication_trend(
                (a.published_at for a in articles if a.published_at is not None),
                today,
                self._time.local_date,
                self.trend_days,
            ),
            category_performance=category_performance(stats),
            total_articles=len(stats),
            total_views=sum(s.views for s in stats),
            skipped_orphans=skipped,
            computed_at=now,
        )

    def compute_ad_metrics(self, now: datetime | None = None) -> AdMetrics:
        now = now or self._time.now_utc()
        try:
            ads = self._ads.list_advertisements()
        except StoreError as e:
            logger.error("Ad metrics failed: %s", e)
            raise AggregationError("ads", e) from e

        impressions = sum(a.impressions for a in ads)
        clicks = sum(a.clicks for a in ads)
        warning = clicks > impressions
        if warning:
            logger.warning("Ad clicks (%d) exceed impressions (%d)", clicks, impressions)

        rows = [
            AdPerformance(
                ad_id=a.id,
                name=a.name,
                placement=a.placement,
                state=effective_state(a, now).value,
                impressions=a.impressions,
                clicks=a.clicks,
                ctr=click_through_rate(a.clicks, a.impressions),
            )
            for a in ads
        ]
        rows.sort(key=lambda r: (-r.clicks, -r.impressions, r.name))

        return AdMetrics(
            total_clicks=clicks,
            total_impressions=impressions,
            ctr=click_through_rate(clicks, impressions),
            data_quality_warning=warning,
            total_ads=len(ads),
            active_ads=sum(1 for r in rows if r.state == AdState.ACTIVE.value),
            ads=rows,
            computed_at=now,
        )

    def compute_live_metrics(self, now: datetime | None = None) -> LiveMetrics:
        now = now or self._time.now_utc()
        today = self._time.local_date(now)
        day_start, day_end = self._time.day_bounds_utc(today)
        try:
            current_visitors = self._views.count_distinct_viewers_since(
                now - timedelta(minutes=self.live_window_minutes)
            )
            today_views = self._views.count_views_on_day(today.isoformat())
            today_comments = self._comments.count_comments_between(
                day_start, day_end, approved_only=True
            )
            active_articles = self._articles.count_articles_published_since(
                now - timedelta(days=self.active_article_days)
            )
        except StoreError as e:
            logger.error("Live metrics failed: %s", e)
            raise AggregationError("live", e) from e

        return LiveMetrics(
            current_visitors=current_visitors,
            today_views=today_views,
            today_comments=today_comments,
            active_articles=active_articles,
            computed_at=now,
        )

    def compute_overview_metrics(self, now: datetime | None = None) -> OverviewMetrics:
        now = now or self._time.now_utc()
        try:
            articles = self._articles.list_published_articles()
            total_views = len(self._views.list_views())
            comment_counts = self._comments.count_comments_by_article(approved_only=True)
            ads = self._ads.list_advertisements()
            approved = self._comments.list_comments(
                {"is_approved": True, "is_spam": False},
                order_by="created_at",
                descending=True,
            )
        except StoreError as e:
            logger.error("Overview metrics failed: %s", e)
            raise AggregationError("overview", e) from e

        total_comments = sum(comment_counts.values())
        return OverviewMetrics(
            total_articles=len(articles),
            total_views=total_views,
            total_comments=total_comments,
            total_ad_clicks=sum(a.clicks for a in ads),
            total_ad_impressions=sum(a.impressions for a in ads),
            engagement_rate=engagement_rate(total_comments, total_views),
            engagement_rate_percent=(
                round_half_up(100 * total_comments, total_views) if total_views else 0
            ),
            popular_categories=popular_categories(articles),
            activity_feed=activity_feed(articles, approved),
            computed_at=now,
        )



def create_aggregation_engine(
    articles: ArticleReadPort,
    views: ViewStorePort,
    ads: AdStorePort,
    comments: CommentStorePort,
    time_port: TimePort,
    **settings: int,
) -> AggregationEngine:
    """Factory function to create an aggregation engine."""
    return AggregationEngine(articles, views, ads, comments, time_port, **settings)
