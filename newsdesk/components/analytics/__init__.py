"""
Analytics component - Dashboard aggregation.
"""

from .component import (
    AggregationEngine,
    activity_feed,
    build_article_stats,
    category_performance,
    create_aggregation_engine,
    engagement_rate,
    popular_categories,
    publication_trend,
    rank_articles,
    round_half_up,
    tally_events,
)
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

__all__ = [
    # Engine
    "AggregationEngine",
    "create_aggregation_engine",
    # Pure functions
    "activity_feed",
    "build_article_stats",
    "category_performance",
    "engagement_rate",
    "popular_categories",
    "publication_trend",
    "rank_articles",
    "round_half_up",
    "tally_events",
    # Models
    "UNCATEGORIZED",
    "ActivityItem",
    "AdMetrics",
    "AdPerformance",
    "ArticleMetrics",
    "ArticleStat",
    "CategoryCount",
    "CategoryStat",
    "LiveMetrics",
    "OverviewMetrics",
    "TrendPoint",
    # Ports
    "AdStorePort",
    "ArticleReadPort",
    "CommentStorePort",
    "TimePort",
    "ViewStorePort",
]
