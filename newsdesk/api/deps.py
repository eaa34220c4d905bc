import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends, Request

from newsdesk.adapters.change_feed import InMemoryChangeFeed
from newsdesk.adapters.event_log import RecentEventLog
from newsdesk.adapters.sqlite.repos import (
    SQLiteAdRepo,
    SQLiteArticleRepo,
    SQLiteCommentRepo,
    SQLiteViewRepo,
)
from newsdesk.adapters.time_site import SiteTimeAdapter

# Atomic components are stateless; services get their ports injected here.
from newsdesk.components.analytics import AggregationEngine
from newsdesk.components.moderation import ModerationService
from newsdesk.components.realtime import RefreshCoordinator, create_refresh_coordinator
from newsdesk.core.ports import (
    AdStorePort,
    ArticleReadPort,
    CommentStorePort,
    TimePort,
    ViewStorePort,
)
from newsdesk.rules.loader import load_rules
from newsdesk.rules.models import Rules

PROJECT_ROOT = Path(__file__).resolve().parents[2]


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("NEWSDESK_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "newsdesk.db")
        self.rules_path = Path(
            os.environ.get("NEWSDESK_RULES_PATH", str(self.base_dir / "rules.yaml"))
        )
        self.migrations_dir = PROJECT_ROOT / "migrations"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    settings = get_settings()
    if not settings.rules_path.exists():
        # Every section has defaults
        return Rules()
    return load_rules(settings.rules_path)


# --- Shared adapters (process-wide) ---
@lru_cache
def get_time_port() -> TimePort:
    return SiteTimeAdapter(get_rules().site.timezone)


@lru_cache
def get_change_feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@lru_cache
def get_event_log() -> RecentEventLog:
    return RecentEventLog(get_rules().engagement.recent_events_max)


# --- Repos ---
def get_article_repo(settings: Settings = Depends(get_settings)) -> ArticleReadPort:
    return SQLiteArticleRepo(settings.db_path, feed=get_change_feed())


def get_view_repo(settings: Settings = Depends(get_settings)) -> ViewStorePort:
    return SQLiteViewRepo(settings.db_path, feed=get_change_feed())


def get_ad_repo(settings: Settings = Depends(get_settings)) -> AdStorePort:
    return SQLiteAdRepo(settings.db_path, feed=get_change_feed())


def get_comment_repo(settings: Settings = Depends(get_settings)) -> CommentStorePort:
    return SQLiteCommentRepo(settings.db_path, feed=get_change_feed())


# --- Component Services ---
def get_moderation_service(
    comments: CommentStorePort = Depends(get_comment_repo),
    articles: ArticleReadPort = Depends(get_article_repo),
    time_port: TimePort = Depends(get_time_port),
    event_log: RecentEventLog = Depends(get_event_log),
    rules: Rules = Depends(get_rules),
) -> ModerationService:
    """Get moderation component service."""
    return ModerationService(
        comments,
        articles=articles,
        time_port=time_port,
        sink=event_log,
        delete_with_replies=rules.moderation.delete_with_replies,
        min_content_length=rules.moderation.min_content_length,
        max_content_length=rules.moderation.max_content_length,
    )


def get_aggregation_engine(
    articles: ArticleReadPort = Depends(get_article_repo),
    views: ViewStorePort = Depends(get_view_repo),
    ads: AdStorePort = Depends(get_ad_repo),
    comments: CommentStorePort = Depends(get_comment_repo),
    time_port: TimePort = Depends(get_time_port),
    rules: Rules = Depends(get_rules),
) -> AggregationEngine:
    """Get the dashboard aggregation engine."""
    return AggregationEngine(
        articles,
        views,
        ads,
        comments,
        time_port,
        top_n=rules.analytics.top_n,
        trend_days=rules.analytics.trend_days,
        live_window_minutes=rules.analytics.live_window_minutes,
        active_article_days=rules.analytics.active_article_days,
    )


@lru_cache
def get_refresh_coordinator() -> RefreshCoordinator:
    """Process-wide coordinator; started and stopped by the app lifespan."""
    settings = get_settings()
    rules = get_rules()
    feed = get_change_feed()
    engine = get_aggregation_engine(
        articles=SQLiteArticleRepo(settings.db_path),
        views=SQLiteViewRepo(settings.db_path),
        ads=SQLiteAdRepo(settings.db_path),
        comments=SQLiteCommentRepo(settings.db_path),
        time_port=get_time_port(),
        rules=rules,
    )
    return create_refresh_coordinator(
        feed,
        engine,
        debounce_seconds=rules.realtime.debounce_seconds,
        min_refresh_interval_seconds=rules.realtime.min_refresh_interval_seconds,
        subscribe_backoff_seconds=tuple(rules.realtime.subscribe_backoff_seconds),
        live_poll_seconds=rules.realtime.live_poll_seconds,
        articles_poll_seconds=rules.realtime.articles_poll_seconds,
        overview_poll_seconds=rules.realtime.overview_poll_seconds,
    )


# --- Request helpers ---
def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
