from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class SiteRules(BaseModel):
    timezone: str = "Europe/London"

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v


class EngagementRules(BaseModel):
    retry_backoff_seconds: list[float] = Field(default_factory=lambda: [0.05, 0.2, 0.5])
    visibility_threshold: float = Field(default=0.5, gt=0, le=1)
    visibility_root_margin_px: int = Field(default=50, ge=0)
    recent_events_max: int = Field(default=1000, gt=0)


class ModerationRules(BaseModel):
    min_content_length: int = Field(default=10, ge=1)
    max_content_length: int = Field(default=5000, ge=1)
    delete_with_replies: Literal["forbid", "cascade"] = "forbid"


class AnalyticsRules(BaseModel):
    top_n: int = Field(default=10, gt=0)
    # Publication trend is always a 30-day window
    trend_days: Literal[30] = 30
    live_window_minutes: int = Field(default=5, gt=0)
    active_article_days: int = Field(default=7, gt=0)


class RealtimeRules(BaseModel):
    debounce_seconds: float = Field(default=1.0, ge=0)
    min_refresh_interval_seconds: float = Field(default=2.0, ge=0)
    live_poll_seconds: float = Field(default=30.0, gt=0)
    articles_poll_seconds: float = Field(default=120.0, gt=0)
    overview_poll_seconds: float = Field(default=300.0, gt=0)
    subscribe_backoff_seconds: list[float] = Field(default_factory=lambda: [1.0, 5.0, 15.0])

    @field_validator("subscribe_backoff_seconds")
    @classmethod
    def _non_negative(cls, v: list[float]) -> list[float]:
        if any(s < 0 for s in v):
            raise ValueError("backoff delays must be non-negative")
        return v


class Rules(BaseModel):
    site: SiteRules = Field(default_factory=SiteRules)
    engagement: EngagementRules = Field(default_factory=EngagementRules)
    moderation: ModerationRules = Field(default_factory=ModerationRules)
    analytics: AnalyticsRules = Field(default_factory=AnalyticsRules)
    realtime: RealtimeRules = Field(default_factory=RealtimeRules)
