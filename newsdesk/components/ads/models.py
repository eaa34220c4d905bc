"""
Ad lifecycle component models.

The lifecycle state is derived from is_active, start_date, end_date and the
current time. It is never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from newsdesk.core.entities import Advertisement


class AdState(str, Enum):
    """Effective lifecycle state of an advertisement."""

    INACTIVE = "inactive"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    EXPIRED = "expired"


# --- Input Models ---


@dataclass(frozen=True)
class EligibleAdsInput:
    """Input for the public display list."""

    placement: str | None = None
    now: datetime | None = None


@dataclass(frozen=True)
class FilterAdsInput:
    """Admin list filters. All filters are optional and combine with AND."""

    search: str | None = None
    placement: str | None = None
    state: AdState | None = None
    now: datetime | None = None


# --- Output Models ---


@dataclass(frozen=True)
class AdView:
    """Advertisement together with its derived state."""

    ad: Advertisement
    state: AdState
    ctr: float


@dataclass(frozen=True)
class AdListOutput:
    ads: list[AdView] = field(default_factory=list)


@dataclass(frozen=True)
class AdStatsOutput:
    """Headline numbers for the ad management page."""

    total_ads: int
    active_ads: int
    total_impressions: int
    total_clicks: int
    ctr: float
