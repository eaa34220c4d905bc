"""
Engagement collector input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from newsdesk.core.entities import ArticleView

# --- Validation Error ---


@dataclass(frozen=True)
class EngagementValidationError:
    """Engagement validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class RecordViewInput:
    """A page render of an article by a viewer."""

    article_id: UUID
    viewer_ip: str
    timestamp: datetime | None = None  # Optional, defaults to now


@dataclass(frozen=True)
class RecordAdImpressionInput:
    """
    One visibility session of an ad element.

    The client fires this once per session; the collector counts every call.
    """

    ad_id: UUID
    timestamp: datetime | None = None


@dataclass(frozen=True)
class RecordAdClickInput:
    ad_id: UUID
    timestamp: datetime | None = None


# --- Output Models ---


@dataclass(frozen=True)
class RecordViewOutput:
    """
    recorded is True only when this call inserted the day's view.

    A store failure yields recorded=False with an error; it is never raised.
    """

    recorded: bool
    view: ArticleView | None = None
    errors: list[EngagementValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class AdCounterOutput:
    """
    Result of an impression or click.

    reason is set when nothing was counted: not_found, inactive, scheduled,
    expired or store_unavailable. target_url carries the ad's link for click
    navigation and is filled whenever the ad could be read.
    """

    ad_id: UUID
    counted: bool
    value: int | None = None
    reason: str | None = None
    target_url: str | None = None
    errors: list[EngagementValidationError] = field(default_factory=list)
    success: bool = True
