"""
Realtime refresh coordinator models.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

WATCHED_TABLES: frozenset[str] = frozenset(
    {"articles", "comments", "article_views", "advertisements"}
)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    RECOMPUTING = "recomputing"
    POLLING = "polling"


@dataclass(frozen=True)
class RefreshTarget:
    """
    A dashboard snapshot kept fresh by the coordinator.

    recompute is called on changes to any of `tables` and, as a safety net,
    every `poll_seconds` whatever the change feed does.
    """

    name: str
    recompute: Callable[[], Any]
    tables: frozenset[str] = WATCHED_TABLES
    poll_seconds: float = 30.0


@dataclass(frozen=True)
class SnapshotEntry:
    """Latest value (or failure) of a refresh target."""

    name: str
    value: Any = None
    error: str | None = None
    refreshed_at: datetime | None = None


@dataclass(frozen=True)
class RefreshResult:
    refreshed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed
