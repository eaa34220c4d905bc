"""
Realtime refresh coordinator port definitions.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from newsdesk.core.ports.feed import ChangeFeedPort, SubscriptionError, SubscriptionPort


class TimerHandle(Protocol):
    """One-shot timer (threading.Timer compatible)."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]

__all__ = [
    "MetricsEnginePort",
    "ChangeFeedPort",
    "SubscriptionError",
    "SubscriptionPort",
    "TimerFactory",
    "TimerHandle",
]


class MetricsEnginePort(Protocol):
    """The aggregation engine, as seen by the coordinator."""

    def compute_article_metrics(self) -> object: ...

    def compute_ad_metrics(self) -> object: ...

    def compute_live_metrics(self) -> object: ...

    def compute_overview_metrics(self) -> object: ...
