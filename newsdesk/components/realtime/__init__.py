"""
Realtime component - Debounced dashboard refresh from the change feed.
"""

from .component import (
    RefreshCoordinator,
    SnapshotCache,
    create_refresh_coordinator,
    dashboard_targets,
)
from .models import (
    WATCHED_TABLES,
    CoordinatorState,
    RefreshResult,
    RefreshTarget,
    SnapshotEntry,
)
from .ports import ChangeFeedPort, MetricsEnginePort, TimerFactory, TimerHandle

__all__ = [
    # Coordinator
    "RefreshCoordinator",
    "SnapshotCache",
    "create_refresh_coordinator",
    "dashboard_targets",
    # Models
    "WATCHED_TABLES",
    "CoordinatorState",
    "RefreshResult",
    "RefreshTarget",
    "SnapshotEntry",
    # Ports
    "ChangeFeedPort",
    "MetricsEnginePort",
    "TimerFactory",
    "TimerHandle",
]
