"""
Bounded in-memory engagement event log (EventSinkPort implementation).

Keeps the most recent accepted events for the admin activity view. Not a
source of truth: counters live in the store.
"""

from __future__ import annotations

import threading
from collections import deque

from newsdesk.core.entities import EngagementEvent


class RecentEventLog:
    """Thread-safe ring buffer of engagement events."""

    def __init__(self, max_events: int = 1000) -> None:
        self._lock = threading.Lock()
        self._events: deque[EngagementEvent] = deque(maxlen=max_events)

    def emit(self, event: EngagementEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self, limit: int | None = None) -> list[EngagementEvent]:
        """Most recent events, newest first."""
        with self._lock:
            events = list(self._events)
        events.reverse()
        return events[:limit] if limit is not None else events

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
