"""
In-process change feed (ChangeFeedPort implementation).

Stands in for the store's realtime channel: the SQLite repos publish a
ChangeEvent after every committed write, and subscribers receive events for
the tables they asked for. Delivery is synchronous on the writer's thread;
handlers must be quick (the refresh coordinator only schedules work).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from itertools import count

from newsdesk.core.entities import ChangeEvent
from newsdesk.core.ports.feed import ChangeHandler, SubscriptionError

logger = logging.getLogger(__name__)


@dataclass
class _Subscriber:
    key: int
    tables: frozenset[str]
    handler: ChangeHandler


class InMemorySubscription:
    """Subscription handle; unsubscribing twice is harmless."""

    def __init__(self, feed: InMemoryChangeFeed, key: int) -> None:
        self._feed = feed
        self._key = key

    def unsubscribe(self) -> None:
        self._feed._remove(self._key)


class InMemoryChangeFeed:
    """Thread-safe fan-out of change events keyed by table name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, _Subscriber] = {}
        self._ids = count(1)
        self._available = True

    def subscribe(self, tables: Iterable[str], handler: ChangeHandler) -> InMemorySubscription:
        if not self._available:
            raise SubscriptionError("change feed unavailable")
        key = next(self._ids)
        with self._lock:
            self._subscribers[key] = _Subscriber(key, frozenset(tables), handler)
        return InMemorySubscription(self, key)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscribers.values() if event.table in s.tables]
        for subscriber in targets:
            try:
                subscriber.handler(event)
            except Exception:
                logger.exception("Change handler failed for %s %s", event.operation, event.table)

    def set_available(self, available: bool) -> None:
        """Simulate feed outage (dev/testing)."""
        self._available = available

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _remove(self, key: int) -> None:
        with self._lock:
            self._subscribers.pop(key, None)
