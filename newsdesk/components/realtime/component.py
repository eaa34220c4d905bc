"""
Realtime Refresh Coordinator.

Keeps dashboard snapshots fresh from change-feed notifications.

State machine:
    Idle -> Subscribed -> (change) -> Recomputing -> Subscribed
    Idle -> Polling (feed unavailable; subscription retried with backoff)

Key behaviors:
- Coalescing: the first change on a watched table opens a debounce window;
  every change arriving before it closes joins the same recompute.
- A minimum interval separates two recomputes triggered by changes.
- Each target is also polled at its fixed interval (30s live, 2min article
  and ad analytics, 5min overview) whether or not the feed is delivering.
- A failing recompute is logged and recorded in the snapshot cache; it never
  stops the coordinator.

Timers and the clock are injectable so tests can drive the coordinator
without sleeping.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from newsdesk.core.entities import ChangeEvent
from newsdesk.core.retry import backoff_delay

from .models import (
    WATCHED_TABLES,
    CoordinatorState,
    RefreshResult,
    RefreshTarget,
    SnapshotEntry,
)
from .ports import (
    ChangeFeedPort,
    MetricsEnginePort,
    SubscriptionError,
    SubscriptionPort,
    TimerFactory,
    TimerHandle,
)

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_MIN_REFRESH_INTERVAL_SECONDS = 2.0
DEFAULT_SUBSCRIBE_BACKOFF_SECONDS: tuple[float, ...] = (1.0, 5.0, 15.0)
DEFAULT_LIVE_POLL_SECONDS = 30.0
DEFAULT_ARTICLES_POLL_SECONDS = 120.0
DEFAULT_OVERVIEW_POLL_SECONDS = 300.0


def _daemon_timer(delay: float, fn: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    return timer


# --- Snapshot Cache ---


class SnapshotCache:
    """Thread-safe store of the latest snapshot per target."""

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, SnapshotEntry] = {}
        self._now = now or (lambda: datetime.now(UTC))

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._entries[name] = SnapshotEntry(name=name, value=value, refreshed_at=self._now())

    def set_error(self, name: str, error: str) -> None:
        """Record a failure, keeping the last good value."""
        with self._lock:
            previous = self._entries.get(name)
            self._entries[name] = SnapshotEntry(
                name=name,
                value=previous.value if previous else None,
                error=error,
                refreshed_at=previous.refreshed_at if previous else None,
            )

    def get(self, name: str) -> SnapshotEntry | None:
        with self._lock:
            return self._entries.get(name)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# --- Coordinator ---


class RefreshCoordinator:
    """Debounced, polled recompute of dashboard snapshots."""

    def __init__(
        self,
        feed: ChangeFeedPort,
        targets: Iterable[RefreshTarget],
        cache: SnapshotCache | None = None,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        min_refresh_interval_seconds: float = DEFAULT_MIN_REFRESH_INTERVAL_SECONDS,
        subscribe_backoff_seconds: tuple[float, ...] = DEFAULT_SUBSCRIBE_BACKOFF_SECONDS,
        poll_tick_seconds: float = 1.0,
        timer_factory: TimerFactory = _daemon_timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._feed = feed
        self._targets = {t.name: t for t in targets}
        self.cache = cache or SnapshotCache()
        self._debounce = debounce_seconds
        self._min_interval = min_refresh_interval_seconds
        self._subscribe_backoff = subscribe_backoff_seconds
        self._poll_tick = poll_tick_seconds
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.RLock()
        self._recompute_lock = threading.Lock()
        self._state = CoordinatorState.IDLE
        self._running = False
        self._recomputing = False
        self._subscription: SubscriptionPort | None = None
        self._subscribe_attempts = 0
        self._subscribe_timer: TimerHandle | None = None
        self._debounce_timer: TimerHandle | None = None
        self._pending: set[str] = set()
        self._last_refresh: float | None = None
        self._last_polled: dict[str, float] = {}
        self._stop_event = threading.Event()
        self._poll_thread: threading.Thread | None = None
        self.recompute_count = 0

    # --- Lifecycle ---

    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def target_names(self) -> list[str]:
        return list(self._targets)

    def start(self, poll: bool = True) -> None:
        """Subscribe to the change feed and start the safety-net poller."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._subscribe_attempts = 0
            self._stop_event.clear()
            now = self._clock()
            self._last_polled = {name: now for name in self._targets}

        self._try_subscribe()

        if poll:
            self._poll_thread = threading.Thread(target=self._poll_loop, daemon=True)
            self._poll_thread.start()
        logger.info("Refresh coordinator started (%s)", ", ".join(self._targets))

    def stop(self) -> None:
        """Unsubscribe, cancel pending timers and stop polling."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            for timer in (self._debounce_timer, self._subscribe_timer):
                if timer is not None:
                    timer.cancel()
            self._debounce_timer = None
            self._subscribe_timer = None
            self._pending.clear()
            subscription, self._subscription = self._subscription, None
            self._settle_state()

        self._stop_event.set()
        if subscription is not None:
            subscription.unsubscribe()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=5.0)
            self._poll_thread = None
        logger.info("Refresh coordinator stopped")

    def _settle_state(self) -> None:
        # Caller holds the lock.
        if not self._running:
            self._state = CoordinatorState.IDLE
        elif self._recomputing:
            self._state = CoordinatorState.RECOMPUTING
        elif self._subscription is not None:
            self._state = CoordinatorState.SUBSCRIBED
        else:
            self._state = CoordinatorState.POLLING

    # --- Subscription ---

    def _try_subscribe(self) -> None:
        with self._lock:
            self._subscribe_timer = None
            if not self._running:
                return

        try:
            subscription = self._feed.subscribe(WATCHED_TABLES, self.notify)
        except SubscriptionError as e:
            self._on_subscribe_failed(e)
            return

        with self._lock:
            if not self._running:
                subscription.unsubscribe()
                return
            self._subscription = subscription
            self._subscribe_attempts = 0
            self._settle_state()
        logger.info("Subscribed to change feed")

    def _on_subscribe_failed(self, error: Exception) -> None:
        with self._lock:
            self._subscribe_attempts += 1
            self._settle_state()
            delay = backoff_delay(self._subscribe_attempts, self._subscribe_backoff)
            if delay is None:
                logger.warning(
                    "Change feed unavailable after %d attempts, polling only: %s",
                    self._subscribe_attempts,
                    error,
                )
                return
            logger.warning(
                "Change feed subscribe failed (attempt %d), retrying in %.1fs: %s",
                self._subscribe_attempts,
                delay,
                error,
            )
            self._subscribe_timer = self._timer_factory(delay, self._try_subscribe)
            self._subscribe_timer.start()

    # --- Change notifications ---

    def notify(self, event: ChangeEvent) -> None:
        """Change-feed handler: schedule a coalesced recompute."""
        if event.table not in WATCHED_TABLES:
            return
        with self._lock:
            if not self._running:
                return
            self._pending.add(event.table)
            if self._debounce_timer is not None:
                return
            self._debounce_timer = self._timer_factory(self._next_delay(), self._flush)
            self._debounce_timer.start()

    def _next_delay(self) -> float:
        delay = self._debounce
        if self._last_refresh is not None:
            remaining = self._min_interval - (self._clock() - self._last_refresh)
            delay = max(delay, remaining)
        return delay

    def _flush(self) -> None:
        with self._lock:
            self._debounce_timer = None
            tables, self._pending = self._pending, set()
            if not self._running or not tables:
                return
        targets = [t for t in self._targets.values() if t.tables & tables]
        if targets:
            self._recompute(targets)

    # --- Recompute ---

    def _recompute(self, targets: list[RefreshTarget]) -> RefreshResult:
        result = RefreshResult()
        with self._recompute_lock:
            with self._lock:
                self._recomputing = True
                self._settle_state()
            try:
                for target in targets:
                    try:
                        value = target.recompute()
                    except Exception as e:
                        logger.exception("Refresh of %s failed", target.name)
                        self.cache.set_error(target.name, str(e))
                        result.failed[target.name] = str(e)
                    else:
                        self.cache.set(target.name, value)
                        result.refreshed.append(target.name)
            finally:
                with self._lock:
                    now = self._clock()
                    self._last_refresh = now
                    for target in targets:
                        self._last_polled[target.name] = now
                    self.recompute_count += 1
                    self._recomputing = False
                    self._settle_state()
        return result

    def refresh(self, names: Iterable[str] | None = None) -> RefreshResult:
        """Manual re-aggregation of the named targets (all by default)."""
        if names is None:
            targets = list(self._targets.values())
        else:
            names = list(names)
            unknown = [n for n in names if n not in self._targets]
            if unknown:
                raise ValueError(f"Unknown refresh targets: {', '.join(unknown)}")
            targets = [self._targets[n] for n in names]
        return self._recompute(targets)

    # --- Polling ---

    def poll_once(self) -> list[str]:
        """Recompute every target whose poll interval has elapsed."""
        now = self._clock()
        with self._lock:
            due = [
                t
                for t in self._targets.values()
                if now - self._last_polled.get(t.name, float("-inf")) >= t.poll_seconds
            ]
        if due:
            self._recompute(due)
        return [t.name for t in due]

    def _poll_loop(self) -> None:
        """Background polling loop."""
        while not self._stop_event.wait(timeout=self._poll_tick):
            try:
                polled = self.poll_once()
                if polled:
                    logger.debug("Polled %s", ", ".join(polled))
            except Exception:
                logger.exception("Error in refresh poll loop")


# --- Factory functions ---


def dashboard_targets(
    engine: MetricsEnginePort,
    live_poll_seconds: float = DEFAULT_LIVE_POLL_SECONDS,
    articles_poll_seconds: float = DEFAULT_ARTICLES_POLL_SECONDS,
    overview_poll_seconds: float = DEFAULT_OVERVIEW_POLL_SECONDS,
) -> list[RefreshTarget]:
    """The four admin dashboard snapshots."""
    return [
        RefreshTarget(
            name="articles",
            recompute=engine.compute_article_metrics,
            tables=frozenset({"articles", "article_views", "comments"}),
            poll_seconds=articles_poll_seconds,
        ),
        RefreshTarget(
            name="ads",
            recompute=engine.compute_ad_metrics,
            tables=frozenset({"advertisements"}),
            poll_seconds=articles_poll_seconds,
        ),
        RefreshTarget(
            name="live",
            recompute=engine.compute_live_metrics,
            tables=frozenset({"articles", "article_views", "comments"}),
            poll_seconds=live_poll_seconds,
        ),
        RefreshTarget(
            name="overview",
            recompute=engine.compute_overview_metrics,
            tables=WATCHED_TABLES,
            poll_seconds=overview_poll_seconds,
        ),
    ]


def create_refresh_coordinator(
    feed: ChangeFeedPort,
    engine: MetricsEnginePort,
    *,
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    min_refresh_interval_seconds: float = DEFAULT_MIN_REFRESH_INTERVAL_SECONDS,
    subscribe_backoff_seconds: tuple[float, ...] = DEFAULT_SUBSCRIBE_BACKOFF_SECONDS,
    live_poll_seconds: float = DEFAULT_LIVE_POLL_SECONDS,
    articles_poll_seconds: float = DEFAULT_ARTICLES_POLL_SECONDS,
    overview_poll_seconds: float = DEFAULT_OVERVIEW_POLL_SECONDS,
) -> RefreshCoordinator:
    """Factory function to create the dashboard refresh coordinator."""
    return RefreshCoordinator(
        feed,
        dashboard_targets(
            engine, live_poll_seconds, articles_poll_seconds, overview_poll_seconds
        ),
        debounce_seconds=debounce_seconds,
        min_refresh_interval_seconds=min_refresh_interval_seconds,
        subscribe_backoff_seconds=subscribe_backoff_seconds,
    )
