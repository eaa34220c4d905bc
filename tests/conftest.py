from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from newsdesk.adapters.change_feed import InMemoryChangeFeed
from newsdesk.adapters.event_log import RecentEventLog
from newsdesk.adapters.memory_store import InMemoryStore
from newsdesk.adapters.sqlite.migrator import SQLiteMigrator
from newsdesk.adapters.time_site import FrozenTimeAdapter

PROJECT_ROOT = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"

# Midday in London (BST) on a Wednesday.
NOW = datetime(2025, 6, 11, 11, 0, tzinfo=UTC)


class ManualTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, delay: float, fn: Callable[[], None]) -> None:
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fn()


class ManualTimers:
    """Timer factory recording every timer it creates."""

    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, delay: float, fn: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, fn)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.created if t.started and not t.cancelled]

    def fire_all(self) -> None:
        for timer in list(self.pending):
            timer.cancelled = True
            timer.fn()


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def time_port() -> FrozenTimeAdapter:
    return FrozenTimeAdapter(NOW, "Europe/London")


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def store(feed: InMemoryChangeFeed) -> InMemoryStore:
    return InMemoryStore(feed=feed)


@pytest.fixture
def event_log() -> RecentEventLog:
    return RecentEventLog(max_events=100)


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    return lambda _seconds: None


@pytest.fixture
def db_path(tmp_path) -> str:
    path = str(tmp_path / "newsdesk.db")
    SQLiteMigrator(path, str(MIGRATIONS_DIR)).run_migrations()
    return path
