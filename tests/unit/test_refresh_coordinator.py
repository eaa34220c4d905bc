"""
Tests for the realtime refresh coordinator.

Timers and the monotonic clock are driven by hand (see conftest), so nothing
here sleeps.
"""

from __future__ import annotations

import pytest

from newsdesk.components.realtime import (
    WATCHED_TABLES,
    CoordinatorState,
    RefreshCoordinator,
    RefreshTarget,
    SnapshotCache,
    create_refresh_coordinator,
    dashboard_targets,
)
from newsdesk.core.entities import ChangeEvent


class Counter:
    """Recompute callable that counts its calls."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.calls = 0

    def __call__(self) -> dict:
        self.calls += 1
        return {"name": self.name, "version": self.calls}


class StubEngine:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def compute_article_metrics(self):
        self.calls.append("articles")
        return "articles-snapshot"

    def compute_ad_metrics(self):
        self.calls.append("ads")
        return "ads-snapshot"

    def compute_live_metrics(self):
        self.calls.append("live")
        return "live-snapshot"

    def compute_overview_metrics(self):
        self.calls.append("overview")
        return "overview-snapshot"


def change(table: str) -> ChangeEvent:
    return ChangeEvent(table=table, operation="INSERT", row={})


@pytest.fixture
def recomputes() -> dict[str, Counter]:
    return {name: Counter(name) for name in ("content", "ads")}


@pytest.fixture
def coordinator(feed, recomputes, timers, clock) -> RefreshCoordinator:
    targets = [
        RefreshTarget(
            name="content",
            recompute=recomputes["content"],
            tables=frozenset({"articles", "article_views", "comments"}),
            poll_seconds=30.0,
        ),
        RefreshTarget(
            name="ads",
            recompute=recomputes["ads"],
            tables=frozenset({"advertisements"}),
            poll_seconds=120.0,
        ),
    ]
    c = RefreshCoordinator(
        feed,
        targets,
        debounce_seconds=1.0,
        min_refresh_interval_seconds=2.0,
        subscribe_backoff_seconds=(1.0, 5.0, 15.0),
        timer_factory=timers,
        clock=clock,
    )
    yield c
    c.stop()


class TestLifecycle:
    def test_start_subscribes(self, coordinator, feed) -> None:
        assert coordinator.state is CoordinatorState.IDLE
        coordinator.start(poll=False)
        assert coordinator.state is CoordinatorState.SUBSCRIBED
        assert coordinator.is_running
        assert feed.subscriber_count == 1

    def test_start_twice_is_noop(self, coordinator, feed) -> None:
        coordinator.start(poll=False)
        coordinator.start(poll=False)
        assert feed.subscriber_count == 1

    def test_stop_unsubscribes_and_cancels(self, coordinator, feed, timers, recomputes) -> None:
        coordinator.start(poll=False)
        feed.publish(change("comments"))
        pending = timers.pending[0]

        coordinator.stop()

        assert coordinator.state is CoordinatorState.IDLE
        assert feed.subscriber_count == 0
        assert pending.cancelled
        pending.fn()
        assert recomputes["content"].calls == 0

    def test_events_after_stop_ignored(self, coordinator, feed, timers) -> None:
        coordinator.start(poll=False)
        coordinator.stop()
        coordinator.notify(change("comments"))
        assert timers.created == []

    def test_start_with_poll_thread(self, coordinator) -> None:
        coordinator.start(poll=True)
        assert coordinator.is_running
        coordinator.stop()
        assert not coordinator.is_running


class TestCoalescing:
    def test_burst_coalesced_into_one_recompute(
        self, coordinator, feed, timers, recomputes
    ) -> None:
        coordinator.start(poll=False)
        for table in ("comments", "article_views", "comments", "articles"):
            feed.publish(change(table))

        assert len(timers.created) == 1
        assert timers.created[0].delay == 1.0
        assert recomputes["content"].calls == 0

        timers.fire_all()

        assert recomputes["content"].calls == 1
        assert recomputes["ads"].calls == 0
        assert coordinator.recompute_count == 1
        assert coordinator.cache.get("content").value == {"name": "content", "version": 1}

    def test_only_affected_targets(self, coordinator, feed, timers, recomputes) -> None:
        coordinator.start(poll=False)
        feed.publish(change("advertisements"))
        timers.fire_all()
        assert recomputes["ads"].calls == 1
        assert recomputes["content"].calls == 0

    def test_unwatched_table_ignored(self, coordinator, timers) -> None:
        coordinator.start(poll=False)
        coordinator.notify(change("users"))
        assert timers.created == []

    def test_min_interval_between_recomputes(self, coordinator, feed, timers, clock) -> None:
        coordinator.start(poll=False)
        feed.publish(change("comments"))
        timers.fire_all()

        clock.advance(0.5)
        feed.publish(change("comments"))

        assert timers.created[-1].delay == pytest.approx(1.5)

    def test_debounce_wins_when_interval_elapsed(self, coordinator, feed, timers, clock) -> None:
        coordinator.start(poll=False)
        feed.publish(change("comments"))
        timers.fire_all()

        clock.advance(10)
        feed.publish(change("comments"))

        assert timers.created[-1].delay == 1.0

    def test_state_returns_to_subscribed(self, coordinator, feed, timers) -> None:
        coordinator.start(poll=False)
        feed.publish(change("comments"))
        timers.fire_all()
        assert coordinator.state is CoordinatorState.SUBSCRIBED


class TestSubscriptionFallback:
    def test_unavailable_feed_polls_and_retries(self, coordinator, feed, timers) -> None:
        feed.set_available(False)
        coordinator.start(poll=False)

        assert coordinator.state is CoordinatorState.POLLING
        assert [t.delay for t in timers.pending] == [1.0]

        feed.set_available(True)
        timers.fire_all()

        assert coordinator.state is CoordinatorState.SUBSCRIBED
        assert feed.subscriber_count == 1

    def test_backoff_schedule_then_poll_only(self, coordinator, feed, timers) -> None:
        feed.set_available(False)
        coordinator.start(poll=False)
        for _ in range(4):
            timers.fire_all()

        assert [t.delay for t in timers.created] == [1.0, 5.0, 15.0]
        assert timers.pending == []
        assert coordinator.state is CoordinatorState.POLLING


class TestPolling:
    def test_poll_once_respects_intervals(self, coordinator, clock, recomputes) -> None:
        coordinator.start(poll=False)

        assert coordinator.poll_once() == []

        clock.advance(30)
        assert coordinator.poll_once() == ["content"]
        assert recomputes["content"].calls == 1

        clock.advance(90)
        assert sorted(coordinator.poll_once()) == ["ads", "content"]

    def test_polling_works_without_feed(self, coordinator, feed, clock, recomputes) -> None:
        feed.set_available(False)
        coordinator.start(poll=False)
        clock.advance(30)
        coordinator.poll_once()
        assert recomputes["content"].calls == 1


class TestFailures:
    def test_failed_recompute_keeps_last_value(self, feed, timers, clock) -> None:
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] > 1:
                raise RuntimeError("store down")
            return "good"

        coordinator = RefreshCoordinator(
            feed,
            [RefreshTarget(name="live", recompute=flaky)],
            timer_factory=timers,
            clock=clock,
        )
        coordinator.start(poll=False)

        first = coordinator.refresh()
        second = coordinator.refresh()

        assert first.success
        assert second.failed == {"live": "store down"}
        entry = coordinator.cache.get("live")
        assert entry.value == "good"
        assert entry.error == "store down"
        assert coordinator.state is CoordinatorState.SUBSCRIBED
        coordinator.stop()

    def test_refresh_unknown_target(self, coordinator) -> None:
        with pytest.raises(ValueError, match="nope"):
            coordinator.refresh(["nope"])

    def test_refresh_named_targets(self, coordinator, recomputes) -> None:
        result = coordinator.refresh(iter(["ads"]))
        assert result.refreshed == ["ads"]
        assert recomputes["content"].calls == 0


class TestSnapshotCache:
    def test_set_and_error(self) -> None:
        cache = SnapshotCache()
        cache.set_error("x", "boom")
        assert cache.get("x").value is None
        cache.set("x", 1)
        assert cache.get("x").error is None
        cache.clear()
        assert cache.get("x") is None


class TestDashboardTargets:
    def test_targets_and_intervals(self) -> None:
        targets = {t.name: t for t in dashboard_targets(StubEngine(), 30, 120, 300)}
        assert set(targets) == {"articles", "ads", "live", "overview"}
        assert targets["overview"].poll_seconds == 300
        assert targets["overview"].tables == WATCHED_TABLES
        assert targets["live"].poll_seconds == 30
        assert targets["articles"].poll_seconds == 120
        assert targets["ads"].tables == frozenset({"advertisements"})

    def test_factory_wires_engine(self, feed) -> None:
        engine = StubEngine()
        coordinator = create_refresh_coordinator(feed, engine)
        result = coordinator.refresh()
        assert sorted(result.refreshed) == ["ads", "articles", "live", "overview"]
        assert coordinator.cache.get("ads").value == "ads-snapshot"
