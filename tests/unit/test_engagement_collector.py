"""
Tests for the engagement event collector.

Views are deduplicated per (article, viewer IP, site-local day); ad counters
move only for Active ads; store failures never escape.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from newsdesk.adapters.memory_store import InMemoryStore
from newsdesk.components.engagement import (
    RecordAdClickInput,
    RecordAdImpressionInput,
    RecordViewInput,
    VisibilitySession,
    run,
    run_record_ad_click,
    run_record_ad_impression,
    run_record_view,
    validate_view_input,
    view_day_for,
)
from newsdesk.core.entities import (
    AdClick,
    AdImpression,
    Advertisement,
    Article,
    EventKind,
    ViewRecorded,
)
from newsdesk.core.errors import ConstraintViolation, StoreError

# --- Fixtures ---


@pytest.fixture
def article(store: InMemoryStore, time_port) -> Article:
    return store.save_article(
        Article(
            title="Budget day",
            category="Politics",
            published_at=time_port.now_utc() - timedelta(hours=2),
        )
    )


@pytest.fixture
def ad(store: InMemoryStore) -> Advertisement:
    return store.save_advertisement(
        Advertisement(
            name="Summer Sale",
            image_url="https://cdn.example.com/sale.png",
            link_url="https://shop.example.com/sale",
            placement="sidebar_rectangle",
        )
    )


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class BrokenCounterStore(InMemoryStore):
    """Ads can be read but never incremented."""

    def increment_ad_counter(self, ad_id, counter):
        raise StoreError(f"advertisements.increment_{counter}", "disk full")


# --- Views ---


class TestRecordView:
    """View recording and daily dedup."""

    def test_first_view_recorded(self, store, article, time_port, event_log) -> None:
        out = run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            store=store,
            articles=store,
            time_port=time_port,
            sink=event_log,
        )

        assert out.recorded is True
        assert out.success is True
        assert out.view is not None
        assert out.view.view_day == "2025-06-11"
        assert len(store.list_views()) == 1

    def test_same_viewer_same_day_not_recorded(self, store, article, time_port) -> None:
        inp = RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7")
        first = run_record_view(inp, store=store, time_port=time_port)
        time_port.advance(timedelta(hours=3))
        second = run_record_view(inp, store=store, time_port=time_port)

        assert first.recorded is True
        assert second.recorded is False
        assert second.success is True
        assert len(store.list_views()) == 1

    def test_different_viewer_recorded(self, store, article, time_port) -> None:
        run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            store=store,
            time_port=time_port,
        )
        out = run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="198.51.100.2"),
            store=store,
            time_port=time_port,
        )
        assert out.recorded is True
        assert len(store.list_views()) == 2

    def test_next_local_day_recorded_again(self, store, article, time_port) -> None:
        inp = RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7")
        run_record_view(inp, store=store, time_port=time_port)

        # 23:30 UTC is already the next day in London during BST
        time_port.set_now(datetime(2025, 6, 11, 23, 30, tzinfo=UTC))
        out = run_record_view(inp, store=store, time_port=time_port)

        assert out.recorded is True
        assert out.view is not None
        assert out.view.view_day == "2025-06-12"

    def test_unknown_article_refused(self, store, time_port) -> None:
        out = run_record_view(
            RecordViewInput(article_id=uuid4(), viewer_ip="203.0.113.7"),
            store=store,
            articles=store,
            time_port=time_port,
        )
        assert out.recorded is False
        assert out.success is False
        assert out.errors[0].code == "article_not_found"
        assert store.list_views() == []

    def test_unpublished_article_refused(self, store, time_port) -> None:
        draft = store.save_article(Article(title="Draft", is_published=False))
        out = run_record_view(
            RecordViewInput(article_id=draft.id, viewer_ip="203.0.113.7"),
            store=store,
            articles=store,
            time_port=time_port,
        )
        assert out.errors[0].code == "article_not_found"

    def test_missing_ip_rejected(self, store, article, time_port) -> None:
        out = run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="  "),
            store=store,
            time_port=time_port,
        )
        assert out.success is False
        assert out.errors[0].code == "viewer_ip_required"

    def test_emits_event_only_when_recorded(self, store, article, time_port, event_log) -> None:
        inp = RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7")
        run_record_view(inp, store=store, time_port=time_port, sink=event_log)
        run_record_view(inp, store=store, time_port=time_port, sink=event_log)

        events = event_log.recent()
        assert len(events) == 1
        assert isinstance(events[0], ViewRecorded)
        assert events[0].kind is EventKind.VIEW_RECORDED


class TestRecordViewFailures:
    """Store failures are swallowed and reported."""

    def test_transient_failure_retried(self, store, article, time_port) -> None:
        sleep = SleepRecorder()
        store.fail_next(2)

        out = run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            store=store,
            time_port=time_port,
            backoff_seconds=(0.05, 0.2, 0.5),
            sleep=sleep,
        )

        assert out.recorded is True
        assert sleep.delays == [0.05, 0.2]

    def test_retries_exhausted_reports_store_unavailable(
        self, store, article, time_port, caplog
    ) -> None:
        sleep = SleepRecorder()
        store.fail_next(4)

        out = run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            store=store,
            time_port=time_port,
            backoff_seconds=(0.05, 0.2, 0.5),
            sleep=sleep,
        )

        assert out.recorded is False
        assert out.success is False
        assert out.errors[0].code == "store_unavailable"
        assert sleep.delays == [0.05, 0.2, 0.5]
        assert "Dropping view" in caplog.text

    def test_constraint_violation_is_not_recorded(self, store, article, time_port) -> None:
        store.fail_next(1, error=ConstraintViolation)
        out = run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            store=store,
            time_port=time_port,
        )
        assert out.recorded is False
        assert out.success is True

    def test_constraint_violation_not_retried(self, store, article, time_port) -> None:
        sleep = SleepRecorder()
        store.fail_next(1, error=ConstraintViolation)
        run_record_view(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            store=store,
            time_port=time_port,
            sleep=sleep,
        )
        assert sleep.delays == []


class TestViewHelpers:
    def test_view_day_uses_site_timezone(self, time_port) -> None:
        late = datetime(2025, 1, 15, 23, 59, tzinfo=UTC)  # GMT, same day
        assert view_day_for(late, time_port) == "2025-01-15"
        bst = datetime(2025, 7, 15, 23, 59, tzinfo=UTC)  # BST, next day
        assert view_day_for(bst, time_port) == "2025-07-16"

    def test_view_day_without_time_port_is_utc(self) -> None:
        assert view_day_for(datetime(2025, 7, 15, 23, 59), None) == "2025-07-15"

    def test_ip_too_long(self) -> None:
        errors = validate_view_input(RecordViewInput(article_id=uuid4(), viewer_ip="x" * 65))
        assert errors[0].code == "viewer_ip_too_long"


# --- Ads ---


class TestAdCounters:
    """Impressions and clicks."""

    def test_impression_counted(self, store, ad, time_port, event_log) -> None:
        out = run_record_ad_impression(
            RecordAdImpressionInput(ad_id=ad.id),
            store=store,
            time_port=time_port,
            sink=event_log,
        )
        assert out.counted is True
        assert out.value == 1
        assert store.get_advertisement(ad.id).impressions == 1
        assert isinstance(event_log.recent()[0], AdImpression)

    def test_every_call_increments(self, store, ad, time_port) -> None:
        """Visibility sessions are deduplicated client-side, not here."""
        for _ in range(3):
            run_record_ad_impression(
                RecordAdImpressionInput(ad_id=ad.id), store=store, time_port=time_port
            )
        assert store.get_advertisement(ad.id).impressions == 3

    def test_click_returns_target(self, store, ad, time_port, event_log) -> None:
        out = run_record_ad_click(
            RecordAdClickInput(ad_id=ad.id),
            store=store,
            time_port=time_port,
            sink=event_log,
        )
        assert out.counted is True
        assert out.target_url == "https://shop.example.com/sale"
        assert store.get_advertisement(ad.id).clicks == 1
        assert isinstance(event_log.recent()[0], AdClick)

    @pytest.mark.parametrize(
        "changes,reason",
        [
            ({"is_active": False}, "inactive"),
            ({"start_date": datetime(2025, 7, 1, tzinfo=UTC)}, "scheduled"),
            ({"end_date": datetime(2025, 6, 1, tzinfo=UTC)}, "expired"),
        ],
    )
    def test_non_active_ad_not_counted(self, store, time_port, changes, reason) -> None:
        ad = store.save_advertisement(
            Advertisement(
                name="Off",
                image_url="https://cdn.example.com/off.png",
                link_url="https://example.com/off",
                placement="footer_banner",
                **changes,
            )
        )
        out = run_record_ad_click(RecordAdClickInput(ad_id=ad.id), store=store, time_port=time_port)

        assert out.counted is False
        assert out.reason == reason
        assert out.target_url == "https://example.com/off"
        assert store.get_advertisement(ad.id).clicks == 0

    def test_unknown_ad(self, store, time_port) -> None:
        out = run_record_ad_impression(
            RecordAdImpressionInput(ad_id=uuid4()), store=store, time_port=time_port
        )
        assert out.counted is False
        assert out.reason == "not_found"

    def test_click_keeps_target_when_increment_fails(self, time_port, event_log) -> None:
        store = BrokenCounterStore()
        ad = store.save_advertisement(
            Advertisement(
                name="Sale",
                image_url="https://cdn.example.com/sale.png",
                link_url="https://shop.example.com/sale",
                placement="in_content",
            )
        )
        out = run_record_ad_click(
            RecordAdClickInput(ad_id=ad.id), store=store, time_port=time_port, sink=event_log
        )

        assert out.counted is False
        assert out.reason == "store_unavailable"
        assert out.target_url == "https://shop.example.com/sale"
        assert out.success is False
        assert event_log.recent() == []

    def test_run_dispatch(self, store, ad, article, time_port) -> None:
        view = run(
            RecordViewInput(article_id=article.id, viewer_ip="203.0.113.7"),
            views=store,
            ads=store,
            time_port=time_port,
        )
        click = run(RecordAdClickInput(ad_id=ad.id), views=store, ads=store, time_port=time_port)
        assert view.recorded is True
        assert click.counted is True


class TestVisibilitySession:
    """Client-side impression policy."""

    def test_fires_once_per_entry(self) -> None:
        session = VisibilitySession()
        assert session.observe(0.6) is True
        assert session.observe(0.9) is False
        assert session.observe(0.5) is False
        assert session.sessions == 1

    def test_below_threshold_never_fires(self) -> None:
        session = VisibilitySession()
        assert session.observe(0.49) is False
        assert session.sessions == 0

    def test_re_entry_is_new_session(self) -> None:
        session = VisibilitySession()
        session.observe(1.0)
        session.observe(0.1)
        assert session.observe(0.7) is True
        assert session.sessions == 2
