"""
Tests for the aggregation engine.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from newsdesk.components.analytics import (
    UNCATEGORIZED,
    AggregationEngine,
    ArticleStat,
    activity_feed,
    build_article_stats,
    category_performance,
    create_aggregation_engine,
    engagement_rate,
    popular_categories,
    publication_trend,
    rank_articles,
    round_half_up,
    tally_events,
)
from newsdesk.core.entities import (
    AdClick,
    Advertisement,
    Article,
    ArticleView,
    Comment,
    EventKind,
    ViewRecorded,
)
from newsdesk.core.errors import AggregationError

# --- Helpers ---


def add_article(store, published_at, category="News", title="Story") -> Article:
    return store.save_article(Article(title=title, category=category, published_at=published_at))


def add_view(store, time_port, article_id: UUID, ip: str, viewed_at: datetime) -> None:
    store.insert_view_if_absent(
        ArticleView(
            article_id=article_id,
            viewer_ip=ip,
            viewed_at=viewed_at,
            view_day=time_port.local_date(viewed_at).isoformat(),
        )
    )


def add_comment(store, article_id: UUID, created_at: datetime, approved=True, spam=False):
    return store.insert_comment(
        Comment(
            article_id=article_id,
            author_name="Reader",
            author_email="reader@example.com",
            author_ip="192.0.2.1",
            content="Interesting piece, thanks.",
            is_approved=approved,
            is_spam=spam,
            created_at=created_at,
            updated_at=created_at,
        )
    )


def add_ad(store, name, impressions=0, clicks=0, **kwargs) -> Advertisement:
    return store.save_advertisement(
        Advertisement(
            name=name,
            image_url="https://cdn.example.com/ad.png",
            link_url="https://example.com",
            placement="header_banner",
            impressions=impressions,
            clicks=clicks,
            **kwargs,
        )
    )


@pytest.fixture
def engine(store, time_port) -> AggregationEngine:
    return create_aggregation_engine(store, store, store, store, time_port)


# --- Pure functions ---


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "num,den,expected",
        [(3, 2, 2), (5, 2, 3), (1, 3, 0), (2, 3, 1), (10, 5, 2), (0, 4, 0)],
    )
    def test_values(self, num, den, expected) -> None:
        assert round_half_up(num, den) == expected

    def test_zero_denominator(self) -> None:
        with pytest.raises(ValueError):
            round_half_up(1, 0)


class TestRankArticles:
    def stat(self, views, published_at, article_id=None) -> ArticleStat:
        return ArticleStat(
            article_id=article_id or uuid4(),
            title="t",
            category="c",
            published_at=published_at,
            views=views,
        )

    def test_ties_break_by_recency(self) -> None:
        old = self.stat(5, datetime(2025, 1, 1, tzinfo=UTC))
        new = self.stat(5, datetime(2025, 3, 1, tzinfo=UTC))
        top = self.stat(9, datetime(2024, 1, 1, tzinfo=UTC))

        ranked = rank_articles([old, new, top], lambda s: s.views)

        assert [s.article_id for s in ranked] == [top.article_id, new.article_id, old.article_id]

    def test_full_tie_breaks_by_id(self) -> None:
        when = datetime(2025, 1, 1, tzinfo=UTC)
        a = self.stat(1, when, UUID("00000000-0000-0000-0000-000000000001"))
        b = self.stat(1, when, UUID("00000000-0000-0000-0000-000000000002"))
        assert rank_articles([b, a], lambda s: s.views) == [a, b]

    def test_limit(self) -> None:
        stats = [self.stat(i, None) for i in range(15)]
        assert len(rank_articles(stats, lambda s: s.views, limit=10)) == 10


class TestPublicationTrend:
    def test_zero_filled_window(self) -> None:
        today = date(2025, 6, 11)
        published = [
            datetime(2025, 6, 11, 8, tzinfo=UTC),
            datetime(2025, 6, 1, 8, tzinfo=UTC),
            datetime(2025, 6, 1, 9, tzinfo=UTC),
            datetime(2025, 4, 1, 9, tzinfo=UTC),  # outside the window
        ]

        trend = publication_trend(published, today, lambda dt: dt.date(), days=30)

        assert len(trend) == 30
        assert trend[0].day == date(2025, 5, 13)
        assert trend[-1].day == today
        assert trend[-1].count == 1
        assert {p.day: p.count for p in trend}[date(2025, 6, 1)] == 2
        assert sum(p.count for p in trend) == 3

    def test_buckets_by_local_day(self, time_port) -> None:
        # 23:30 UTC on the 10th is 00:30 on the 11th in London (BST)
        late = datetime(2025, 6, 10, 23, 30, tzinfo=UTC)
        trend = publication_trend([late], date(2025, 6, 11), time_port.local_date, days=2)
        assert [(p.day, p.count) for p in trend] == [
            (date(2025, 6, 10), 0),
            (date(2025, 6, 11), 1),
        ]


class TestCategoryPerformance:
    def test_avg_rounds_half_up_and_sorts(self) -> None:
        stats = [
            ArticleStat(uuid4(), "a", "Sport", None, views=1),
            ArticleStat(uuid4(), "b", "Sport", None, views=2),
            ArticleStat(uuid4(), "c", "Arts", None, views=1),
            ArticleStat(uuid4(), "d", "Politics", None, views=7),
        ]

        result = category_performance(stats)

        assert [(c.category, c.avg_views) for c in result] == [
            ("Politics", 7),
            ("Sport", 2),
            ("Arts", 1),
        ]
        assert result[1].article_count == 2
        assert result[1].total_views == 3

    def test_orders_by_total_views_not_average(self) -> None:
        stats = [ArticleStat(uuid4(), f"s{i}", "Sport", None, views=4) for i in range(3)]
        stats.append(ArticleStat(uuid4(), "p", "Politics", None, views=10))

        result = category_performance(stats)

        assert [(c.category, c.total_views, c.avg_views) for c in result] == [
            ("Sport", 12, 4),
            ("Politics", 10, 10),
        ]


class TestEngagementRate:
    def test_no_views(self) -> None:
        assert engagement_rate(0, 0) == 0.0
        assert engagement_rate(5, 0) == 0.0

    def test_comments_per_view(self) -> None:
        assert engagement_rate(3, 12) == pytest.approx(0.25)

    def test_not_clamped(self) -> None:
        assert engagement_rate(6, 4) == pytest.approx(1.5)


class TestPopularCategories:
    def test_counts_largest_first(self) -> None:
        published = datetime(2025, 6, 1, tzinfo=UTC)
        articles = [
            Article(title="a", category="Sport", published_at=published),
            Article(title="b", category="Arts", published_at=published),
            Article(title="c", category="Sport", published_at=published),
            Article(title="d", category=None, published_at=published),
        ]

        result = popular_categories(articles)

        assert [(c.category, c.article_count) for c in result] == [
            ("Sport", 2),
            ("Arts", 1),
            (UNCATEGORIZED, 1),
        ]

    def test_empty(self) -> None:
        assert popular_categories([]) == []


class TestActivityFeed:
    def _comment(self, created_at: datetime, content: str = "Nice") -> Comment:
        return Comment(
            article_id=uuid4(),
            author_name="Reader",
            author_email="reader@example.com",
            author_ip="192.0.2.1",
            content=content,
            created_at=created_at,
            updated_at=created_at,
        )

    def test_merged_newest_first(self) -> None:
        base = datetime(2025, 6, 11, tzinfo=UTC)
        old = Article(title="old", published_at=base - timedelta(days=3))
        new = Article(title="new", published_at=base - timedelta(hours=1))
        draft = Article(title="draft", published_at=None)
        comment = self._comment(base - timedelta(days=1))

        items = activity_feed([old, new, draft], [comment])

        assert [(i.kind, i.description) for i in items] == [
            ("article", "new"),
            ("comment", "Nice"),
            ("article", "old"),
        ]
        assert items[1].author == "Reader"
        assert items[0].title == "New article published"

    def test_limits_each_kind(self) -> None:
        base = datetime(2025, 6, 11, tzinfo=UTC)
        articles = [
            Article(title=f"a{i}", published_at=base - timedelta(hours=i)) for i in range(5)
        ]
        comments = [self._comment(base - timedelta(minutes=i)) for i in range(5)]

        items = activity_feed(articles, comments, per_kind=2, limit=3)

        assert len(items) == 3
        assert sum(1 for i in items if i.kind == "article") <= 2
        assert sum(1 for i in items if i.kind == "comment") == 2

    def test_long_comment_is_shortened(self) -> None:
        text = "word " * 40
        items = activity_feed([], [self._comment(datetime(2025, 6, 11, tzinfo=UTC), text)])
        assert items[0].description.endswith("...")
        assert len(items[0].description) <= 103


class TestBuildArticleStats:
    def test_orphans_skipped(self) -> None:
        article = Article(title="kept", published_at=datetime(2025, 6, 1, tzinfo=UTC))
        ghost = uuid4()
        views = [
            ArticleView(article.id, "1.1.1.1", datetime(2025, 6, 11, tzinfo=UTC), "2025-06-11"),
            ArticleView(ghost, "1.1.1.1", datetime(2025, 6, 11, tzinfo=UTC), "2025-06-11"),
        ]

        stats, gaps, skipped = build_article_stats(
            [article], views, {ghost: 2}, today="2025-06-11", week_start="2025-06-05"
        )

        assert len(stats) == 1
        assert stats[0].views == 1
        assert stats[0].category == UNCATEGORIZED
        assert skipped == 3
        assert [g.ref_id for g in gaps] == [ghost]


class TestTallyEvents:
    def test_every_kind_present(self) -> None:
        now = datetime(2025, 6, 11, tzinfo=UTC)
        counts = tally_events(
            [ViewRecorded(uuid4(), now), ViewRecorded(uuid4(), now), AdClick(uuid4(), now)]
        )
        assert counts[EventKind.VIEW_RECORDED] == 2
        assert counts[EventKind.AD_CLICK] == 1
        assert counts[EventKind.MODERATION_ACTION] == 0
        assert set(counts) == set(EventKind)


# --- Engine ---


class TestArticleMetrics:
    def test_snapshot(self, engine, store, time_port) -> None:
        now = time_port.now_utc()
        busy = add_article(store, now - timedelta(days=3), "Politics", "Busy")
        quiet = add_article(store, now - timedelta(days=1), "Sport", "Quiet")
        add_article(store, now - timedelta(days=2), None, "Uncommented")

        for i in range(3):
            add_view(store, time_port, busy.id, f"10.0.0.{i}", now - timedelta(hours=1))
        add_view(store, time_port, busy.id, "10.0.1.1", now - timedelta(days=2))
        add_view(store, time_port, quiet.id, "10.0.0.1", now - timedelta(days=10))
        add_comment(store, quiet.id, now - timedelta(hours=2))
        add_comment(store, quiet.id, now - timedelta(hours=3))
        add_comment(store, busy.id, now - timedelta(hours=1))
        add_comment(store, busy.id, now - timedelta(hours=1), approved=False)

        m = engine.compute_article_metrics()

        assert m.total_articles == 3
        assert m.total_views == 5
        top = m.top_viewed[0]
        assert top.article_id == busy.id
        assert (top.views, top.views_today, top.views_this_week) == (4, 3, 4)
        assert [s.title for s in m.top_commented] == ["Quiet", "Busy"]
        assert len(m.publication_trend) == 30
        assert {c.category for c in m.category_performance} == {
            "Politics",
            "Sport",
            UNCATEGORIZED,
        }
        assert m.computed_at == now

    def test_deleted_article_views_skipped(self, engine, store, time_port) -> None:
        now = time_port.now_utc()
        gone = add_article(store, now - timedelta(days=1))
        add_view(store, time_port, gone.id, "10.0.0.1", now)
        store.delete_article(gone.id)

        m = engine.compute_article_metrics()

        assert m.total_articles == 0
        assert m.total_views == 0
        assert m.skipped_orphans == 1

    def test_store_failure(self, engine, store) -> None:
        store.fail_next(1)
        with pytest.raises(AggregationError) as exc:
            engine.compute_article_metrics()
        assert exc.value.metric == "articles"


class TestAdMetrics:
    def test_no_impressions(self, engine, store) -> None:
        add_ad(store, "fresh")
        m = engine.compute_ad_metrics()
        assert m.ctr == 0.0
        assert m.data_quality_warning is False

    def test_totals_and_states(self, engine, store, time_port) -> None:
        add_ad(store, "a", impressions=100, clicks=4)
        add_ad(store, "b", impressions=300, clicks=16)
        add_ad(store, "c", is_active=False)

        m = engine.compute_ad_metrics()

        assert (m.total_impressions, m.total_clicks) == (400, 20)
        assert m.ctr == pytest.approx(0.05)
        assert m.total_ads == 3
        assert m.active_ads == 2
        assert [a.name for a in m.ads] == ["b", "a", "c"]

    def test_clicks_exceeding_impressions(self, engine, store) -> None:
        add_ad(store, "odd", impressions=2, clicks=5)
        m = engine.compute_ad_metrics()
        assert m.ctr == 1.0
        assert m.data_quality_warning is True

    def test_store_failure(self, engine, store) -> None:
        store.fail_next(1)
        with pytest.raises(AggregationError) as exc:
            engine.compute_ad_metrics()
        assert exc.value.metric == "ads"


class TestLiveMetrics:
    def test_live_numbers(self, engine, store, time_port) -> None:
        now = time_port.now_utc()
        article = add_article(store, now - timedelta(days=2))
        add_article(store, now - timedelta(days=20))
        add_view(store, time_port, article.id, "10.0.0.1", now - timedelta(minutes=2))
        add_view(store, time_port, article.id, "10.0.0.2", now - timedelta(minutes=4))
        add_view(store, time_port, article.id, "10.0.0.3", now - timedelta(minutes=30))
        add_view(store, time_port, article.id, "10.0.0.4", now - timedelta(days=1))
        add_comment(store, article.id, now - timedelta(hours=1))
        add_comment(store, article.id, now - timedelta(hours=1), approved=False)
        add_comment(store, article.id, now - timedelta(days=1))

        m = engine.compute_live_metrics()

        assert m.current_visitors == 2
        assert m.today_views == 3
        assert m.today_comments == 1
        assert m.active_articles == 1

    def test_store_failure(self, engine, store) -> None:
        store.fail_next(1)
        with pytest.raises(AggregationError) as exc:
            engine.compute_live_metrics()
        assert exc.value.metric == "live"


class TestOverviewMetrics:
    def test_empty_site(self, engine) -> None:
        m = engine.compute_overview_metrics()
        assert m.total_articles == 0
        assert m.total_views == 0
        assert m.engagement_rate == 0.0
        assert m.engagement_rate_percent == 0
        assert m.popular_categories == []
        assert m.activity_feed == []

    def test_totals(self, engine, store, time_port) -> None:
        now = time_port.now_utc()
        sport = add_article(store, now - timedelta(days=1), category="Sport", title="Match")
        add_article(store, now - timedelta(days=2), category="Sport")
        add_article(store, now - timedelta(days=3), category="Arts")
        for i in range(8):
            add_view(store, time_port, sport.id, f"10.0.0.{i}", now - timedelta(hours=1))
        add_comment(store, sport.id, now - timedelta(minutes=30))
        add_comment(store, sport.id, now - timedelta(minutes=20))
        add_comment(store, sport.id, now - timedelta(minutes=10), approved=False)
        add_comment(store, sport.id, now - timedelta(minutes=5), spam=True)
        add_ad(store, "a", impressions=100, clicks=4)
        add_ad(store, "b", impressions=50, clicks=1)

        m = engine.compute_overview_metrics()

        assert m.total_articles == 3
        assert m.total_views == 8
        assert m.total_comments == 2
        assert (m.total_ad_impressions, m.total_ad_clicks) == (150, 5)
        assert m.engagement_rate == pytest.approx(0.25)
        assert m.engagement_rate_percent == 25
        assert [(c.category, c.article_count) for c in m.popular_categories] == [
            ("Sport", 2),
            ("Arts", 1),
        ]
        assert [i.kind for i in m.activity_feed] == [
            "comment",
            "comment",
            "article",
            "article",
            "article",
        ]
        assert m.computed_at == now

    def test_store_failure(self, engine, store) -> None:
        store.fail_next(1)
        with pytest.raises(AggregationError) as exc:
            engine.compute_overview_metrics()
        assert exc.value.metric == "overview"
