from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from newsdesk.api import deps
from newsdesk.api.routes import admin_ads, admin_analytics, admin_moderation, public_engagement
from newsdesk.components.analytics import AggregationEngine
from newsdesk.components.realtime import RefreshCoordinator, create_refresh_coordinator
from newsdesk.rules.models import Rules


@pytest.fixture
def rules() -> Rules:
    return Rules()


@pytest.fixture
def engine(store, time_port) -> AggregationEngine:
    return AggregationEngine(store, store, store, store, time_port)


@pytest.fixture
def coordinator(feed, engine) -> RefreshCoordinator:
    """Not started: snapshots are computed on request or via /refresh."""
    return create_refresh_coordinator(feed, engine)


@pytest.fixture
def app(store, time_port, event_log, rules, coordinator) -> FastAPI:
    """Test FastAPI app with every router, backed by the in-memory store."""
    app = FastAPI()
    app.include_router(public_engagement.router, prefix="/api/public")
    app.include_router(admin_moderation.router, prefix="/api/admin/comments")
    app.include_router(admin_analytics.router, prefix="/api/admin/analytics")
    app.include_router(admin_ads.router, prefix="/api/admin/ads")

    app.dependency_overrides[deps.get_article_repo] = lambda: store
    app.dependency_overrides[deps.get_view_repo] = lambda: store
    app.dependency_overrides[deps.get_ad_repo] = lambda: store
    app.dependency_overrides[deps.get_comment_repo] = lambda: store
    app.dependency_overrides[deps.get_time_port] = lambda: time_port
    app.dependency_overrides[deps.get_event_log] = lambda: event_log
    app.dependency_overrides[deps.get_rules] = lambda: rules
    app.dependency_overrides[deps.get_refresh_coordinator] = lambda: coordinator
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
