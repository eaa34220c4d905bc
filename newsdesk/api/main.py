import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newsdesk import __version__
from newsdesk.adapters.sqlite.migrator import SQLiteMigrator
from newsdesk.api.deps import get_refresh_coordinator, get_rules, get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(
        level=os.environ.get("NEWSDESK_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()

    # Load rules and migrate on startup (fail-fast)
    try:
        get_rules()
        logger.info("Rules loaded from %s", settings.rules_path)
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        applied = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
        if applied:
            logger.info("Applied %d migrations", len(applied))
    except (ValueError, RuntimeError, OSError) as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(1)

    coordinator = get_refresh_coordinator()
    coordinator.start()

    yield

    coordinator.stop()


app = FastAPI(
    title="Newsdesk Engagement API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from newsdesk.api.routes import (  # noqa: E402
    admin_ads,
    admin_analytics,
    admin_moderation,
    public_engagement,
)

app.include_router(public_engagement.router, prefix="/api/public", tags=["Public"])
app.include_router(admin_moderation.router, prefix="/api/admin/comments", tags=["Admin Comments"])
app.include_router(admin_analytics.router, prefix="/api/admin/analytics", tags=["Admin Analytics"])
app.include_router(admin_ads.router, prefix="/api/admin/ads", tags=["Admin Ads"])


# CORS (Allow Frontend)
origins = [
    o.strip()
    for o in os.environ.get(
        "NEWSDESK_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "newsdesk"}
