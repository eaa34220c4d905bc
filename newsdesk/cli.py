import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path

from newsdesk.adapters.sqlite.migrator import SQLiteMigrator
from newsdesk.adapters.sqlite.repos import (
    SQLiteAdRepo,
    SQLiteArticleRepo,
    SQLiteCommentRepo,
    SQLiteViewRepo,
)
from newsdesk.adapters.time_site import SiteTimeAdapter
from newsdesk.components.analytics import AggregationEngine
from newsdesk.core.entities import Advertisement, Article
from newsdesk.core.errors import AggregationError
from newsdesk.rules.loader import load_rules
from newsdesk.rules.models import Rules

logger = logging.getLogger("newsdesk.cli")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DB_NAME = "newsdesk.db"


def get_rules(rules_path: Path) -> Rules:
    if not rules_path.exists():
        logger.warning("Rules file %s not found, using defaults", rules_path)
        return Rules()
    return load_rules(rules_path)


def handle_migrate(db_path: str, status_only: bool = False) -> None:
    migrator = SQLiteMigrator(db_path, str(PROJECT_ROOT / "migrations"))
    if status_only:
        pending = migrator.pending()
        for name in pending:
            print(f"Pending {name}")
        if not pending:
            print("Database is up to date.")
        return

    applied = migrator.run_migrations()
    if applied:
        for name in applied:
            print(f"Applied {name}")
    else:
        print("Database is up to date.")


def handle_seed(db_path: str, rules: Rules) -> None:
    """Demo articles and ads for a local dashboard."""
    handle_migrate(db_path)
    clock = SiteTimeAdapter(rules.site.timezone)
    now = clock.now_utc()

    articles = SQLiteArticleRepo(db_path)
    for i, category in enumerate(["Politics", "Sport", "Culture", None]):
        articles.save(
            Article(
                title=f"Sample story {i + 1}",
                category=category,
                published_at=now - timedelta(days=i * 3),
            )
        )

    ads = SQLiteAdRepo(db_path)
    ads.save(
        Advertisement(
            name="House banner",
            image_url="https://placehold.co/728x90",
            link_url="https://example.com/subscribe",
            placement="header_banner",
        )
    )
    ads.save(
        Advertisement(
            name="Autumn campaign",
            image_url="https://placehold.co/300x250",
            link_url="https://example.com/autumn",
            placement="sidebar_rectangle",
            start_date=now + timedelta(days=7),
        )
    )
    print(f"Seeded 4 articles and 2 ads into {db_path}")


def handle_metrics(db_path: str, rules: Rules, metric: str) -> None:
    engine = AggregationEngine(
        SQLiteArticleRepo(db_path),
        SQLiteViewRepo(db_path),
        SQLiteAdRepo(db_path),
        SQLiteCommentRepo(db_path),
        SiteTimeAdapter(rules.site.timezone),
        top_n=rules.analytics.top_n,
        trend_days=rules.analytics.trend_days,
        live_window_minutes=rules.analytics.live_window_minutes,
        active_article_days=rules.analytics.active_article_days,
    )
    compute = {
        "articles": engine.compute_article_metrics,
        "ads": engine.compute_ad_metrics,
        "live": engine.compute_live_metrics,
        "overview": engine.compute_overview_metrics,
    }[metric]
    try:
        snapshot = compute()
    except AggregationError as e:
        logger.error("%s", e)
        sys.exit(1)
    print(json.dumps(asdict(snapshot), indent=2, default=str))


def handle_serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("newsdesk.api.main:app", host=host, port=port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Newsdesk engagement CLI")
    parser.add_argument("--data-dir", default="./data", help="Directory holding newsdesk.db")
    parser.add_argument("--rules", default="rules.yaml", help="Path to rules.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate_parser = subparsers.add_parser("migrate", help="Apply pending migrations")
    migrate_parser.add_argument(
        "--status", action="store_true", help="List pending migrations without applying"
    )
    subparsers.add_parser("seed", help="Insert demo articles and ads")

    metrics_parser = subparsers.add_parser("metrics", help="Print a dashboard snapshot")
    metrics_parser.add_argument("metric", choices=["articles", "ads", "live", "overview"])

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    data_dir = Path(args.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = str(data_dir / DB_NAME)

    if args.command == "migrate":
        handle_migrate(db_path, status_only=args.status)
    elif args.command == "seed":
        handle_seed(db_path, get_rules(Path(args.rules)))
    elif args.command == "metrics":
        handle_metrics(db_path, get_rules(Path(args.rules)), args.metric)
    elif args.command == "serve":
        handle_serve(args.host, args.port)


if __name__ == "__main__":
    main()
