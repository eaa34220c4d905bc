"""
Schema migrations for the SQLite event store.

Each ``migrations/NNNN_name.sql`` file holds an up script, optionally followed
by a ``-- Down`` section that is kept for operators and never run here.
Applied files are recorded with a SHA-256 of their up script so that an edit
to an already-applied migration is caught instead of silently diverging.
"""

import hashlib
import logging
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DOWN_MARKER = "-- Down"


@dataclass(frozen=True)
class Migration:
    name: str
    up_sql: str
    checksum: str


def read_migration(path: Path) -> Migration:
    up_sql = path.read_text(encoding="utf-8").split(DOWN_MARKER, 1)[0]
    checksum = hashlib.sha256(up_sql.strip().encode("utf-8")).hexdigest()
    return Migration(name=path.name, up_sql=up_sql, checksum=checksum)


class SQLiteMigrator:
    """Applies pending migration files in filename order."""

    def __init__(self, db_path: str, migrations_dir: str):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def discover(self) -> list[Migration]:
        return [read_migration(p) for p in sorted(self.migrations_dir.glob("*.sql"))]

    def pending(self) -> list[str]:
        """Names of migrations not yet recorded in the database."""
        with closing(sqlite3.connect(self.db_path)) as conn:
            applied = self._applied(conn)
        return [m.name for m in self.discover() if m.name not in applied]

    def run_migrations(self) -> list[str]:
        """
        Apply every pending migration.

        Returns the names applied in this call (empty when up to date).
        Raises RuntimeError if a migration fails or an applied file changed.
        """
        applied_now: list[str] = []
        with closing(sqlite3.connect(self.db_path)) as conn:
            applied = self._applied(conn)
            for migration in self.discover():
                recorded = applied.get(migration.name)
                if recorded is None:
                    self._apply(conn, migration)
                    applied_now.append(migration.name)
                elif recorded != migration.checksum:
                    raise RuntimeError(
                        f"Migration {migration.name} was modified after being applied"
                    )
        return applied_now

    def _applied(self, conn: sqlite3.Connection) -> dict[str, str]:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _migrations (
                filename TEXT PRIMARY KEY,
                checksum TEXT NOT NULL,
                applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        return dict(conn.execute("SELECT filename, checksum FROM _migrations").fetchall())

    def _apply(self, conn: sqlite3.Connection, migration: Migration) -> None:
        logger.info("Applying migration %s", migration.name)
        try:
            conn.executescript(migration.up_sql)
            conn.execute(
                "INSERT INTO _migrations (filename, checksum) VALUES (?, ?)",
                (migration.name, migration.checksum),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RuntimeError(f"Migration {migration.name} failed: {e}") from e
