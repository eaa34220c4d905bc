from .migrator import SQLiteMigrator
from .repos import (
    SQLiteAdRepo,
    SQLiteArticleRepo,
    SQLiteCommentRepo,
    SQLiteViewRepo,
    dict_factory,
    parse_dt,
    to_iso,
)

__all__ = [
    "SQLiteMigrator",
    "SQLiteAdRepo",
    "SQLiteArticleRepo",
    "SQLiteCommentRepo",
    "SQLiteViewRepo",
    "dict_factory",
    "parse_dt",
    "to_iso",
]
