"""
Aggregation engine port definitions.
"""

from __future__ import annotations

from newsdesk.core.ports.store import (
    AdStorePort,
    ArticleReadPort,
    CommentStorePort,
    ViewStorePort,
)
from newsdesk.core.ports.time import TimePort

__all__ = ["AdStorePort", "ArticleReadPort", "CommentStorePort", "TimePort", "ViewStorePort"]
