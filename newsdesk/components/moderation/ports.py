"""
Moderation component port definitions.
"""

from __future__ import annotations

from newsdesk.core.ports.feed import EventSinkPort
from newsdesk.core.ports.store import ArticleReadPort, CommentStorePort
from newsdesk.core.ports.time import TimePort

__all__ = ["ArticleReadPort", "CommentStorePort", "EventSinkPort", "TimePort"]
