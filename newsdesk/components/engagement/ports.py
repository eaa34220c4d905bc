"""
Engagement collector port definitions.
"""

from __future__ import annotations

from newsdesk.core.ports.feed import EventSinkPort
from newsdesk.core.ports.store import AdStorePort, ArticleReadPort, ViewStorePort
from newsdesk.core.ports.time import TimePort

__all__ = ["AdStorePort", "ArticleReadPort", "EventSinkPort", "TimePort", "ViewStorePort"]
