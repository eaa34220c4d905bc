"""
Port interfaces (protocols) for external collaborators.

- store: Event Store Adapter (views, ads, comments, article reads)
- time: clock + site timezone
- feed: realtime change feed and engagement event sink
"""

from .feed import (
    ChangeFeedPort,
    ChangeHandler,
    EventSinkPort,
    SubscriptionError,
    SubscriptionPort,
)
from .store import AdStorePort, ArticleReadPort, CommentStorePort, ViewStorePort
from .time import TimePort

__all__ = [
    "AdStorePort",
    "ArticleReadPort",
    "ChangeFeedPort",
    "ChangeHandler",
    "CommentStorePort",
    "EventSinkPort",
    "SubscriptionError",
    "SubscriptionPort",
    "TimePort",
    "ViewStorePort",
]
