"""
Change-feed and event-sink interfaces.

The change feed is keyed by table name and delivers ChangeEvent
notifications. Subscribing may fail (feed unavailable); callers fall back
to periodic polling.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Protocol

from newsdesk.core.entities import ChangeEvent, EngagementEvent
from newsdesk.core.errors import NewsdeskError

ChangeHandler = Callable[[ChangeEvent], None]


class SubscriptionError(NewsdeskError):
    """Raised when the change feed cannot be subscribed to."""


class SubscriptionPort(Protocol):
    """Handle returned by a successful subscription."""

    def unsubscribe(self) -> None:
        """Stop delivering events to the handler."""
        ...


class ChangeFeedPort(Protocol):
    """Realtime change feed."""

    def subscribe(self, tables: Iterable[str], handler: ChangeHandler) -> SubscriptionPort:
        """Deliver changes on the given tables to handler. May raise SubscriptionError."""
        ...

    def publish(self, event: ChangeEvent) -> None:
        """Publish a change to all matching subscribers."""
        ...


class EventSinkPort(Protocol):
    """Receives engagement events as they are accepted."""

    def emit(self, event: EngagementEvent) -> None:
        """Record an engagement event."""
        ...
