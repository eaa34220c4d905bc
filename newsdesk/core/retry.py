"""
Retry with backoff at the Event Store Adapter boundary.

Only TransientStoreError is retried. Used for best-effort telemetry writes
(views, impressions, clicks); moderation commands never go through here so
that operators see the failure immediately.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from newsdesk.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BACKOFF_SECONDS: tuple[float, ...] = (0.05, 0.2, 0.5)


def backoff_delay(attempt: int, backoff_seconds: tuple[float, ...]) -> float | None:
    """
    Delay before retry number `attempt` (1-based).

    Returns None once the schedule is exhausted.
    """
    if attempt < 1 or attempt > len(backoff_seconds):
        return None
    return backoff_seconds[attempt - 1]


def with_retry(
    operation: Callable[[], T],
    *,
    backoff_seconds: tuple[float, ...] = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "store call",
) -> T:
    """
    Run operation, retrying transient store failures per the backoff schedule.

    The last TransientStoreError is re-raised when retries run out. Any other
    exception propagates on the first occurrence.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except TransientStoreError as e:
            attempt += 1
            delay = backoff_delay(attempt, backoff_seconds)
            if delay is None:
                logger.warning("%s failed after %d attempts: %s", label, attempt, e)
                raise
            logger.debug(
                "%s transient failure (attempt %d), retrying in %.2fs", label, attempt, delay
            )
            sleep(delay)
