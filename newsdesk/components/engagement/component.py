"""
Engagement Event Collector.

Records article views, ad impressions and ad clicks as best-effort
telemetry. Store failures are logged and reported in the output; they are
never raised to the page render or click navigation that triggered them.

Invariants:
- At most one view per (article, viewer IP, site-local day). Enforced by the
  store's atomic insert-if-absent; a uniqueness conflict is a no-op.
- Only Active ads accrue impressions and clicks, whatever the client sends.
- Every accepted impression/click call increments once. Visibility-session
  dedup happens on the client (see VisibilitySession).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from newsdesk.components.ads import AdState, effective_state
from newsdesk.core.entities import (
    AdClick,
    AdCounter,
    AdImpression,
    ArticleView,
    EngagementEvent,
    ViewRecorded,
)
from newsdesk.core.errors import ConstraintViolation, NotFoundError, StoreError
from newsdesk.core.retry import DEFAULT_BACKOFF_SECONDS, with_retry

from .models import (
    AdCounterOutput,
    EngagementValidationError,
    RecordAdClickInput,
    RecordAdImpressionInput,
    RecordViewInput,
    RecordViewOutput,
)
from .ports import AdStorePort, ArticleReadPort, EventSinkPort, TimePort, ViewStorePort

logger = logging.getLogger(__name__)

# --- Client visibility policy ---

VISIBILITY_THRESHOLD = 0.5
VISIBILITY_ROOT_MARGIN_PX = 50

MAX_IP_LENGTH = 64


class VisibilitySession:
    """
    Client-side impression policy for one ad element.

    observe() is fed intersection ratios. It returns True exactly when the
    element enters the visibility band, which is when the client should call
    record_ad_impression. Leaving the band re-arms the tracker, so a later
    re-entry counts as a new session.
    """

    def __init__(self, threshold: float = VISIBILITY_THRESHOLD) -> None:
        self.threshold = threshold
        self.visible = False
        self.sessions = 0

    def observe(self, ratio: float) -> bool:
        if ratio >= self.threshold:
            if self.visible:
                return False
            self.visible = True
            self.sessions += 1
            return True
        self.visible = False
        return False


# --- Pure Functions (Functional Core) ---


def validate_view_input(inp: RecordViewInput) -> list[EngagementValidationError]:
    errors: list[EngagementValidationError] = []
    ip = (inp.viewer_ip or "").strip()
    if not ip:
        errors.append(
            EngagementValidationError(
                code="viewer_ip_required",
                message="Viewer IP is required",
                field_name="viewer_ip",
            )
        )
    elif len(ip) > MAX_IP_LENGTH:
        errors.append(
            EngagementValidationError(
                code="viewer_ip_too_long",
                message=f"Viewer IP exceeds {MAX_IP_LENGTH} characters",
                field_name="viewer_ip",
            )
        )
    return errors


def view_day_for(viewed_at: datetime, time_port: TimePort | None) -> str:
    """Site-local calendar day (YYYY-MM-DD) used as the dedup key."""
    if time_port is not None:
        return time_port.local_date(viewed_at).isoformat()
    if viewed_at.tzinfo is None:
        viewed_at = viewed_at.replace(tzinfo=UTC)
    return viewed_at.astimezone(UTC).date().isoformat()


def _now(timestamp: datetime | None, time_port: TimePort | None) -> datetime:
    if timestamp is not None:
        return timestamp
    if time_port is not None:
        return time_port.now_utc()
    return datetime.now(UTC)


def _emit(sink: EventSinkPort | None, event: EngagementEvent) -> None:
    if sink is not None:
        sink.emit(event)


# --- Component Entry Points ---


def run_record_view(
    inp: RecordViewInput,
    *,
    store: ViewStorePort,
    articles: ArticleReadPort | None = None,
    time_port: TimePort | None = None,
    sink: EventSinkPort | None = None,
    backoff_seconds: tuple[float, ...] = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> RecordViewOutput:
    """
    Record a view unless the viewer already viewed the article today.

    When an articles port is given, views of unknown or unpublished
    articles are refused without a write.
    """
    errors = validate_view_input(inp)
    if errors:
        return RecordViewOutput(recorded=False, errors=errors, success=False)

    now = _now(inp.timestamp, time_port)
    view = ArticleView(
        article_id=inp.article_id,
        viewer_ip=inp.viewer_ip.strip(),
        viewed_at=now,
        view_day=view_day_for(now, time_port),
    )

    try:
        if articles is not None:
            article = with_retry(
                lambda: articles.get_article(inp.article_id),
                backoff_seconds=backoff_seconds,
                sleep=sleep,
                label="get_article",
            )
            if article is None or not article.is_published:
                return RecordViewOutput(
                    recorded=False,
                    errors=[
                        EngagementValidationError(
                            code="article_not_found",
                            message=f"Article {inp.article_id} not found",
                            field_name="article_id",
                        )
                    ],
                    success=False,
                )

        inserted = with_retry(
            lambda: store.insert_view_if_absent(view),
            backoff_seconds=backoff_seconds,
            sleep=sleep,
            label="insert_view",
        )
    except ConstraintViolation:
        # Lost a race with an identical insert: the day's view exists.
        return RecordViewOutput(recorded=False)
    except StoreError as e:
        logger.warning("Dropping view of article %s: %s", inp.article_id, e)
        return RecordViewOutput(
            recorded=False,
            errors=[
                EngagementValidationError(code="store_unavailable", message=str(e))
            ],
            success=False,
        )

    if not inserted:
        return RecordViewOutput(recorded=False)

    _emit(sink, ViewRecorded(article_id=view.article_id, occurred_at=now))
    return RecordViewOutput(recorded=True, view=view)


def _count_ad_event(
    ad_id: UUID,
    counter: AdCounter,
    now: datetime,
    *,
    store: AdStorePort,
    backoff_seconds: tuple[float, ...],
    sleep: Callable[[float], None],
) -> AdCounterOutput:
    target_url: str | None = None
    try:
        ad = with_retry(
            lambda: store.get_advertisement(ad_id),
            backoff_seconds=backoff_seconds,
            sleep=sleep,
            label="get_advertisement",
        )
        if ad is None:
            return AdCounterOutput(ad_id=ad_id, counted=False, reason="not_found")

        target_url = ad.link_url
        state = effective_state(ad, now)
        if state is not AdState.ACTIVE:
            logger.debug("Ignoring %s for %s ad %s", counter, state.value, ad_id)
            return AdCounterOutput(
                ad_id=ad_id, counted=False, reason=state.value, target_url=target_url
            )

        value = with_retry(
            lambda: store.increment_ad_counter(ad_id, counter),
            backoff_seconds=backoff_seconds,
            sleep=sleep,
            label=f"increment_{counter}",
        )
    except NotFoundError:
        return AdCounterOutput(
            ad_id=ad_id, counted=False, reason="not_found", target_url=target_url
        )
    except StoreError as e:
        logger.warning("Dropping %s for ad %s: %s", counter, ad_id, e)
        return AdCounterOutput(
            ad_id=ad_id,
            counted=False,
            reason="store_unavailable",
            target_url=target_url,
            errors=[EngagementValidationError(code="store_unavailable", message=str(e))],
            success=False,
        )

    return AdCounterOutput(ad_id=ad_id, counted=True, value=value, target_url=target_url)


def run_record_ad_impression(
    inp: RecordAdImpressionInput,
    *,
    store: AdStorePort,
    time_port: TimePort | None = None,
    sink: EventSinkPort | None = None,
    backoff_seconds: tuple[float, ...] = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> AdCounterOutput:
    """Count one impression for an Active ad."""
    now = _now(inp.timestamp, time_port)
    out = _count_ad_event(
        inp.ad_id,
        "impressions",
        now,
        store=store,
        backoff_seconds=backoff_seconds,
        sleep=sleep,
    )
    if out.counted:
        _emit(sink, AdImpression(ad_id=inp.ad_id, occurred_at=now))
    return out


def run_record_ad_click(
    inp: RecordAdClickInput,
    *,
    store: AdStorePort,
    time_port: TimePort | None = None,
    sink: EventSinkPort | None = None,
    backoff_seconds: tuple[float, ...] = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> AdCounterOutput:
    """
    Count one click for an Active ad and hand back the navigation target.

    target_url is returned even when the increment fails, so navigation is
    never blocked by telemetry.
    """
    now = _now(inp.timestamp, time_port)
    out = _count_ad_event(
        inp.ad_id,
        "clicks",
        now,
        store=store,
        backoff_seconds=backoff_seconds,
        sleep=sleep,
    )
    if out.counted:
        _emit(sink, AdClick(ad_id=inp.ad_id, occurred_at=now))
    return out


def run(
    inp: RecordViewInput | RecordAdImpressionInput | RecordAdClickInput,
    *,
    views: ViewStorePort,
    ads: AdStorePort,
    articles: ArticleReadPort | None = None,
    time_port: TimePort | None = None,
    sink: EventSinkPort | None = None,
) -> RecordViewOutput | AdCounterOutput:
    """Main entry point for the engagement collector."""
    if isinstance(inp, RecordViewInput):
        return run_record_view(
            inp, store=views, articles=articles, time_port=time_port, sink=sink
        )
    elif isinstance(inp, RecordAdImpressionInput):
        return run_record_ad_impression(inp, store=ads, time_port=time_port, sink=sink)
    elif isinstance(inp, RecordAdClickInput):
        return run_record_ad_click(inp, store=ads, time_port=time_port, sink=sink)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
