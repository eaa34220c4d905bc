"""
Ad Lifecycle Evaluator.

effective_state is a pure, total function of (is_active, start_date,
end_date, now). Evaluation order matters:

1. Inactive  - is_active is false, whatever the dates say
2. Scheduled - start_date is set and still in the future
3. Expired   - end_date is set and already in the past
4. Active

Both bounds are inclusive: an ad is Active at exactly start_date and at
exactly end_date.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from newsdesk.core.entities import Advertisement

from .models import (
    AdListOutput,
    AdState,
    AdStatsOutput,
    AdView,
    EligibleAdsInput,
    FilterAdsInput,
)
from .ports import AdStorePort, TimePort

STATUS_BADGES: dict[AdState, str] = {
    AdState.INACTIVE: "Inactive",
    AdState.SCHEDULED: "Scheduled",
    AdState.ACTIVE: "Active",
    AdState.EXPIRED: "Expired",
}


# --- Pure Functions (Functional Core) ---


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def effective_state(ad: Advertisement, now: datetime) -> AdState:
    """Derive the lifecycle state of an ad at `now`."""
    if not ad.is_active:
        return AdState.INACTIVE

    now = _aware(now)
    if ad.start_date is not None and _aware(ad.start_date) > now:
        return AdState.SCHEDULED
    if ad.end_date is not None and _aware(ad.end_date) < now:
        return AdState.EXPIRED
    return AdState.ACTIVE


def is_eligible(ad: Advertisement, now: datetime) -> bool:
    """Only Active ads are displayed and accrue impressions/clicks."""
    return effective_state(ad, now) is AdState.ACTIVE


def click_through_rate(clicks: int, impressions: int) -> float:
    """
    clicks / impressions, clamped to [0, 1].

    Zero impressions gives 0.0. Clicks exceeding impressions is a data
    quality problem, reported separately by the aggregation engine.
    """
    if impressions <= 0 or clicks <= 0:
        return 0.0
    return min(clicks / impressions, 1.0)


def status_badge(state: AdState) -> str:
    """Dashboard label for a state."""
    return STATUS_BADGES[state]


def eligible_ads(
    ads: Iterable[Advertisement],
    now: datetime,
    placement: str | None = None,
) -> list[Advertisement]:
    """Ads to show on the public site, newest first."""
    result = [
        ad
        for ad in ads
        if is_eligible(ad, now) and (placement is None or ad.placement == placement)
    ]
    return sorted(result, key=lambda a: a.created_at, reverse=True)


def filter_ads(
    ads: Iterable[Advertisement],
    now: datetime,
    search: str | None = None,
    placement: str | None = None,
    state: AdState | None = None,
) -> list[AdView]:
    """Admin list: case-insensitive name search, placement and state filters."""
    needle = search.strip().lower() if search else ""
    result: list[AdView] = []
    for ad in ads:
        if needle and needle not in ad.name.lower():
            continue
        if placement and ad.placement != placement:
            continue
        ad_state = effective_state(ad, now)
        if state is not None and ad_state is not state:
            continue
        result.append(
            AdView(ad=ad, state=ad_state, ctr=click_through_rate(ad.clicks, ad.impressions))
        )
    return result


def ad_stats(ads: Iterable[Advertisement], now: datetime) -> AdStatsOutput:
    ads = list(ads)
    impressions = sum(a.impressions for a in ads)
    clicks = sum(a.clicks for a in ads)
    return AdStatsOutput(
        total_ads=len(ads),
        active_ads=sum(1 for a in ads if is_eligible(a, now)),
        total_impressions=impressions,
        total_clicks=clicks,
        ctr=click_through_rate(clicks, impressions),
    )


# --- Component Entry Points ---


def run_eligible_ads(
    inp: EligibleAdsInput,
    *,
    store: AdStorePort,
    time_port: TimePort | None = None,
) -> AdListOutput:
    """Public display list for a placement."""
    now = inp.now or (time_port.now_utc() if time_port else datetime.now(UTC))
    ads = eligible_ads(store.list_advertisements(inp.placement), now, inp.placement)
    return AdListOutput(
        ads=[
            AdView(ad=a, state=AdState.ACTIVE, ctr=click_through_rate(a.clicks, a.impressions))
            for a in ads
        ]
    )


def run_filter_ads(
    inp: FilterAdsInput,
    *,
    store: AdStorePort,
    time_port: TimePort | None = None,
) -> AdListOutput:
    """Admin ad list with derived states."""
    now = inp.now or (time_port.now_utc() if time_port else datetime.now(UTC))
    return AdListOutput(
        ads=filter_ads(
            store.list_advertisements(),
            now,
            search=inp.search,
            placement=inp.placement,
            state=inp.state,
        )
    )


def run(
    inp: EligibleAdsInput | FilterAdsInput,
    *,
    store: AdStorePort,
    time_port: TimePort | None = None,
) -> AdListOutput:
    """Main entry point for the ads component."""
    if isinstance(inp, EligibleAdsInput):
        return run_eligible_ads(inp, store=store, time_port=time_port)
    elif isinstance(inp, FilterAdsInput):
        return run_filter_ads(inp, store=store, time_port=time_port)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
