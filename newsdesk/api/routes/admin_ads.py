"""
Admin Advertisement API (read side).

Lists ads with their derived lifecycle state. Ad CRUD lives elsewhere.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from newsdesk.api.deps import get_ad_repo, get_time_port
from newsdesk.components.ads import (
    AdState,
    FilterAdsInput,
    ad_stats,
    run_filter_ads,
    status_badge,
)
from newsdesk.core.errors import StoreError
from newsdesk.core.ports import AdStorePort, TimePort

router = APIRouter()


class AdminAdResponse(BaseModel):
    id: str
    name: str
    image_url: str
    link_url: str
    placement: str
    is_active: bool
    start_date: datetime | None
    end_date: datetime | None
    impressions: int
    clicks: int
    ctr: float
    state: str
    badge: str


class AdStatsResponse(BaseModel):
    total_ads: int
    active_ads: int
    total_impressions: int
    total_clicks: int
    ctr: float


def _store_unavailable(e: StoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Store unavailable: {e}",
    )


@router.get("", response_model=list[AdminAdResponse])
def list_ads(
    state: AdState | None = Query(None),
    placement: str | None = Query(None),
    search: str | None = Query(None),
    ads: AdStorePort = Depends(get_ad_repo),
    time_port: TimePort = Depends(get_time_port),
) -> list[AdminAdResponse]:
    try:
        result = run_filter_ads(
            FilterAdsInput(search=search, placement=placement, state=state),
            store=ads,
            time_port=time_port,
        )
    except StoreError as e:
        raise _store_unavailable(e) from e
    return [
        AdminAdResponse(
            id=str(v.ad.id),
            name=v.ad.name,
            image_url=v.ad.image_url,
            link_url=v.ad.link_url,
            placement=v.ad.placement,
            is_active=v.ad.is_active,
            start_date=v.ad.start_date,
            end_date=v.ad.end_date,
            impressions=v.ad.impressions,
            clicks=v.ad.clicks,
            ctr=v.ctr,
            state=v.state.value,
            badge=status_badge(v.state),
        )
        for v in result.ads
    ]


@router.get("/stats", response_model=AdStatsResponse)
def get_ad_stats(
    ads: AdStorePort = Depends(get_ad_repo),
    time_port: TimePort = Depends(get_time_port),
) -> AdStatsResponse:
    try:
        stats = ad_stats(ads.list_advertisements(), time_port.now_utc())
    except StoreError as e:
        raise _store_unavailable(e) from e
    return AdStatsResponse(
        total_ads=stats.total_ads,
        active_ads=stats.active_ads,
        total_impressions=stats.total_impressions,
        total_clicks=stats.total_clicks,
        ctr=stats.ctr,
    )
