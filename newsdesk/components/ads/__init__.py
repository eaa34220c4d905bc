"""
Ads component - Advertisement lifecycle evaluation.
"""

from .component import (
    ad_stats,
    click_through_rate,
    effective_state,
    eligible_ads,
    filter_ads,
    is_eligible,
    run,
    run_eligible_ads,
    run_filter_ads,
    status_badge,
)
from .models import (
    AdListOutput,
    AdState,
    AdStatsOutput,
    AdView,
    EligibleAdsInput,
    FilterAdsInput,
)
from .ports import AdStorePort, TimePort

__all__ = [
    # Component functions
    "run",
    "run_eligible_ads",
    "run_filter_ads",
    # Pure functions
    "ad_stats",
    "click_through_rate",
    "effective_state",
    "eligible_ads",
    "filter_ads",
    "is_eligible",
    "status_badge",
    # Models
    "AdListOutput",
    "AdState",
    "AdStatsOutput",
    "AdView",
    "EligibleAdsInput",
    "FilterAdsInput",
    # Ports
    "AdStorePort",
    "TimePort",
]
