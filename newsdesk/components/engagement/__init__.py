"""
Engagement component - View, impression and click collection.
"""

from .component import (
    VISIBILITY_ROOT_MARGIN_PX,
    VISIBILITY_THRESHOLD,
    VisibilitySession,
    run,
    run_record_ad_click,
    run_record_ad_impression,
    run_record_view,
    validate_view_input,
    view_day_for,
)
from .models import (
    AdCounterOutput,
    EngagementValidationError,
    RecordAdClickInput,
    RecordAdImpressionInput,
    RecordViewInput,
    RecordViewOutput,
)
from .ports import AdStorePort, ArticleReadPort, EventSinkPort, TimePort, ViewStorePort

__all__ = [
    # Component functions
    "run",
    "run_record_view",
    "run_record_ad_impression",
    "run_record_ad_click",
    # Pure functions
    "validate_view_input",
    "view_day_for",
    # Client policy
    "VISIBILITY_THRESHOLD",
    "VISIBILITY_ROOT_MARGIN_PX",
    "VisibilitySession",
    # Models
    "AdCounterOutput",
    "EngagementValidationError",
    "RecordAdClickInput",
    "RecordAdImpressionInput",
    "RecordViewInput",
    "RecordViewOutput",
    # Ports
    "AdStorePort",
    "ArticleReadPort",
    "EventSinkPort",
    "TimePort",
    "ViewStorePort",
]
