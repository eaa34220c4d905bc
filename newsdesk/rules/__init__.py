from .loader import load_rules
from .models import (
    AnalyticsRules,
    EngagementRules,
    ModerationRules,
    RealtimeRules,
    Rules,
    SiteRules,
)

__all__ = [
    "load_rules",
    "AnalyticsRules",
    "EngagementRules",
    "ModerationRules",
    "RealtimeRules",
    "Rules",
    "SiteRules",
]
