"""Domain layer package."""

from .models import (
    AlertSeverity,
    AttributionModel,
    AttributionResult,
    Campaign,
    CampaignGoals,
    ChannelType,
    ConversionPath,
    DashboardInput,
    Flight,
    GroupMetrics,
    IncrementalityResult,
    IncrementalityTest,
    LiftRecommendation,
    Line,
    ModelComparison,
    PerformanceMetrics,
    Placement,
    PredictiveAlert,
    Segment,
    SegmentCategory,
    Touchpoint,
    rollup_delivery,
    rollup_forecast,
)
from .recommendation import format_lift, recommendation_message

__all__ = [
    "AlertSeverity",
    "AttributionModel",
    "AttributionResult",
    "Campaign",
    "CampaignGoals",
    "ChannelType",
    "ConversionPath",
    "DashboardInput",
    "Flight",
    "GroupMetrics",
    "IncrementalityResult",
    "IncrementalityTest",
    "LiftRecommendation",
    "Line",
    "ModelComparison",
    "PerformanceMetrics",
    "Placement",
    "PredictiveAlert",
    "Segment",
    "SegmentCategory",
    "Touchpoint",
    "format_lift",
    "recommendation_message",
    "rollup_delivery",
    "rollup_forecast",
]
