"""Media campaign analytics package."""

from .attribution import (
    AttributionEngine,
    calculate_attribution,
    compare_models,
    path_credits,
    roas_by_model,
    time_to_conversion_distribution,
    touchpoint_frequency_distribution,
)
from .audience_overlap import (
    AudienceOverlapEngine,
    CategoryOverlap,
    OverlapProvider,
    SeededJitterOverlap,
    aggregate_segment_performance,
    calculate_average_overlap,
    calculate_overlap,
    calculate_overlap_matrix,
    calculate_unique_reach,
    find_lookalike_segments,
    find_optimal_segments_to_remove,
    find_segment,
    generate_expansion_recommendations,
)
from .exceptions import AnalyticsError, InvalidModelError, InvalidTestInputError, RecordParseError
from .incrementality import IncrementalityCalculator, calculate_incrementality
from .predictive import (
    PredictiveAnalytics,
    analyze_budget_pacing,
    assess_delivery_risk,
    get_all_alerts,
    identify_opportunities,
    predict_performance,
)
from .application import AnalysisResult, run_dashboard_analysis

__all__ = [
    "AttributionEngine",
    "calculate_attribution",
    "compare_models",
    "path_credits",
    "roas_by_model",
    "time_to_conversion_distribution",
    "touchpoint_frequency_distribution",
    "IncrementalityCalculator",
    "calculate_incrementality",
    "PredictiveAnalytics",
    "analyze_budget_pacing",
    "predict_performance",
    "assess_delivery_risk",
    "identify_opportunities",
    "get_all_alerts",
    "AudienceOverlapEngine",
    "OverlapProvider",
    "CategoryOverlap",
    "SeededJitterOverlap",
    "calculate_overlap",
    "calculate_overlap_matrix",
    "calculate_unique_reach",
    "calculate_average_overlap",
    "find_optimal_segments_to_remove",
    "aggregate_segment_performance",
    "find_lookalike_segments",
    "generate_expansion_recommendations",
    "find_segment",
    "AnalyticsError",
    "InvalidModelError",
    "InvalidTestInputError",
    "RecordParseError",
    "AnalysisResult",
    "run_dashboard_analysis",
]
