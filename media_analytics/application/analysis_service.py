"""Application service running every analytics engine over one dashboard input."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from media_analytics.attribution import (
    AttributionEngine,
    resolve_model,
    roas_by_model,
    time_to_conversion_distribution,
    touchpoint_frequency_distribution,
)
from media_analytics.audience_overlap import AudienceOverlapEngine, OverlapProvider, find_segment
from media_analytics.config import AnalyticsSettings, get_settings
from media_analytics.domain.models import (
    PERFORMANCE_METRICS,
    AttributionModel,
    AttributionResult,
    BudgetPacingAnalysis,
    Campaign,
    CampaignGoals,
    DashboardInput,
    DeliveryRiskAssessment,
    ExpansionRecommendation,
    IncrementalityResult,
    IncrementalityTest,
    LookalikeRecommendation,
    ModelComparison,
    OpportunityScore,
    PerformancePrediction,
    PredictiveAlert,
    Segment,
    SegmentPerformance,
)
from media_analytics.incrementality import IncrementalityCalculator
from media_analytics.predictive import PredictiveAnalytics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    model: AttributionModel
    generated_at: datetime
    attribution: list[AttributionResult]
    comparison: ModelComparison
    roas_by_model: list[dict[str, Any]]
    time_to_conversion: dict[str, int]
    touchpoint_frequency: dict[str, int]
    incrementality: list[Tuple[IncrementalityTest, IncrementalityResult]]
    pacing: list[BudgetPacingAnalysis]
    predictions: list[PerformancePrediction]
    risks: list[DeliveryRiskAssessment]
    opportunities: list[OpportunityScore]
    alerts: list[PredictiveAlert]
    selected_segments: list[Segment]
    overlap_matrix: list[list[float]]
    unique_reach: int
    removal_candidates: list[Segment]
    segment_performance: dict[str, SegmentPerformance]
    lookalikes: list[LookalikeRecommendation]
    expansion: dict[str, list[ExpansionRecommendation]]


def campaign_goals(campaign: Campaign) -> CampaignGoals:
    goals = campaign.numeric_goals or {}
    target_cpa = goals.get("targetCPA", goals.get("target_cpa"))
    return CampaignGoals(
        impressions=goals.get("impressions"),
        reach=goals.get("reach"),
        conversions=goals.get("conversions"),
        clicks=goals.get("clicks"),
        target_cpa=target_cpa,
    )


def _resolve_selected(data: DashboardInput) -> List[Segment]:
    selected: List[Segment] = []
    for key in data.selected_segment_ids:
        segment = find_segment(data.segments, key)
        if segment is None:
            logger.warning("Selected segment %r not found in segment library", key)
            continue
        selected.append(segment)
    return selected


def _best_segment(performance: Dict[str, SegmentPerformance]) -> Segment | None:
    if not performance:
        return None
    best = max(performance.values(), key=lambda perf: (perf.roas, perf.conversions))
    return best.segment


def run_dashboard_analysis(
    data: DashboardInput,
    model: AttributionModel | str = AttributionModel.LINEAR,
    now: datetime | None = None,
    settings: AnalyticsSettings | None = None,
    provider: OverlapProvider | None = None,
) -> AnalysisResult:
    """Run attribution, incrementality, predictive and audience analysis in one pass."""
    resolved = resolve_model(model)
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)

    attribution_engine = AttributionEngine(settings.attribution)
    comparison = attribution_engine.compare(data.paths)

    calculator = IncrementalityCalculator(settings.incrementality)
    incrementality = [(test, calculator.calculate(test)) for test in data.tests]

    predictive = PredictiveAnalytics(settings, now)
    pacing: List[BudgetPacingAnalysis] = []
    predictions: List[PerformancePrediction] = []
    risks: List[DeliveryRiskAssessment] = []
    opportunities: List[OpportunityScore] = []
    for campaign in data.campaigns:
        entities = [campaign, *campaign.flights, *(line for flight in campaign.flights for line in flight.lines)]
        pacing.extend(analysis for analysis in map(predictive.analyze_budget_pacing, entities) if analysis)
        for metric in PERFORMANCE_METRICS:
            prediction = predictive.predict_performance(campaign, metric)
            if prediction is not None:
                predictions.append(prediction)
        risks.append(predictive.assess_delivery_risk(campaign))
        risks.extend(predictive.assess_delivery_risk(flight) for flight in campaign.flights)
        opportunities.extend(predictive.identify_opportunities(campaign))
    alerts = predictive.get_all_alerts(data.campaigns)

    audience = AudienceOverlapEngine(settings.audience, provider)
    selected = _resolve_selected(data)
    segment_performance = audience.segment_performance(data.placements)
    base = _best_segment(segment_performance)
    lookalikes = audience.lookalikes(base, data.segments, selected) if base is not None else []

    expansion: Dict[str, List[ExpansionRecommendation]] = {}
    for campaign in data.campaigns:
        if campaign.performance is None:
            continue
        recommendations = audience.expansion_recommendations(
            selected, campaign_goals(campaign), campaign.performance, data.segments
        )
        if recommendations:
            expansion[campaign.id] = recommendations

    logger.info(
        "Analysis complete: %d channels, %d tests, %d alerts, %d selected segments",
        len(comparison.for_model(resolved)),
        len(incrementality),
        len(alerts),
        len(selected),
    )
    return AnalysisResult(
        model=resolved,
        generated_at=now,
        attribution=list(comparison.for_model(resolved)),
        comparison=comparison,
        roas_by_model=roas_by_model(comparison),
        time_to_conversion=time_to_conversion_distribution(data.paths),
        touchpoint_frequency=touchpoint_frequency_distribution(data.paths),
        incrementality=incrementality,
        pacing=pacing,
        predictions=predictions,
        risks=risks,
        opportunities=opportunities,
        alerts=alerts,
        selected_segments=selected,
        overlap_matrix=audience.overlap_matrix(selected),
        unique_reach=audience.unique_reach(selected),
        removal_candidates=audience.optimal_segments_to_remove(selected),
        segment_performance=segment_performance,
        lookalikes=lookalikes,
        expansion=expansion,
    )
