"""Domain policies turning engine verdicts into operator-facing text."""

from __future__ import annotations

from media_analytics.domain.models import (
    LiftRecommendation,
    PacingStatus,
    RiskLevel,
    Segment,
)


def format_lift(lift: float) -> str:
    """Render a fractional lift (0.5 = +50%) as a signed percentage."""
    pct = lift * 100
    sign = "+" if pct >= 0 else ""
    return f"{sign}{pct:.1f}%"


def recommendation_message(recommendation: LiftRecommendation) -> str:
    if recommendation == LiftRecommendation.SCALE_UP:
        return "Strong positive lift detected. Consider increasing investment."
    if recommendation == LiftRecommendation.SCALE_DOWN:
        return "Negative lift detected. Consider reducing or pausing investment."
    if recommendation == LiftRecommendation.MAINTAIN:
        return "Lift is flat. Continue monitoring performance."
    return "Results not statistically significant. Collect more data before making changes."


def pacing_title(status: PacingStatus) -> str:
    if status == PacingStatus.UNDER_PACING:
        return "Under-Pacing Alert"
    if status == PacingStatus.OVER_PACING:
        return "Over-Pacing Alert"
    return "Pacing On Track"


def pacing_message(status: PacingStatus, pace_variance: float, projected_spend: float, budget: float, days_remaining: int) -> str:
    if status == PacingStatus.UNDER_PACING:
        return (
            f"Spend is {abs(pace_variance):.0f}% below target. At current rate, you'll only spend "
            f"${projected_spend:,.0f} of ${budget:,.0f} budget."
        )
    timing = "early" if days_remaining > 5 else "soon"
    return f"Spend is {pace_variance:.0f}% above target. Budget may be exhausted {timing}."


def pacing_impact(status: PacingStatus, projected_spend: float, budget: float) -> str:
    if status == PacingStatus.UNDER_PACING:
        shortfall = (budget - projected_spend) / budget * 100 if budget > 0 else 0.0
        return f"Potential {shortfall:.0f}% budget underspend"
    return f"May exceed budget by ${max(0.0, projected_spend - budget):,.0f}"


def pacing_recommendation(status: PacingStatus) -> str:
    if status == PacingStatus.UNDER_PACING:
        return "Consider increasing bids, expanding targeting, or reallocating budget to higher-performing placements."
    return "Reduce daily budgets, pause underperforming placements, or increase budget allocation."


def goal_risk_recommendation(metric: str) -> str:
    return f"Review targeting, creative performance, and budget allocation to improve {metric} delivery."


def risk_recommendation(level: RiskLevel) -> str:
    if level == RiskLevel.CRITICAL:
        return "Escalate now: review campaign settings, budget allocation and performance metrics before delivery is lost."
    return "Review campaign settings, budget allocation, and performance metrics. Consider reallocating budget or adjusting targeting."


def lookalike_reason(segment: Segment, base: Segment, score: float) -> str:
    if segment.category == base.category and score > 60:
        return f"Similar {base.category.value.lower()} profile"
    if abs(segment.cpm_uplift - base.cpm_uplift) < 1:
        return "Comparable pricing and quality"
    if segment.vendor and segment.vendor == base.vendor:
        return f"Same data provider: {segment.vendor}"
    return "Related audience characteristics"
