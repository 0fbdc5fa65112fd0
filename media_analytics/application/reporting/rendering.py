"""Text rendering helpers for console output and the JSON summary."""

from __future__ import annotations

from typing import Any, Dict, List

from media_analytics.application.analysis_service import AnalysisResult
from media_analytics.application.reporting.metrics import fmt_count, fmt_money, fmt_pct, fmt_roas, severity_marker
from media_analytics.domain.models import IncrementalityResult, IncrementalityTest, PredictiveAlert
from media_analytics.domain.recommendation import format_lift, recommendation_message


def alert_line(alert: PredictiveAlert) -> str:
    line = f"{severity_marker(alert.severity.value)} {alert.title} - {alert.entity_name}: {alert.message}"
    if alert.recommendation:
        line += f" -> {alert.recommendation}"
    return line


def incrementality_line(test: IncrementalityTest, outcome: IncrementalityResult) -> str:
    verdict = "significant" if outcome.is_significant else "not significant"
    return (
        f"{test.channel}: lift {format_lift(outcome.lift)} ({verdict}, confidence {fmt_pct(outcome.confidence)}). "
        f"{recommendation_message(outcome.recommendation)}"
    )


def attribution_lines(result: AnalysisResult, limit: int = 5) -> List[str]:
    ranked = sorted(result.attribution, key=lambda row: row.revenue, reverse=True)[:limit]
    return [
        f"{row.channel}: {fmt_pct(row.credit)} credit, {fmt_money(row.revenue)} revenue, ROAS {fmt_roas(row.roas)}"
        for row in ranked
    ]


def build_summary(result: AnalysisResult) -> Dict[str, Any]:
    """JSON-serialisable headline numbers for the run."""
    severity_counts: Dict[str, int] = {}
    for alert in result.alerts:
        severity_counts[alert.severity.value] = severity_counts.get(alert.severity.value, 0) + 1

    return {
        "generated_at": result.generated_at.isoformat(),
        "attribution_model": result.model.value,
        "channels": [
            {
                "channel": row.channel,
                "credit": row.credit,
                "conversions": row.conversions,
                "revenue": row.revenue,
                "cost": row.cost,
                "roas": row.roas,
            }
            for row in result.attribution
        ],
        "roas_by_model": result.roas_by_model,
        "time_to_conversion": result.time_to_conversion,
        "touchpoint_frequency": result.touchpoint_frequency,
        "incrementality": [
            {
                "test_id": test.test_id,
                "channel": test.channel,
                "lift": outcome.lift,
                "confidence": outcome.confidence,
                "recommendation": outcome.recommendation.value,
                "message": recommendation_message(outcome.recommendation),
            }
            for test, outcome in result.incrementality
        ],
        "alerts": {"total": len(result.alerts), "by_severity": severity_counts},
        "audience": {
            "selected_segments": [segment.id for segment in result.selected_segments],
            "unique_reach": result.unique_reach,
            "total_reach": sum(segment.reach for segment in result.selected_segments),
            "removal_candidates": [segment.id for segment in result.removal_candidates],
            "lookalikes": [
                {"segment_id": rec.segment.id, "match_score": rec.match_score, "reason": rec.reason}
                for rec in result.lookalikes
            ],
            "expansion": {
                campaign_id: [
                    {
                        "goal": rec.goal.value,
                        "priority": rec.priority.value,
                        "impact": rec.impact,
                        "segments": [segment.id for segment in rec.segments],
                    }
                    for rec in recommendations
                ]
                for campaign_id, recommendations in result.expansion.items()
            },
        },
    }


def render_text_summary(result: AnalysisResult) -> str:
    lines: List[str] = [f"Attribution ({result.model.value}):"]
    lines.extend(f"  {line}" for line in attribution_lines(result) or ["no conversion paths"])

    if result.incrementality:
        lines.append("Incrementality:")
        lines.extend(f"  {incrementality_line(test, outcome)}" for test, outcome in result.incrementality)

    lines.append(f"Alerts ({len(result.alerts)}):")
    lines.extend(f"  {alert_line(alert)}" for alert in result.alerts)

    if result.selected_segments:
        total = sum(segment.reach for segment in result.selected_segments)
        lines.append(
            f"Audience: {len(result.selected_segments)} segments, unique reach {fmt_count(result.unique_reach)} "
            f"of {fmt_count(total)} total"
        )
    return "\n".join(lines)
