"""Tabular (Polars) views of an analysis result, one frame per workbook sheet."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import polars as pl

from media_analytics.application.analysis_service import AnalysisResult
from media_analytics.domain.recommendation import format_lift

ATTRIBUTION_COLUMNS: list[str] = ["model", "channel", "channel_type", "credit", "conversions", "revenue", "cost", "roas"]
INCREMENTALITY_COLUMNS: list[str] = [
    "test_id",
    "channel",
    "channel_type",
    "lift",
    "lift_text",
    "lift_absolute",
    "confidence",
    "p_value",
    "is_significant",
    "recommendation",
]
PACING_COLUMNS: list[str] = [
    "entity_id",
    "entity_name",
    "budget",
    "actual_spend",
    "ideal_spend",
    "projected_spend",
    "pace_variance",
    "days_elapsed",
    "days_remaining",
    "total_days",
    "status",
]
PREDICTION_COLUMNS: list[str] = [
    "entity_id",
    "entity_name",
    "metric",
    "current_value",
    "projected_value",
    "goal_value",
    "confidence",
    "trend",
]
RISK_COLUMNS: list[str] = ["entity_id", "entity_name", "risk_score", "risk_level", "factor", "factor_score", "weight", "description"]
OPPORTUNITY_COLUMNS: list[str] = [
    "entity_id",
    "entity_name",
    "opportunity_type",
    "score",
    "estimated_impact",
    "effort",
    "description",
    "recommendation",
]
ALERT_COLUMNS: list[str] = [
    "id",
    "type",
    "severity",
    "title",
    "message",
    "entity_id",
    "entity_name",
    "entity_type",
    "metric",
    "current_value",
    "projected_value",
    "threshold",
    "impact",
    "recommendation",
]
SEGMENT_COLUMNS: list[str] = [
    "segment_id",
    "segment_name",
    "category",
    "impressions",
    "clicks",
    "conversions",
    "spend",
    "placements",
    "ctr",
    "cvr",
    "cpa",
    "cpm",
    "roas",
]


def _frame(rows: List[Dict[str, Any]], columns: Sequence[str]) -> pl.DataFrame:
    if not rows:
        return pl.DataFrame({column: [] for column in columns})
    return pl.DataFrame(rows, infer_schema_length=None).select(list(columns))


def _unique_labels(labels: Sequence[str]) -> List[str]:
    seen: Dict[str, int] = {}
    unique: List[str] = []
    for label in labels:
        count = seen.get(label, 0)
        unique.append(label if count == 0 else f"{label}_{count + 1}")
        seen[label] = count + 1
    return unique


def attribution_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {
            "model": model.value,
            "channel": row.channel,
            "channel_type": row.channel_type.value,
            "credit": row.credit,
            "conversions": row.conversions,
            "revenue": row.revenue,
            "cost": row.cost,
            "roas": row.roas,
        }
        for model, results in result.comparison.items()
        for row in results
    ]
    return _frame(rows, ATTRIBUTION_COLUMNS)


def incrementality_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {
            "test_id": test.test_id,
            "channel": test.channel,
            "channel_type": test.channel_type.value,
            "lift": outcome.lift,
            "lift_text": format_lift(outcome.lift),
            "lift_absolute": outcome.lift_absolute,
            "confidence": outcome.confidence,
            "p_value": outcome.p_value,
            "is_significant": outcome.is_significant,
            "recommendation": outcome.recommendation.value,
        }
        for test, outcome in result.incrementality
    ]
    return _frame(rows, INCREMENTALITY_COLUMNS)


def pacing_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {column: getattr(row, column) for column in PACING_COLUMNS if column != "status"} | {"status": row.status.value}
        for row in result.pacing
    ]
    return _frame(rows, PACING_COLUMNS)


def prediction_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {column: getattr(row, column) for column in PREDICTION_COLUMNS if column != "trend"} | {"trend": row.trend.value}
        for row in result.predictions
    ]
    return _frame(rows, PREDICTION_COLUMNS)


def risk_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {
            "entity_id": assessment.entity_id,
            "entity_name": assessment.entity_name,
            "risk_score": assessment.risk_score,
            "risk_level": assessment.risk_level.value,
            "factor": factor.name,
            "factor_score": factor.score,
            "weight": factor.weight,
            "description": factor.description,
        }
        for assessment in result.risks
        for factor in assessment.factors
    ]
    return _frame(rows, RISK_COLUMNS)


def opportunity_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {
            "entity_id": opp.entity_id,
            "entity_name": opp.entity_name,
            "opportunity_type": opp.opportunity_type.value,
            "score": opp.score,
            "estimated_impact": opp.estimated_impact,
            "effort": opp.effort.value,
            "description": opp.description,
            "recommendation": opp.recommendation,
        }
        for opp in result.opportunities
    ]
    return _frame(rows, OPPORTUNITY_COLUMNS)


def alert_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = []
    for alert in result.alerts:
        row = {column: getattr(alert, column) for column in ALERT_COLUMNS}
        row["type"] = alert.type.value
        row["severity"] = alert.severity.value
        row["entity_type"] = alert.entity_type.value
        rows.append(row)
    return _frame(rows, ALERT_COLUMNS)


def segment_frame(result: AnalysisResult) -> pl.DataFrame:
    rows = [
        {
            "segment_id": segment_id,
            "segment_name": perf.segment.name,
            "category": perf.segment.category.value,
            "impressions": perf.impressions,
            "clicks": perf.clicks,
            "conversions": perf.conversions,
            "spend": perf.spend,
            "placements": perf.placements,
            "ctr": perf.ctr,
            "cvr": perf.cvr,
            "cpa": perf.cpa,
            "cpm": perf.cpm,
            "roas": perf.roas,
        }
        for segment_id, perf in result.segment_performance.items()
    ]
    frame = _frame(rows, SEGMENT_COLUMNS)
    return frame.sort("roas", descending=True, maintain_order=True) if rows else frame


def overlap_frame(result: AnalysisResult) -> pl.DataFrame:
    names = _unique_labels([segment.name or segment.id for segment in result.selected_segments])
    if not names:
        return pl.DataFrame({"segment": []})
    data: Dict[str, List[Any]] = {"segment": names}
    for j, name in enumerate(names):
        data[name] = [row[j] for row in result.overlap_matrix]
    return pl.DataFrame(data)


def results_to_frames(result: AnalysisResult) -> Dict[str, pl.DataFrame]:
    """Build every sheet of the output workbook from ``result``."""
    return {
        "attribution": attribution_frame(result),
        "roas_by_model": pl.DataFrame(result.roas_by_model) if result.roas_by_model else pl.DataFrame(),
        "incrementality": incrementality_frame(result),
        "pacing": pacing_frame(result),
        "predictions": prediction_frame(result),
        "delivery_risk": risk_frame(result),
        "opportunities": opportunity_frame(result),
        "alerts": alert_frame(result),
        "segment_performance": segment_frame(result),
        "segment_overlap": overlap_frame(result),
    }
