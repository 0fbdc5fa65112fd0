"""Tunable constants for the analytics engines.

Defaults reproduce the dashboard's behavior. A handful of values can be
overridden through environment variables; see ``get_settings``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class AttributionSettings:
    half_life_days: float = 7.0
    position_first: float = 0.4
    position_last: float = 0.4

    @property
    def position_middle(self) -> float:
        return 1.0 - self.position_first - self.position_last


@dataclass(frozen=True)
class IncrementalitySettings:
    significance_level: float = 0.95
    maintain_band: float = 0.05
    # Reported lift when the control baseline is zero.
    lift_cap: float = 999.0


@dataclass(frozen=True)
class PacingSettings:
    on_track_band_pct: float = 15.0
    alert_threshold_pct: float = 20.0
    critical_threshold_pct: float = 40.0
    projected_spend_cap: float = 1.5


@dataclass(frozen=True)
class PredictionSettings:
    confidence_ramp_days: float = 7.0
    trend_band: float = 0.10
    warning_ratio: float = 0.8
    critical_ratio: float = 0.6


@dataclass(frozen=True)
class RiskSettings:
    pacing_weight: float = 0.3
    delivery_weight: float = 0.25
    time_weight: float = 0.2
    engagement_weight: float = 0.15
    status_weight: float = 0.1
    critical_score: float = 70.0
    high_score: float = 50.0
    medium_score: float = 30.0

    @property
    def total_weight(self) -> float:
        return (
            self.pacing_weight
            + self.delivery_weight
            + self.time_weight
            + self.engagement_weight
            + self.status_weight
        )


@dataclass(frozen=True)
class OpportunitySettings:
    reallocation_roas_ratio: float = 1.5
    high_ctr: float = 2.0
    low_cvr: float = 1.0
    low_roas: float = 2.0
    scale_roas: float = 5.0
    scale_ctr: float = 3.0
    refresh_min_days: int = 30
    refresh_max_ctr: float = 1.5
    alert_score: float = 70.0


@dataclass(frozen=True)
class AudienceSettings:
    average_order_value: float = 50.0
    lookalike_limit: int = 5
    lookalike_min_score: float = 30.0
    default_target_cpa: float = 50.0
    reach_per_impression: float = 0.4
    broad_reach_min: int = 1_000_000
    balanced_reach_min: int = 500_000
    low_cvr_pct: float = 3.0


@dataclass(frozen=True)
class AnalyticsSettings:
    attribution: AttributionSettings = field(default_factory=AttributionSettings)
    incrementality: IncrementalitySettings = field(default_factory=IncrementalitySettings)
    pacing: PacingSettings = field(default_factory=PacingSettings)
    prediction: PredictionSettings = field(default_factory=PredictionSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)
    opportunity: OpportunitySettings = field(default_factory=OpportunitySettings)
    audience: AudienceSettings = field(default_factory=AudienceSettings)


def _env_float(name: str, default: float, low: float, high: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: {raw}") from exc
    if value < low or value > high:
        raise ValueError(f"{name} must be in [{low}, {high}], got {value}")
    return value


def get_settings() -> AnalyticsSettings:
    """Build settings from defaults plus environment overrides."""
    base = AnalyticsSettings()
    half_life = _env_float("MEDIA_ANALYTICS_HALF_LIFE_DAYS", base.attribution.half_life_days, 0.01, 365.0)
    aov = _env_float("MEDIA_ANALYTICS_AOV", base.audience.average_order_value, 0.0, 1_000_000.0)
    significance = _env_float(
        "MEDIA_ANALYTICS_SIGNIFICANCE_LEVEL", base.incrementality.significance_level, 0.5, 0.9999
    )
    # Alerts only fire outside the on-track band.
    pacing_alert = _env_float(
        "MEDIA_ANALYTICS_PACING_ALERT_PCT", base.pacing.alert_threshold_pct, base.pacing.on_track_band_pct, 100.0
    )
    return replace(
        base,
        attribution=replace(base.attribution, half_life_days=half_life),
        audience=replace(base.audience, average_order_value=aov),
        incrementality=replace(base.incrementality, significance_level=significance),
        pacing=replace(base.pacing, alert_threshold_pct=pacing_alert),
    )


DEFAULT_SETTINGS = AnalyticsSettings()
