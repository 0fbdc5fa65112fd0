"""Domain records shared by the analytics engines."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Iterable, Iterator, Mapping, Sequence


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    return float(value)


def _to_optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _freeze(items: Iterable[Any] | None) -> tuple[Any, ...]:
    return tuple(items) if items is not None else ()


# =============================================================================
# ENUMS
# =============================================================================


class ChannelType(str, Enum):
    SEARCH = "SEARCH"
    SOCIAL = "SOCIAL"
    DISPLAY = "DISPLAY"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    OOH = "OOH"
    EMAIL = "EMAIL"
    AFFILIATE = "AFFILIATE"
    OTHER = "OTHER"


class AttributionModel(str, Enum):
    FIRST_TOUCH = "FIRST_TOUCH"
    LAST_TOUCH = "LAST_TOUCH"
    LINEAR = "LINEAR"
    TIME_DECAY = "TIME_DECAY"
    POSITION_BASED = "POSITION_BASED"


class EntityType(str, Enum):
    CAMPAIGN = "CAMPAIGN"
    FLIGHT = "FLIGHT"
    LINE = "LINE"


class EntityStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class SegmentCategory(str, Enum):
    DEMOGRAPHICS = "Demographics"
    BEHAVIORAL = "Behavioral"
    INTEREST = "Interest"
    B2B = "B2B"
    CONTEXTUAL = "Contextual"
    FIRST_PARTY = "First-Party"
    PIXEL_BASED = "Pixel-Based"

    @property
    def is_owned_data(self) -> bool:
        return self in (SegmentCategory.FIRST_PARTY, SegmentCategory.PIXEL_BASED)


class AlertSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        return {"CRITICAL": 0, "WARNING": 1, "INFO": 2}[self.value]


class AlertType(str, Enum):
    BUDGET_PACING = "BUDGET_PACING"
    PERFORMANCE = "PERFORMANCE"
    DELIVERY_RISK = "DELIVERY_RISK"
    OPPORTUNITY = "OPPORTUNITY"


class PacingStatus(str, Enum):
    UNDER_PACING = "UNDER_PACING"
    ON_TRACK = "ON_TRACK"
    OVER_PACING = "OVER_PACING"


class Trend(str, Enum):
    DECLINING = "DECLINING"
    STABLE = "STABLE"
    GROWING = "GROWING"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class OpportunityType(str, Enum):
    BUDGET_REALLOCATION = "BUDGET_REALLOCATION"
    CHANNEL_SHIFT = "CHANNEL_SHIFT"
    AUDIENCE_EXPANSION = "AUDIENCE_EXPANSION"
    CREATIVE_REFRESH = "CREATIVE_REFRESH"


class Effort(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class LiftRecommendation(str, Enum):
    SCALE_UP = "SCALE_UP"
    SCALE_DOWN = "SCALE_DOWN"
    MAINTAIN = "MAINTAIN"
    MORE_DATA_NEEDED = "MORE_DATA_NEEDED"


class ExpansionGoal(str, Enum):
    INCREASE_REACH = "INCREASE_REACH"
    REDUCE_CPA = "REDUCE_CPA"
    IMPROVE_CVR = "IMPROVE_CVR"
    INCREASE_CONVERSIONS = "INCREASE_CONVERSIONS"


class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return {"HIGH": 3, "MEDIUM": 2, "LOW": 1}[self.value]


PERFORMANCE_METRICS: tuple[str, ...] = ("impressions", "clicks", "conversions", "revenue")


# =============================================================================
# CONVERSION PATHS / ATTRIBUTION
# =============================================================================


@dataclass(frozen=True)
class Touchpoint:
    channel: str
    channel_type: ChannelType
    timestamp: datetime
    cost: float = 0.0
    touchpoint_id: str | None = None


@dataclass(frozen=True)
class ConversionPath:
    """One user journey ending in a conversion; touchpoints are chronological."""

    touchpoints: tuple[Touchpoint, ...]
    conversion_value: float
    time_to_conversion: float = 0.0
    path_id: str | None = None
    conversion_date: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "touchpoints", _freeze(self.touchpoints))

    @property
    def conversion_time(self) -> datetime | None:
        if self.conversion_date is not None:
            return self.conversion_date
        if not self.touchpoints:
            return None
        if self.time_to_conversion > 0:
            return self.touchpoints[0].timestamp + timedelta(hours=self.time_to_conversion)
        return self.touchpoints[-1].timestamp


@dataclass(frozen=True)
class AttributionResult:
    channel: str
    channel_type: ChannelType
    model: AttributionModel
    credit: float
    conversions: float
    revenue: float
    cost: float
    roas: float


@dataclass(frozen=True)
class ModelComparison:
    """Attribution results keyed by the closed set of attribution models."""

    first_touch: tuple[AttributionResult, ...]
    last_touch: tuple[AttributionResult, ...]
    linear: tuple[AttributionResult, ...]
    time_decay: tuple[AttributionResult, ...]
    position_based: tuple[AttributionResult, ...]

    _FIELDS: ClassVar[dict[AttributionModel, str]] = {
        AttributionModel.FIRST_TOUCH: "first_touch",
        AttributionModel.LAST_TOUCH: "last_touch",
        AttributionModel.LINEAR: "linear",
        AttributionModel.TIME_DECAY: "time_decay",
        AttributionModel.POSITION_BASED: "position_based",
    }

    def for_model(self, model: AttributionModel) -> tuple[AttributionResult, ...]:
        return getattr(self, self._FIELDS[AttributionModel(model)])

    def items(self) -> Iterator[tuple[AttributionModel, tuple[AttributionResult, ...]]]:
        for model, attr in self._FIELDS.items():
            yield model, getattr(self, attr)

    def __iter__(self) -> Iterator[AttributionModel]:
        return iter(self._FIELDS)


# =============================================================================
# INCREMENTALITY
# =============================================================================


@dataclass(frozen=True)
class GroupMetrics:
    spend: float
    conversions: float
    revenue: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.spend == 0 and self.conversions == 0 and self.revenue == 0


@dataclass(frozen=True)
class IncrementalityTest:
    channel: str
    channel_type: ChannelType
    control_group: GroupMetrics | None
    test_group: GroupMetrics | None
    start_date: date | None = None
    end_date: date | None = None
    test_id: str | None = None


@dataclass(frozen=True)
class IncrementalityResult:
    lift: float
    lift_absolute: float
    confidence: float
    is_significant: bool
    p_value: float
    recommendation: LiftRecommendation


# =============================================================================
# CAMPAIGN HIERARCHY
# =============================================================================


@dataclass(frozen=True)
class PerformanceMetrics:
    """Delivered performance; ``ctr`` and ``cvr`` are expressed in percent."""

    impressions: float = 0.0
    clicks: float = 0.0
    conversions: float = 0.0
    ctr: float = 0.0
    cvr: float = 0.0
    roas: float = 0.0
    cpa: float = 0.0
    revenue: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PerformanceMetrics":
        return cls(
            impressions=_to_float(row.get("impressions")),
            clicks=_to_float(row.get("clicks")),
            conversions=_to_float(row.get("conversions")),
            ctr=_to_float(row.get("ctr")),
            cvr=_to_float(row.get("cvr")),
            roas=_to_float(row.get("roas")),
            cpa=_to_float(row.get("cpa")),
            revenue=_to_float(row.get("revenue")),
        )

    def value(self, metric: str) -> float:
        if metric not in PERFORMANCE_METRICS:
            raise ValueError(f"Unsupported performance metric: {metric}")
        return float(getattr(self, metric))


@dataclass(frozen=True)
class DeliveryMetrics:
    actual_spend: float | None = None
    actual_impressions: float = 0.0
    pacing: float = 100.0
    status: str = "ON_TRACK"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DeliveryMetrics":
        return cls(
            actual_spend=_to_optional_float(row.get("actualSpend", row.get("actual_spend"))),
            actual_impressions=_to_float(row.get("actualImpressions", row.get("actual_impressions"))),
            pacing=_to_float(row.get("pacing"), default=100.0),
            status=str(row.get("status", "ON_TRACK") or "ON_TRACK").upper(),
        )


@dataclass(frozen=True)
class ForecastMetrics:
    impressions: float = 0.0
    reach: float = 0.0
    frequency: float = 0.0
    spend: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ForecastMetrics":
        return cls(
            impressions=_to_float(row.get("impressions")),
            reach=_to_float(row.get("reach")),
            frequency=_to_float(row.get("frequency")),
            spend=_to_float(row.get("spend")),
        )


@dataclass(frozen=True)
class Line:
    id: str
    name: str
    start_date: date | datetime | None
    end_date: date | datetime | None
    total_cost: float = 0.0
    status: EntityStatus = EntityStatus.ACTIVE
    performance: PerformanceMetrics | None = None
    delivery: DeliveryMetrics | None = None
    forecast: ForecastMetrics | None = None
    channel: str | None = None

    entity_type: ClassVar[EntityType] = EntityType.LINE

    @property
    def planned_budget(self) -> float:
        return self.total_cost


@dataclass(frozen=True)
class Flight:
    id: str
    name: str
    start_date: date | datetime | None
    end_date: date | datetime | None
    budget: float = 0.0
    status: EntityStatus = EntityStatus.ACTIVE
    performance: PerformanceMetrics | None = None
    delivery: DeliveryMetrics | None = None
    forecast: ForecastMetrics | None = None
    lines: tuple[Line, ...] = ()

    entity_type: ClassVar[EntityType] = EntityType.FLIGHT

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", _freeze(self.lines))

    @property
    def planned_budget(self) -> float:
        return self.budget


@dataclass(frozen=True)
class Campaign:
    id: str
    name: str
    start_date: date | datetime | None
    end_date: date | datetime | None
    budget: float = 0.0
    status: EntityStatus = EntityStatus.ACTIVE
    performance: PerformanceMetrics | None = None
    delivery: DeliveryMetrics | None = None
    forecast: ForecastMetrics | None = None
    flights: tuple[Flight, ...] = ()
    numeric_goals: Mapping[str, float] | None = None

    entity_type: ClassVar[EntityType] = EntityType.CAMPAIGN

    def __post_init__(self) -> None:
        object.__setattr__(self, "flights", _freeze(self.flights))

    @property
    def planned_budget(self) -> float:
        return self.budget


PlanEntity = Campaign | Flight | Line


def rollup_delivery(children: Sequence[PlanEntity]) -> DeliveryMetrics:
    """Sum child delivery into a parent (lines into a flight, flights into a campaign)."""
    delivered = [child.delivery for child in children if child.delivery is not None]
    pacing_values = [child.delivery.pacing if child.delivery is not None else 100.0 for child in children]
    return DeliveryMetrics(
        actual_spend=sum(_to_float(d.actual_spend) for d in delivered),
        actual_impressions=sum(d.actual_impressions for d in delivered),
        pacing=float(round(sum(pacing_values) / max(1, len(pacing_values)))),
        status="ON_TRACK",
    )


def rollup_forecast(children: Sequence[PlanEntity]) -> ForecastMetrics:
    forecasts = [child.forecast for child in children if child.forecast is not None]
    impressions = sum(f.impressions for f in forecasts)
    reach = sum(f.reach for f in forecasts)
    return ForecastMetrics(
        impressions=impressions,
        reach=reach,
        frequency=impressions / max(1.0, reach),
        spend=sum(f.spend for f in forecasts),
    )


# =============================================================================
# PREDICTIVE RESULTS
# =============================================================================


@dataclass(frozen=True)
class PredictiveAlert:
    id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    entity_id: str
    entity_name: str
    entity_type: EntityType
    timestamp: float
    metric: str | None = None
    current_value: float | None = None
    projected_value: float | None = None
    threshold: float | None = None
    impact: str | None = None
    recommendation: str | None = None


@dataclass(frozen=True)
class BudgetPacingAnalysis:
    entity_id: str
    entity_name: str
    budget: float
    actual_spend: float
    projected_spend: float
    days_elapsed: int
    days_remaining: int
    total_days: int
    ideal_spend: float
    pace_variance: float
    status: PacingStatus
    alert: PredictiveAlert | None = None


@dataclass(frozen=True)
class PerformancePrediction:
    entity_id: str
    entity_name: str
    metric: str
    current_value: float
    projected_value: float
    goal_value: float | None
    confidence: float
    trend: Trend
    alert: PredictiveAlert | None = None


@dataclass(frozen=True)
class RiskFactor:
    name: str
    score: float
    weight: float
    description: str

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight


@dataclass(frozen=True)
class DeliveryRiskAssessment:
    entity_id: str
    entity_name: str
    risk_score: float
    risk_level: RiskLevel
    factors: tuple[RiskFactor, ...]
    alert: PredictiveAlert | None = None


@dataclass(frozen=True)
class OpportunityScore:
    entity_id: str
    entity_name: str
    opportunity_type: OpportunityType
    score: float
    estimated_impact: str
    effort: Effort
    description: str
    recommendation: str
    alert: PredictiveAlert | None = None


# =============================================================================
# AUDIENCE
# =============================================================================


@dataclass(frozen=True)
class Segment:
    id: str
    name: str
    category: SegmentCategory
    reach: int = 0
    cpm_uplift: float = 0.0
    vendor: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Placement:
    id: str
    name: str
    total_cost: float = 0.0
    segments: tuple[Segment, ...] = ()
    performance: PerformanceMetrics | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", _freeze(self.segments))


@dataclass(frozen=True)
class SegmentPerformance:
    """Per-segment delivery; ``ctr`` and ``cvr`` are fractions, not percent."""

    segment: Segment
    impressions: float
    clicks: float
    conversions: float
    spend: float
    placements: int
    ctr: float
    cvr: float
    cpa: float
    cpm: float
    roas: float


@dataclass(frozen=True)
class LookalikeRecommendation:
    segment: Segment
    match_score: float
    reason: str


@dataclass(frozen=True)
class CampaignGoals:
    impressions: float | None = None
    reach: float | None = None
    conversions: float | None = None
    clicks: float | None = None
    target_cpa: float | None = None


@dataclass(frozen=True)
class ExpansionRecommendation:
    goal: ExpansionGoal
    impact: str
    segments: tuple[Segment, ...]
    priority: Priority
    explanation: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", _freeze(self.segments))


@dataclass(frozen=True)
class DashboardInput:
    """Everything a dashboard hands to the engines in one call."""

    campaigns: tuple[Campaign, ...] = ()
    paths: tuple[ConversionPath, ...] = ()
    tests: tuple[IncrementalityTest, ...] = ()
    segments: tuple[Segment, ...] = ()
    placements: tuple[Placement, ...] = ()
    selected_segment_ids: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        for name in ("campaigns", "paths", "tests", "segments", "placements", "selected_segment_ids"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))
