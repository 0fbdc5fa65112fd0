"""Predictive Analytics: pacing, goal projection, delivery risk and opportunities."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timezone
from typing import List, Optional, Sequence

from media_analytics.config import AnalyticsSettings
from media_analytics.domain.models import (
    PERFORMANCE_METRICS,
    AlertSeverity,
    AlertType,
    BudgetPacingAnalysis,
    Campaign,
    DeliveryRiskAssessment,
    Effort,
    EntityStatus,
    EntityType,
    OpportunityScore,
    OpportunityType,
    PacingStatus,
    PerformancePrediction,
    PlanEntity,
    PredictiveAlert,
    RiskFactor,
    RiskLevel,
    Trend,
)
from media_analytics.domain.recommendation import (
    goal_risk_recommendation,
    pacing_impact,
    pacing_message,
    pacing_recommendation,
    pacing_title,
    risk_recommendation,
)
from media_analytics.exceptions import AnalyticsError

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def _as_datetime(value: date | datetime, reference: datetime) -> datetime:
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None and reference.tzinfo is not None:
        value = value.replace(tzinfo=reference.tzinfo)
    elif value.tzinfo is not None and reference.tzinfo is None:
        value = value.replace(tzinfo=None)
    return value


def _ceil_days(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / SECONDS_PER_DAY)


def _alert_stamp(now: datetime) -> tuple[float, int]:
    timestamp = now.timestamp()
    return timestamp, int(timestamp * 1000)


class PredictiveAnalytics:
    """Forward-looking checks over campaigns, flights and lines as of ``now``."""

    def __init__(self, settings: AnalyticsSettings | None = None, now: datetime | None = None) -> None:
        self.settings = settings or AnalyticsSettings()
        self.now = now or datetime.now(timezone.utc).replace(tzinfo=None)

    def _window(self, entity: PlanEntity) -> Optional[tuple[datetime, datetime]]:
        if entity.start_date is None or entity.end_date is None:
            return None
        return _as_datetime(entity.start_date, self.now), _as_datetime(entity.end_date, self.now)

    # ------------------------------------------------------------------
    # Budget pacing
    # ------------------------------------------------------------------
    def analyze_budget_pacing(self, entity: PlanEntity) -> Optional[BudgetPacingAnalysis]:
        window = self._window(entity)
        if window is None or entity.delivery is None or entity.delivery.actual_spend is None:
            logger.debug("No pacing analysis for %s: dates or actual spend missing", entity.id)
            return None

        cfg = self.settings.pacing
        start, end = window
        budget = entity.planned_budget
        actual_spend = entity.delivery.actual_spend

        total_days = max(1, _ceil_days(start, end))
        days_elapsed = min(total_days, max(0, _ceil_days(start, self.now)))
        days_remaining = max(0, total_days - days_elapsed)

        ideal_spend = budget * days_elapsed / total_days
        daily_rate = actual_spend / days_elapsed if days_elapsed > 0 else 0.0
        projected_spend = min(budget * cfg.projected_spend_cap, actual_spend + daily_rate * days_remaining)
        pace_variance = (actual_spend - ideal_spend) * 100 / ideal_spend if ideal_spend > 0 else 0.0

        if pace_variance < -cfg.on_track_band_pct:
            status = PacingStatus.UNDER_PACING
        elif pace_variance > cfg.on_track_band_pct:
            status = PacingStatus.OVER_PACING
        else:
            status = PacingStatus.ON_TRACK

        alert = None
        if status != PacingStatus.ON_TRACK and abs(pace_variance) > cfg.alert_threshold_pct:
            severity = (
                AlertSeverity.CRITICAL if abs(pace_variance) > cfg.critical_threshold_pct else AlertSeverity.WARNING
            )
            timestamp, stamp = _alert_stamp(self.now)
            alert = PredictiveAlert(
                id=f"pacing-{entity.id}-{stamp}",
                type=AlertType.BUDGET_PACING,
                severity=severity,
                title=pacing_title(status),
                message=pacing_message(status, pace_variance, projected_spend, budget, days_remaining),
                entity_id=entity.id,
                entity_name=entity.name,
                entity_type=entity.entity_type,
                timestamp=timestamp,
                metric="budget_pace",
                current_value=actual_spend,
                projected_value=projected_spend,
                threshold=budget,
                impact=pacing_impact(status, projected_spend, budget),
                recommendation=pacing_recommendation(status),
            )

        return BudgetPacingAnalysis(
            entity_id=entity.id,
            entity_name=entity.name,
            budget=budget,
            actual_spend=actual_spend,
            projected_spend=projected_spend,
            days_elapsed=days_elapsed,
            days_remaining=days_remaining,
            total_days=total_days,
            ideal_spend=ideal_spend,
            pace_variance=pace_variance,
            status=status,
            alert=alert,
        )

    # ------------------------------------------------------------------
    # Performance prediction
    # ------------------------------------------------------------------
    @staticmethod
    def _current_and_goal(entity: PlanEntity, metric: str) -> tuple[float, Optional[float]]:
        if metric == "impressions":
            current = 0.0
            if entity.delivery is not None and entity.delivery.actual_impressions:
                current = entity.delivery.actual_impressions
            elif entity.performance is not None:
                current = entity.performance.impressions
            goal = entity.forecast.impressions if entity.forecast is not None else None
            return current, goal

        if entity.performance is None:
            return 0.0, None
        current = entity.performance.value(metric)
        goals = getattr(entity, "numeric_goals", None)
        goal = goals.get(metric) if goals else None
        return current, (float(goal) if goal is not None else None)

    def predict_performance(
        self,
        entity: PlanEntity,
        metric: str,
        historical_daily_rate: float | None = None,
    ) -> Optional[PerformancePrediction]:
        if metric not in PERFORMANCE_METRICS:
            raise AnalyticsError(
                f"Unsupported prediction metric {metric!r}",
                context={"metric": metric, "supported": list(PERFORMANCE_METRICS)},
            )
        window = self._window(entity)
        if window is None or (entity.performance is None and entity.delivery is None):
            logger.debug("No %s prediction for %s: dates or delivery data missing", metric, entity.id)
            return None

        cfg = self.settings.prediction
        start, end = window
        total_days = max(1, _ceil_days(start, end))
        days_elapsed = max(1, _ceil_days(start, self.now))
        days_remaining = max(0, total_days - days_elapsed)

        current_value, goal_value = self._current_and_goal(entity, metric)
        daily_rate = current_value / days_elapsed
        projected_value = current_value + daily_rate * days_remaining

        trend = Trend.STABLE
        if historical_daily_rate is not None:
            if daily_rate > historical_daily_rate * (1 + cfg.trend_band):
                trend = Trend.GROWING
            elif daily_rate < historical_daily_rate * (1 - cfg.trend_band):
                trend = Trend.DECLINING

        confidence = min(1.0, days_elapsed / cfg.confidence_ramp_days)

        alert = None
        if goal_value and projected_value < goal_value * cfg.warning_ratio:
            severity = (
                AlertSeverity.CRITICAL if projected_value < goal_value * cfg.critical_ratio else AlertSeverity.WARNING
            )
            timestamp, stamp = _alert_stamp(self.now)
            alert = PredictiveAlert(
                id=f"perf-{entity.id}-{metric}-{stamp}",
                type=AlertType.PERFORMANCE,
                severity=severity,
                title=f"{metric.capitalize()} Goal at Risk",
                message=(
                    f"Projected to achieve {projected_value / goal_value * 100:.0f}% of {metric} goal "
                    f"({projected_value:,.0f} vs {goal_value:,.0f})."
                ),
                entity_id=entity.id,
                entity_name=entity.name,
                entity_type=entity.entity_type,
                timestamp=timestamp,
                metric=metric,
                current_value=current_value,
                projected_value=projected_value,
                threshold=goal_value,
                impact=f"{(goal_value - projected_value) / goal_value * 100:.0f}% shortfall on {metric}",
                recommendation=goal_risk_recommendation(metric),
            )

        return PerformancePrediction(
            entity_id=entity.id,
            entity_name=entity.name,
            metric=metric,
            current_value=current_value,
            projected_value=projected_value,
            goal_value=goal_value,
            confidence=confidence,
            trend=trend,
            alert=alert,
        )

    # ------------------------------------------------------------------
    # Delivery risk
    # ------------------------------------------------------------------
    def _risk_factors(self, entity: PlanEntity) -> List[RiskFactor]:
        cfg = self.settings.risk
        factors: List[RiskFactor] = []

        pacing = self.analyze_budget_pacing(entity)
        if pacing is not None:
            if pacing.status == PacingStatus.ON_TRACK:
                description = "Budget pacing is on track"
            else:
                direction = "under" if pacing.status == PacingStatus.UNDER_PACING else "over"
                description = f"{abs(pacing.pace_variance):.0f}% {direction} ideal pace"
            factors.append(
                RiskFactor("Budget Pacing", min(100.0, abs(pacing.pace_variance)), cfg.pacing_weight, description)
            )

        if entity.delivery is not None and entity.forecast is not None:
            delivery_rate = entity.delivery.actual_impressions / max(1.0, entity.forecast.impressions)
            if delivery_rate < 0.8:
                description = f"Delivering {delivery_rate * 100:.0f}% of forecast"
            elif delivery_rate > 1.2:
                description = f"Over-delivering at {delivery_rate * 100:.0f}% of forecast"
            else:
                description = "Delivery aligned with forecast"
            factors.append(
                RiskFactor(
                    "Delivery Performance",
                    min(100.0, abs(1 - delivery_rate) * 100),
                    cfg.delivery_weight,
                    description,
                )
            )

        if entity.end_date is not None:
            days_remaining = _ceil_days(self.now, _as_datetime(entity.end_date, self.now))
            if days_remaining < 3:
                score, description = 100.0, f"Only {days_remaining} days remaining"
            elif days_remaining < 7:
                score, description = 60.0, f"{days_remaining} days remaining"
            elif days_remaining < 14:
                score, description = 30.0, "Adequate time remaining"
            else:
                score, description = 10.0, "Adequate time remaining"
            factors.append(RiskFactor("Time Pressure", score, cfg.time_weight, description))

        if entity.performance is not None:
            ctr = entity.performance.ctr
            if ctr < 0.5:
                score = 80.0
            elif ctr < 1.0:
                score = 40.0
            elif ctr < 2.0:
                score = 20.0
            else:
                score = 10.0
            factors.append(RiskFactor("Engagement Rate", score, cfg.engagement_weight, f"CTR: {ctr:.2f}%"))

        status = EntityStatus(entity.status)
        status_score = {EntityStatus.PAUSED: 100.0, EntityStatus.DRAFT: 80.0}.get(status, 0.0)
        factors.append(RiskFactor("Status", status_score, cfg.status_weight, f"Current status: {status.value}"))
        return factors

    def _risk_level(self, score: float) -> RiskLevel:
        cfg = self.settings.risk
        if score >= cfg.critical_score:
            return RiskLevel.CRITICAL
        if score >= cfg.high_score:
            return RiskLevel.HIGH
        if score >= cfg.medium_score:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def assess_delivery_risk(self, entity: PlanEntity) -> DeliveryRiskAssessment:
        factors = self._risk_factors(entity)
        risk_score = min(100.0, max(0.0, sum(factor.weighted_score for factor in factors)))
        risk_level = self._risk_level(risk_score)

        alert = None
        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            top_factors = sorted(
                (factor for factor in factors if factor.weighted_score > 0),
                key=lambda factor: factor.weighted_score,
                reverse=True,
            )[:2]
            timestamp, stamp = _alert_stamp(self.now)
            alert = PredictiveAlert(
                id=f"risk-{entity.id}-{stamp}",
                type=AlertType.DELIVERY_RISK,
                severity=AlertSeverity.CRITICAL if risk_level == RiskLevel.CRITICAL else AlertSeverity.WARNING,
                title=f"{risk_level.value} Delivery Risk Detected",
                message=(
                    f"Risk score: {risk_score:.0f}/100. "
                    f"Primary concerns: {', '.join(factor.name for factor in top_factors)}."
                ),
                entity_id=entity.id,
                entity_name=entity.name,
                entity_type=entity.entity_type,
                timestamp=timestamp,
                metric="risk_score",
                current_value=risk_score,
                impact=top_factors[0].description if top_factors else "Multiple risk factors detected",
                recommendation=risk_recommendation(risk_level),
            )

        return DeliveryRiskAssessment(
            entity_id=entity.id,
            entity_name=entity.name,
            risk_score=risk_score,
            risk_level=risk_level,
            factors=tuple(factors),
            alert=alert,
        )

    # ------------------------------------------------------------------
    # Opportunities
    # ------------------------------------------------------------------
    def _budget_reallocation(self, campaign: Campaign) -> Optional[OpportunityScore]:
        cfg = self.settings.opportunity
        ranked = sorted(
            (flight for flight in campaign.flights if flight.performance is not None),
            key=lambda flight: flight.performance.roas,
            reverse=True,
        )
        if len(ranked) < 2:
            return None
        top = ranked[0]
        top_roas = top.performance.roas
        mean_roas = sum(flight.performance.roas for flight in ranked) / len(ranked)
        if mean_roas <= 0 or top_roas <= mean_roas * cfg.reallocation_roas_ratio:
            return None

        lift_pct = (top_roas - mean_roas) / mean_roas * 100
        return OpportunityScore(
            entity_id=campaign.id,
            entity_name=campaign.name,
            opportunity_type=OpportunityType.BUDGET_REALLOCATION,
            score=min(100.0, lift_pct),
            estimated_impact=f"+{lift_pct:.0f}% ROAS potential",
            effort=Effort.LOW,
            description=(
                f'Reallocate budget from lower-performing flights to "{top.name}" ({top_roas:.2f}x ROAS).'
            ),
            recommendation="Shift 20-30% of budget from underperforming flights to top performer.",
        )

    def _performance_opportunities(self, campaign: Campaign) -> List[OpportunityScore]:
        cfg = self.settings.opportunity
        found: List[OpportunityScore] = []
        perf = campaign.performance
        if perf is None:
            return found

        if perf.ctr > cfg.high_ctr and perf.cvr < cfg.low_cvr and perf.roas < cfg.low_roas:
            found.append(
                OpportunityScore(
                    entity_id=campaign.id,
                    entity_name=campaign.name,
                    opportunity_type=OpportunityType.AUDIENCE_EXPANSION,
                    score=75.0,
                    estimated_impact="+25-40% conversion rate",
                    effort=Effort.MEDIUM,
                    description="High click-through rate but low conversion suggests audience refinement opportunity.",
                    recommendation=(
                        "Review landing page experience, refine audience targeting, "
                        "or test conversion-focused creative."
                    ),
                )
            )
        if perf.roas > cfg.scale_roas and perf.ctr > cfg.scale_ctr:
            found.append(
                OpportunityScore(
                    entity_id=campaign.id,
                    entity_name=campaign.name,
                    opportunity_type=OpportunityType.AUDIENCE_EXPANSION,
                    score=85.0,
                    estimated_impact=f"Potential 2-3x scale at {perf.roas:.1f}x ROAS",
                    effort=Effort.LOW,
                    description="Exceptional performance indicates room for audience and budget expansion.",
                    recommendation="Increase budget by 50-100% and test lookalike audiences or broader targeting.",
                )
            )
        return found

    def _creative_refresh(self, campaign: Campaign) -> Optional[OpportunityScore]:
        cfg = self.settings.opportunity
        if campaign.start_date is None or campaign.performance is None:
            return None
        days_running = _ceil_days(_as_datetime(campaign.start_date, self.now), self.now)
        if days_running <= cfg.refresh_min_days or campaign.performance.ctr >= cfg.refresh_max_ctr:
            return None
        return OpportunityScore(
            entity_id=campaign.id,
            entity_name=campaign.name,
            opportunity_type=OpportunityType.CREATIVE_REFRESH,
            score=60.0,
            estimated_impact="+15-25% CTR improvement",
            effort=Effort.MEDIUM,
            description="Campaign running for 30+ days with below-average engagement.",
            recommendation="Test new creative variations or messaging angles to combat ad fatigue.",
        )

    def _with_alert(self, opportunity: OpportunityScore) -> OpportunityScore:
        if opportunity.score < self.settings.opportunity.alert_score:
            return opportunity
        timestamp, stamp = _alert_stamp(self.now)
        alert = PredictiveAlert(
            id=f"opp-{opportunity.entity_id}-{opportunity.opportunity_type.value}-{stamp}",
            type=AlertType.OPPORTUNITY,
            severity=AlertSeverity.INFO,
            title="Optimization Opportunity Detected",
            message=opportunity.description,
            entity_id=opportunity.entity_id,
            entity_name=opportunity.entity_name,
            entity_type=EntityType.CAMPAIGN,
            timestamp=timestamp,
            impact=opportunity.estimated_impact,
            recommendation=opportunity.recommendation,
        )
        return OpportunityScore(
            entity_id=opportunity.entity_id,
            entity_name=opportunity.entity_name,
            opportunity_type=opportunity.opportunity_type,
            score=opportunity.score,
            estimated_impact=opportunity.estimated_impact,
            effort=opportunity.effort,
            description=opportunity.description,
            recommendation=opportunity.recommendation,
            alert=alert,
        )

    def identify_opportunities(self, campaign: Campaign) -> List[OpportunityScore]:
        opportunities: List[OpportunityScore] = []
        reallocation = self._budget_reallocation(campaign)
        if reallocation is not None:
            opportunities.append(reallocation)
        opportunities.extend(self._performance_opportunities(campaign))
        refresh = self._creative_refresh(campaign)
        if refresh is not None:
            opportunities.append(refresh)
        return [self._with_alert(opportunity) for opportunity in opportunities]

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    @staticmethod
    def goal_metrics(campaign: Campaign) -> List[str]:
        """Metrics with a goal to project against, in canonical order."""
        metrics: List[str] = []
        goals = campaign.numeric_goals or {}
        for metric in PERFORMANCE_METRICS:
            if metric == "impressions":
                if campaign.forecast is not None and campaign.forecast.impressions > 0:
                    metrics.append(metric)
            elif goals.get(metric):
                metrics.append(metric)
        return metrics

    def get_all_alerts(self, campaigns: Sequence[Campaign]) -> List[PredictiveAlert]:
        alerts: List[PredictiveAlert] = []

        for campaign in campaigns:
            pacing = self.analyze_budget_pacing(campaign)
            if pacing is not None and pacing.alert is not None:
                alerts.append(pacing.alert)

            risk = self.assess_delivery_risk(campaign)
            if risk.alert is not None:
                alerts.append(risk.alert)

            for metric in self.goal_metrics(campaign):
                prediction = self.predict_performance(campaign, metric)
                if prediction is not None and prediction.alert is not None:
                    alerts.append(prediction.alert)

            alerts.extend(opp.alert for opp in self.identify_opportunities(campaign) if opp.alert is not None)

            for flight in campaign.flights:
                flight_pacing = self.analyze_budget_pacing(flight)
                if flight_pacing is not None and flight_pacing.alert is not None:
                    alerts.append(flight_pacing.alert)
                flight_risk = self.assess_delivery_risk(flight)
                if flight_risk.alert is not None:
                    alerts.append(flight_risk.alert)

        logger.debug("Collected %d alerts across %d campaigns", len(alerts), len(campaigns))
        return sorted(alerts, key=lambda alert: (alert.severity.rank, -alert.timestamp))


def analyze_budget_pacing(
    entity: PlanEntity,
    *,
    now: datetime | None = None,
    settings: AnalyticsSettings | None = None,
) -> Optional[BudgetPacingAnalysis]:
    return PredictiveAnalytics(settings, now).analyze_budget_pacing(entity)


def predict_performance(
    entity: PlanEntity,
    metric: str,
    *,
    historical_daily_rate: float | None = None,
    now: datetime | None = None,
    settings: AnalyticsSettings | None = None,
) -> Optional[PerformancePrediction]:
    return PredictiveAnalytics(settings, now).predict_performance(entity, metric, historical_daily_rate)


def assess_delivery_risk(
    entity: PlanEntity,
    *,
    now: datetime | None = None,
    settings: AnalyticsSettings | None = None,
) -> DeliveryRiskAssessment:
    return PredictiveAnalytics(settings, now).assess_delivery_risk(entity)


def identify_opportunities(
    campaign: Campaign,
    *,
    now: datetime | None = None,
    settings: AnalyticsSettings | None = None,
) -> List[OpportunityScore]:
    return PredictiveAnalytics(settings, now).identify_opportunities(campaign)


def get_all_alerts(
    campaigns: Sequence[Campaign],
    *,
    now: datetime | None = None,
    settings: AnalyticsSettings | None = None,
) -> List[PredictiveAlert]:
    """Every pacing, risk, goal and opportunity alert, most severe first."""
    return PredictiveAnalytics(settings, now).get_all_alerts(campaigns)
