"""
Tests for pacing, goal prediction, delivery risk and opportunity scoring.
"""

from datetime import timedelta

import pytest

from conftest import NOW, make_campaign, make_flight
from media_analytics.config import AnalyticsSettings, PacingSettings
from media_analytics.domain.models import (
    AlertSeverity,
    AlertType,
    DeliveryMetrics,
    EntityStatus,
    EntityType,
    ForecastMetrics,
    Line,
    OpportunityType,
    PacingStatus,
    PerformanceMetrics,
    RiskLevel,
    Trend,
)
from media_analytics.exceptions import AnalyticsError
from media_analytics.predictive import (
    PredictiveAnalytics,
    analyze_budget_pacing,
    assess_delivery_risk,
    get_all_alerts,
    identify_opportunities,
    predict_performance,
)


# =============================================================================
# BUDGET PACING
# =============================================================================


class TestBudgetPacing:
    def test_under_pacing_at_threshold_has_no_alert(self):
        analysis = analyze_budget_pacing(make_campaign(actual_spend=40_000), now=NOW)
        assert analysis.total_days == 30
        assert analysis.days_elapsed == 15
        assert analysis.days_remaining == 15
        assert analysis.ideal_spend == pytest.approx(50_000)
        assert analysis.pace_variance == pytest.approx(-20.0)
        assert analysis.status == PacingStatus.UNDER_PACING
        assert analysis.projected_spend == pytest.approx(80_000)
        assert analysis.alert is None

    def test_on_track(self):
        analysis = analyze_budget_pacing(make_campaign(actual_spend=52_000), now=NOW)
        assert analysis.status == PacingStatus.ON_TRACK
        assert analysis.alert is None

    def test_warning_alert(self):
        analysis = analyze_budget_pacing(make_campaign(actual_spend=37_500), now=NOW)
        assert analysis.pace_variance == pytest.approx(-25.0)
        alert = analysis.alert
        assert alert.severity == AlertSeverity.WARNING
        assert alert.type == AlertType.BUDGET_PACING
        assert alert.title == "Under-Pacing Alert"
        assert alert.entity_type == EntityType.CAMPAIGN
        assert alert.id.startswith("pacing-cmp-1-")
        assert alert.timestamp == NOW.timestamp()
        assert alert.threshold == 100_000

    def test_critical_over_pacing_caps_projection(self):
        analysis = analyze_budget_pacing(make_campaign(actual_spend=75_000), now=NOW)
        assert analysis.status == PacingStatus.OVER_PACING
        assert analysis.projected_spend == pytest.approx(150_000)
        assert analysis.alert.severity == AlertSeverity.CRITICAL
        assert analysis.alert.title == "Over-Pacing Alert"

    def test_not_started_yet(self):
        analysis = analyze_budget_pacing(make_campaign(elapsed_days=-5, actual_spend=0.0), now=NOW)
        assert analysis.days_elapsed == 0
        assert analysis.ideal_spend == 0
        assert analysis.pace_variance == 0
        assert analysis.status == PacingStatus.ON_TRACK

    def test_finished_campaign_clamps_elapsed(self):
        analysis = analyze_budget_pacing(make_campaign(elapsed_days=45, actual_spend=100_000), now=NOW)
        assert analysis.days_elapsed == 30
        assert analysis.days_remaining == 0
        assert analysis.status == PacingStatus.ON_TRACK

    def test_missing_data_returns_none(self):
        assert analyze_budget_pacing(make_campaign(actual_spend=None), now=NOW) is None
        no_dates = Line(id="l-1", name="Line", start_date=None, end_date=None, delivery=DeliveryMetrics(1.0))
        assert analyze_budget_pacing(no_dates, now=NOW) is None

    def test_line_uses_total_cost(self):
        line = Line(
            id="l-1",
            name="Line",
            start_date=NOW - timedelta(days=5),
            end_date=NOW + timedelta(days=5),
            total_cost=1_000,
            delivery=DeliveryMetrics(actual_spend=500),
        )
        analysis = analyze_budget_pacing(line, now=NOW)
        assert analysis.budget == 1_000
        assert analysis.status == PacingStatus.ON_TRACK

    def test_alert_threshold_is_configurable(self):
        settings = AnalyticsSettings(pacing=PacingSettings(alert_threshold_pct=10.0))
        analysis = analyze_budget_pacing(make_campaign(actual_spend=40_000), now=NOW, settings=settings)
        assert analysis.alert is not None


# =============================================================================
# PERFORMANCE PREDICTION
# =============================================================================


def _converting_campaign(goal: float, elapsed_days: int = 10) -> object:
    return make_campaign(
        elapsed_days=elapsed_days,
        performance=PerformanceMetrics(conversions=100, clicks=2_000, impressions=100_000),
        numeric_goals={"conversions": goal},
    )


class TestPredictPerformance:
    def test_projection(self):
        prediction = predict_performance(_converting_campaign(300), "conversions", now=NOW)
        assert prediction.current_value == 100
        assert prediction.projected_value == pytest.approx(300)
        assert prediction.goal_value == 300
        assert prediction.confidence == 1.0
        assert prediction.trend == Trend.STABLE
        assert prediction.alert is None

    def test_warning_when_below_eighty_percent(self):
        prediction = predict_performance(_converting_campaign(500), "conversions", now=NOW)
        assert prediction.alert.severity == AlertSeverity.WARNING
        assert prediction.alert.type == AlertType.PERFORMANCE
        assert prediction.alert.title == "Conversions Goal at Risk"

    def test_critical_when_below_sixty_percent(self):
        prediction = predict_performance(_converting_campaign(600), "conversions", now=NOW)
        assert prediction.alert.severity == AlertSeverity.CRITICAL

    def test_confidence_ramps_over_first_week(self):
        prediction = predict_performance(_converting_campaign(300, elapsed_days=3), "conversions", now=NOW)
        assert prediction.confidence == pytest.approx(3 / 7)

    def test_impressions_goal_from_forecast(self):
        campaign = make_campaign(
            elapsed_days=10,
            delivery=DeliveryMetrics(actual_spend=30_000, actual_impressions=200_000),
            forecast=ForecastMetrics(impressions=1_000_000),
        )
        prediction = predict_performance(campaign, "impressions", now=NOW)
        assert prediction.projected_value == pytest.approx(600_000)
        assert prediction.goal_value == 1_000_000
        assert prediction.alert.severity == AlertSeverity.WARNING

    @pytest.mark.parametrize(
        "historical, expected",
        [(None, Trend.STABLE), (5.0, Trend.GROWING), (20.0, Trend.DECLINING), (10.0, Trend.STABLE)],
    )
    def test_trend_against_historical_rate(self, historical, expected):
        prediction = predict_performance(
            _converting_campaign(300), "conversions", historical_daily_rate=historical, now=NOW
        )
        assert prediction.trend == expected

    def test_no_goal_means_no_alert(self):
        campaign = make_campaign(performance=PerformanceMetrics(revenue=10.0))
        prediction = predict_performance(campaign, "revenue", now=NOW)
        assert prediction.goal_value is None
        assert prediction.alert is None

    def test_missing_data_returns_none(self):
        assert predict_performance(make_campaign(actual_spend=None), "clicks", now=NOW) is None

    def test_unsupported_metric_rejected(self):
        with pytest.raises(AnalyticsError):
            predict_performance(_converting_campaign(300), "ctr", now=NOW)


# =============================================================================
# DELIVERY RISK
# =============================================================================


class TestDeliveryRisk:
    def test_critical_risk(self):
        campaign = make_campaign(
            status=EntityStatus.PAUSED,
            delivery=DeliveryMetrics(actual_spend=0.0, actual_impressions=0.0),
            forecast=ForecastMetrics(impressions=1_000_000),
            performance=PerformanceMetrics(ctr=0.2),
        )
        assessment = assess_delivery_risk(campaign, now=NOW)
        assert assessment.risk_score == pytest.approx(79.0)
        assert assessment.risk_level == RiskLevel.CRITICAL
        assert [factor.name for factor in assessment.factors] == [
            "Budget Pacing",
            "Delivery Performance",
            "Time Pressure",
            "Engagement Rate",
            "Status",
        ]
        alert = assessment.alert
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.type == AlertType.DELIVERY_RISK
        assert "Budget Pacing, Delivery Performance" in alert.message

    def test_low_risk(self):
        campaign = make_campaign(actual_spend=50_000, performance=PerformanceMetrics(ctr=3.0))
        assessment = assess_delivery_risk(campaign, now=NOW)
        assert assessment.risk_score == pytest.approx(3.5)
        assert assessment.risk_level == RiskLevel.LOW
        assert assessment.alert is None

    def test_only_present_factors_are_scored(self):
        assessment = assess_delivery_risk(make_campaign(actual_spend=None), now=NOW)
        assert [factor.name for factor in assessment.factors] == ["Time Pressure", "Status"]

    def test_time_pressure_near_end(self):
        assessment = assess_delivery_risk(make_campaign(elapsed_days=29, actual_spend=None), now=NOW)
        time_factor = next(factor for factor in assessment.factors if factor.name == "Time Pressure")
        assert time_factor.score == 100

    @pytest.mark.parametrize("spend", [0.0, 10_000.0, 50_000.0, 90_000.0, 250_000.0])
    @pytest.mark.parametrize("status", [EntityStatus.ACTIVE, EntityStatus.DRAFT, EntityStatus.PAUSED])
    def test_score_is_bounded(self, spend, status):
        campaign = make_campaign(
            actual_spend=spend,
            status=status,
            forecast=ForecastMetrics(impressions=100.0),
            performance=PerformanceMetrics(ctr=0.1),
        )
        assessment = assess_delivery_risk(campaign, now=NOW)
        assert 0.0 <= assessment.risk_score <= 100.0


# =============================================================================
# OPPORTUNITIES AND ALERT FEED
# =============================================================================


class TestOpportunities:
    def test_budget_reallocation(self):
        campaign = make_campaign(flights=(make_flight("a", roas=6.0), make_flight("b", roas=2.0), make_flight("c", roas=1.0)))
        opportunities = identify_opportunities(campaign, now=NOW)
        assert len(opportunities) == 1
        opp = opportunities[0]
        assert opp.opportunity_type == OpportunityType.BUDGET_REALLOCATION
        assert opp.score == pytest.approx(100.0)
        assert opp.alert.severity == AlertSeverity.INFO

    def test_single_flight_cannot_reallocate(self):
        campaign = make_campaign(flights=(make_flight("a", roas=6.0),))
        assert identify_opportunities(campaign, now=NOW) == []

    def test_audience_refinement(self):
        campaign = make_campaign(performance=PerformanceMetrics(ctr=2.5, cvr=0.5, roas=1.5))
        opportunities = identify_opportunities(campaign, now=NOW)
        assert [opp.score for opp in opportunities] == [75.0]
        assert opportunities[0].alert is not None

    def test_scale_up(self):
        campaign = make_campaign(performance=PerformanceMetrics(ctr=3.5, cvr=4.0, roas=6.0))
        opportunities = identify_opportunities(campaign, now=NOW)
        assert [opp.score for opp in opportunities] == [85.0]

    def test_creative_refresh_has_no_alert(self):
        campaign = make_campaign(elapsed_days=45, total_days=60, performance=PerformanceMetrics(ctr=1.0, roas=3.0))
        opportunities = identify_opportunities(campaign, now=NOW)
        assert [opp.opportunity_type for opp in opportunities] == [OpportunityType.CREATIVE_REFRESH]
        assert opportunities[0].alert is None


class TestGetAllAlerts:
    def test_sorted_by_severity(self):
        over = make_campaign(
            "over",
            actual_spend=75_000,
            performance=PerformanceMetrics(ctr=3.5, cvr=4.0, roas=6.0),
            flights=(make_flight("f-1", actual_spend=6_500),),
        )
        under = make_campaign("under", actual_spend=37_500)
        alerts = get_all_alerts([over, under], now=NOW)

        severities = [alert.severity for alert in alerts]
        assert severities == sorted(severities, key=lambda severity: severity.rank)
        assert severities[0] == AlertSeverity.CRITICAL
        assert severities[-1] == AlertSeverity.INFO
        assert {alert.entity_type for alert in alerts} == {EntityType.CAMPAIGN, EntityType.FLIGHT}
        assert len(alerts) == 4

    def test_includes_goal_alerts(self):
        alerts = get_all_alerts([_converting_campaign(600)], now=NOW)
        assert any(alert.type == AlertType.PERFORMANCE for alert in alerts)

    def test_empty(self):
        assert get_all_alerts([], now=NOW) == []

    def test_idempotent(self):
        campaigns = [make_campaign(actual_spend=75_000), make_campaign("b", actual_spend=10_000)]
        engine = PredictiveAnalytics(now=NOW)
        assert engine.get_all_alerts(campaigns) == engine.get_all_alerts(campaigns)
