"""Shared fixtures and record factories for the analytics tests."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from media_analytics.domain.models import (
    Campaign,
    ChannelType,
    ConversionPath,
    DeliveryMetrics,
    EntityStatus,
    Flight,
    ForecastMetrics,
    PerformanceMetrics,
    Segment,
    SegmentCategory,
    Touchpoint,
)

NOW = datetime(2025, 6, 15, 12, 0, 0)


def make_path(
    *channels: str,
    value: float = 100.0,
    gap_days: float = 1.0,
    cost: float = 10.0,
    converted_at: datetime = NOW,
    channel_type: ChannelType = ChannelType.DISPLAY,
) -> ConversionPath:
    """Touchpoints ``gap_days`` apart, the last one ``gap_days`` before conversion."""
    count = len(channels)
    touchpoints = tuple(
        Touchpoint(
            channel=channel,
            channel_type=channel_type,
            timestamp=converted_at - timedelta(days=gap_days * (count - idx)),
            cost=cost,
        )
        for idx, channel in enumerate(channels)
    )
    return ConversionPath(touchpoints=touchpoints, conversion_value=value, conversion_date=converted_at)


def make_segment(
    segment_id: str,
    category: SegmentCategory = SegmentCategory.INTEREST,
    *,
    reach: int = 1_000_000,
    cpm_uplift: float = 2.0,
    vendor: str | None = None,
    name: str | None = None,
) -> Segment:
    return Segment(
        id=segment_id,
        name=name or f"Segment {segment_id}",
        category=category,
        reach=reach,
        cpm_uplift=cpm_uplift,
        vendor=vendor,
    )


def make_campaign(
    campaign_id: str = "cmp-1",
    *,
    budget: float = 100_000.0,
    elapsed_days: int = 15,
    total_days: int = 30,
    actual_spend: float | None = 50_000.0,
    status: EntityStatus = EntityStatus.ACTIVE,
    performance: PerformanceMetrics | None = None,
    delivery: DeliveryMetrics | None = None,
    forecast: ForecastMetrics | None = None,
    flights: tuple[Flight, ...] = (),
    numeric_goals: dict[str, float] | None = None,
) -> Campaign:
    start = NOW - timedelta(days=elapsed_days)
    if delivery is None and actual_spend is not None:
        delivery = DeliveryMetrics(actual_spend=actual_spend)
    return Campaign(
        id=campaign_id,
        name=f"Campaign {campaign_id}",
        start_date=start,
        end_date=start + timedelta(days=total_days),
        budget=budget,
        status=status,
        performance=performance,
        delivery=delivery,
        forecast=forecast,
        flights=flights,
        numeric_goals=numeric_goals,
    )


def make_flight(
    flight_id: str,
    *,
    roas: float | None = None,
    budget: float = 10_000.0,
    actual_spend: float | None = None,
    elapsed_days: int = 15,
    total_days: int = 30,
) -> Flight:
    start = NOW - timedelta(days=elapsed_days)
    return Flight(
        id=flight_id,
        name=f"Flight {flight_id}",
        start_date=start,
        end_date=start + timedelta(days=total_days),
        budget=budget,
        performance=PerformanceMetrics(roas=roas, ctr=2.0) if roas is not None else None,
        delivery=DeliveryMetrics(actual_spend=actual_spend) if actual_spend is not None else None,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def sample_paths() -> list[ConversionPath]:
    return [
        make_path("search", "social", "email", value=300.0),
        make_path("display", "search", value=100.0),
        make_path("social", value=50.0),
    ]
