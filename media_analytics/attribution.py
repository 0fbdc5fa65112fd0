"""Attribution Engine: multi-touch credit allocation and per-channel aggregation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

import polars as pl

from media_analytics.config import AttributionSettings
from media_analytics.domain.models import (
    AttributionModel,
    AttributionResult,
    ChannelType,
    ConversionPath,
    ModelComparison,
)
from media_analytics.exceptions import InvalidModelError

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

TIME_TO_CONVERSION_BUCKETS: List[tuple[str, float]] = [
    ("< 1 day", 1),
    ("1-3 days", 3),
    ("3-7 days", 7),
    ("7-14 days", 14),
    ("14-30 days", 30),
    ("30+ days", float("inf")),
]
TOUCHPOINT_FREQUENCY_BUCKETS: List[str] = ["1", "2", "3", "4", "5", "6-10", "10+"]


def resolve_model(model: Any) -> AttributionModel:
    """Return the attribution model for ``model`` or raise ``InvalidModelError``."""
    if isinstance(model, AttributionModel):
        return model
    try:
        return AttributionModel(model)
    except ValueError as exc:
        supported = [m.value for m in AttributionModel]
        raise InvalidModelError(
            f"Unknown attribution model {model!r}; expected one of {supported}",
            model=model,
            context={"supported": supported},
        ) from exc


class AttributionEngine:
    """Splits conversion credit across touchpoints and rolls it up by channel."""

    def __init__(self, settings: AttributionSettings | None = None) -> None:
        self.settings = settings or AttributionSettings()

    @staticmethod
    def _safe_ratio_expr(num: pl.Expr, den: pl.Expr) -> pl.Expr:
        return pl.when(den > 0).then(num / den).otherwise(0.0)

    def _time_decay(self, path: ConversionPath) -> List[float]:
        conversion_time = path.conversion_time
        half_life_seconds = self.settings.half_life_days * SECONDS_PER_DAY
        gaps = [(conversion_time - tp.timestamp).total_seconds() for tp in path.touchpoints]
        # Shift by the smallest gap so the most recent weight is 1.0 and nothing underflows.
        nearest = min(gaps)
        weights = [2.0 ** (-(gap - nearest) / half_life_seconds) for gap in gaps]
        total = sum(weights)
        return [weight / total for weight in weights]

    def _position_based(self, count: int) -> List[float]:
        if count == 1:
            return [1.0]
        if count == 2:
            return [0.5, 0.5]
        middle_share = self.settings.position_middle / (count - 2)
        return [self.settings.position_first] + [middle_share] * (count - 2) + [self.settings.position_last]

    def path_credits(self, path: ConversionPath, model: AttributionModel | str) -> List[float]:
        """Credit for each touchpoint of ``path``, in path order, summing to 1.0."""
        resolved = resolve_model(model)
        count = len(path.touchpoints)
        if count == 0:
            return []

        if resolved == AttributionModel.FIRST_TOUCH:
            return [1.0] + [0.0] * (count - 1)
        if resolved == AttributionModel.LAST_TOUCH:
            return [0.0] * (count - 1) + [1.0]
        if resolved == AttributionModel.LINEAR:
            return [1.0 / count] * count
        if resolved == AttributionModel.TIME_DECAY:
            return self._time_decay(path)
        return self._position_based(count)

    def _credit_rows(self, paths: Sequence[ConversionPath], model: AttributionModel) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for path in paths:
            credits = self.path_credits(path, model)
            for touchpoint, credit in zip(path.touchpoints, credits):
                rows.append(
                    {
                        "channel": touchpoint.channel,
                        "channel_type": ChannelType(touchpoint.channel_type).value,
                        "credit": credit,
                        "revenue": credit * path.conversion_value,
                        "cost": touchpoint.cost,
                    }
                )
        return rows

    def _aggregate(self, rows: List[Dict[str, Any]]) -> pl.DataFrame:
        frame = pl.DataFrame(
            rows,
            schema={
                "channel": pl.Utf8,
                "channel_type": pl.Utf8,
                "credit": pl.Float64,
                "revenue": pl.Float64,
                "cost": pl.Float64,
            },
        )
        return frame.group_by("channel", maintain_order=True).agg(
            [
                pl.col("channel_type").first().alias("channel_type"),
                pl.col("credit").sum().alias("credit_sum"),
                pl.col("revenue").sum().alias("revenue"),
                pl.col("cost").sum().alias("cost"),
            ]
        )

    def calculate(self, paths: Sequence[ConversionPath], model: AttributionModel | str) -> List[AttributionResult]:
        """Aggregate per-channel attribution for ``paths`` under ``model``."""
        resolved = resolve_model(model)
        converted = [path for path in paths if path.touchpoints]
        skipped = len(paths) - len(converted)
        if skipped:
            logger.debug("Skipping %d conversion paths without touchpoints", skipped)
        if not converted:
            return []

        aggregated = self._aggregate(self._credit_rows(converted, resolved)).with_columns(
            [
                (pl.col("credit_sum") / pl.lit(float(len(converted)))).alias("credit_share"),
                self._safe_ratio_expr(pl.col("revenue"), pl.col("cost")).alias("roas"),
            ]
        )
        logger.debug(
            "Attributed %d paths across %d channels with %s", len(converted), aggregated.height, resolved.value
        )
        return [
            AttributionResult(
                channel=row["channel"],
                channel_type=ChannelType(row["channel_type"]),
                model=resolved,
                credit=float(row["credit_share"]),
                conversions=float(row["credit_sum"]),
                revenue=float(row["revenue"]),
                cost=float(row["cost"]),
                roas=float(row["roas"]),
            )
            for row in aggregated.to_dicts()
        ]

    def compare(self, paths: Sequence[ConversionPath]) -> ModelComparison:
        return ModelComparison(
            first_touch=tuple(self.calculate(paths, AttributionModel.FIRST_TOUCH)),
            last_touch=tuple(self.calculate(paths, AttributionModel.LAST_TOUCH)),
            linear=tuple(self.calculate(paths, AttributionModel.LINEAR)),
            time_decay=tuple(self.calculate(paths, AttributionModel.TIME_DECAY)),
            position_based=tuple(self.calculate(paths, AttributionModel.POSITION_BASED)),
        )


def path_credits(
    path: ConversionPath,
    model: AttributionModel | str,
    settings: AttributionSettings | None = None,
) -> List[float]:
    return AttributionEngine(settings).path_credits(path, model)


def calculate_attribution(
    paths: Sequence[ConversionPath],
    model: AttributionModel | str,
    settings: AttributionSettings | None = None,
) -> List[AttributionResult]:
    return AttributionEngine(settings).calculate(paths, model)


def compare_models(
    paths: Sequence[ConversionPath],
    settings: AttributionSettings | None = None,
) -> ModelComparison:
    """Run every attribution model over the same paths."""
    return AttributionEngine(settings).compare(paths)


def time_to_conversion_distribution(paths: Sequence[ConversionPath]) -> Dict[str, int]:
    """Count paths per time-to-conversion bucket (hours converted to days)."""
    buckets = {label: 0 for label, _ in TIME_TO_CONVERSION_BUCKETS}
    for path in paths:
        days = path.time_to_conversion / 24
        for label, upper in TIME_TO_CONVERSION_BUCKETS:
            if days < upper:
                buckets[label] += 1
                break
    return buckets


def touchpoint_frequency_distribution(paths: Sequence[ConversionPath]) -> Dict[str, int]:
    """Count paths by number of touchpoints before converting."""
    buckets = {label: 0 for label in TOUCHPOINT_FREQUENCY_BUCKETS}
    for path in paths:
        count = len(path.touchpoints)
        if count == 0:
            continue
        if count <= 5:
            buckets[str(count)] += 1
        elif count <= 10:
            buckets["6-10"] += 1
        else:
            buckets["10+"] += 1
    return buckets


def roas_by_model(comparison: ModelComparison, top_n: int = 10) -> List[Dict[str, Any]]:
    """ROAS of the top channels (by linear revenue) under linear, first- and last-touch."""

    def _by_channel(results: Sequence[AttributionResult]) -> Mapping[str, AttributionResult]:
        return {result.channel: result for result in results}

    linear = _by_channel(comparison.linear)
    first = _by_channel(comparison.first_touch)
    last = _by_channel(comparison.last_touch)

    ranked = sorted(linear.values(), key=lambda result: (-result.revenue, result.channel))[:top_n]
    output: List[Dict[str, Any]] = []
    for result in ranked:
        output.append(
            {
                "channel": result.channel,
                "revenue": result.revenue,
                "linear_roas": result.roas,
                "first_touch_roas": first[result.channel].roas if result.channel in first else 0.0,
                "last_touch_roas": last[result.channel].roas if result.channel in last else 0.0,
            }
        )
    return output
