"""Incrementality Calculator: lift and significance for holdout / A-B tests."""

from __future__ import annotations

import logging
import math
from typing import Tuple

from scipy.stats import norm

from media_analytics.config import IncrementalitySettings
from media_analytics.domain.models import (
    GroupMetrics,
    IncrementalityResult,
    IncrementalityTest,
    LiftRecommendation,
)
from media_analytics.exceptions import InvalidTestInputError

logger = logging.getLogger(__name__)


class IncrementalityCalculator:
    def __init__(self, settings: IncrementalitySettings | None = None) -> None:
        self.settings = settings or IncrementalitySettings()

    @staticmethod
    def _validate_group(group: GroupMetrics | None, name: str) -> GroupMetrics:
        if group is None:
            raise InvalidTestInputError(f"Incrementality test is missing the {name} group", group=name)
        for field_name in ("spend", "conversions", "revenue"):
            value = getattr(group, field_name)
            if value is None or math.isnan(value):
                raise InvalidTestInputError(
                    f"{name} group {field_name} is missing", group=name, field=field_name, value=value
                )
            if value < 0:
                raise InvalidTestInputError(
                    f"{name} group {field_name} must be non-negative, got {value}",
                    group=name,
                    field=field_name,
                    value=value,
                )
        return group

    @staticmethod
    def _poisson_z(control_conversions: float, test_conversions: float) -> float:
        se = math.sqrt(control_conversions + test_conversions)
        if se <= 0:
            return 0.0
        return abs(test_conversions - control_conversions) / se

    def z_score(self, control: GroupMetrics, test: GroupMetrics) -> float:
        """Two-sided z statistic comparing the groups.

        With spend on both sides, conversions are treated as successes out of
        spend-proportional trials and compared with a pooled two-proportion test.
        A holdout (no control spend) or a pooled rate that is not a probability
        falls back to the Poisson difference of counts.
        """
        if control.spend > 0 and test.spend > 0:
            pooled = (control.conversions + test.conversions) / (control.spend + test.spend)
            if 0 < pooled < 1:
                control_rate = control.conversions / control.spend
                test_rate = test.conversions / test.spend
                se = math.sqrt(pooled * (1 - pooled) * (1 / control.spend + 1 / test.spend))
                return abs(test_rate - control_rate) / se if se > 0 else 0.0
            logger.debug("Pooled conversion rate %.4f outside (0, 1); using Poisson z", pooled)
        return self._poisson_z(control.conversions, test.conversions)

    def significance(self, control: GroupMetrics, test: GroupMetrics) -> Tuple[float, float]:
        """Return ``(p_value, confidence)`` for the group comparison."""
        z = self.z_score(control, test)
        p_value = float(min(1.0, max(0.0, 2 * norm.sf(z)))) if z > 0 else 1.0
        confidence = min(1.0, max(0.0, 1.0 - p_value))
        return p_value, confidence

    def _recommend(self, lift: float, is_significant: bool) -> LiftRecommendation:
        if is_significant and lift > 0:
            return LiftRecommendation.SCALE_UP
        if is_significant and lift < 0:
            return LiftRecommendation.SCALE_DOWN
        if not is_significant and abs(lift) < self.settings.maintain_band:
            return LiftRecommendation.MAINTAIN
        return LiftRecommendation.MORE_DATA_NEEDED

    def calculate(self, test: IncrementalityTest) -> IncrementalityResult:
        control = self._validate_group(test.control_group, "control")
        exposed = self._validate_group(test.test_group, "test")

        if exposed.is_empty:
            logger.warning("Incrementality test %s has an empty test group", test.test_id or test.channel)
            return IncrementalityResult(
                lift=0.0,
                lift_absolute=0.0,
                confidence=0.0,
                is_significant=False,
                p_value=1.0,
                recommendation=LiftRecommendation.MORE_DATA_NEEDED,
            )

        lift_absolute = exposed.conversions - control.conversions
        p_value, confidence = self.significance(control, exposed)
        is_significant = confidence >= self.settings.significance_level

        if control.conversions == 0:
            logger.debug("Control group for %s has no conversions; lift capped", test.test_id or test.channel)
            lift = self.settings.lift_cap if lift_absolute != 0 else 0.0
            recommendation = LiftRecommendation.MORE_DATA_NEEDED
        else:
            lift = lift_absolute / control.conversions
            recommendation = self._recommend(lift, is_significant)

        return IncrementalityResult(
            lift=lift,
            lift_absolute=lift_absolute,
            confidence=confidence,
            is_significant=is_significant,
            p_value=p_value,
            recommendation=recommendation,
        )


def calculate_incrementality(
    test: IncrementalityTest,
    settings: IncrementalitySettings | None = None,
) -> IncrementalityResult:
    return IncrementalityCalculator(settings).calculate(test)
