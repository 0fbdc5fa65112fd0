"""Audience Overlap Engine: segment overlap, deduplicated reach and segment insights."""

from __future__ import annotations

import hashlib
import logging
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import polars as pl

from media_analytics.config import AudienceSettings
from media_analytics.domain.models import (
    CampaignGoals,
    ExpansionGoal,
    ExpansionRecommendation,
    LookalikeRecommendation,
    PerformanceMetrics,
    Placement,
    Priority,
    Segment,
    SegmentCategory,
    SegmentPerformance,
)
from media_analytics.domain.recommendation import lookalike_reason

logger = logging.getLogger(__name__)


class OverlapProvider(Protocol):
    """Source of pairwise overlap estimates for two distinct segments."""

    def overlap(self, a: Segment, b: Segment) -> float: ...


def category_overlap_range(a: SegmentCategory, b: SegmentCategory) -> Tuple[float, float]:
    """Return ``(low, width)`` of the plausible overlap band for a category pair."""
    pair = {SegmentCategory(a), SegmentCategory(b)}
    if pair == {SegmentCategory.DEMOGRAPHICS}:
        return 0.6, 0.3
    if pair == {SegmentCategory.BEHAVIORAL, SegmentCategory.INTEREST}:
        return 0.3, 0.3
    if SegmentCategory.B2B in pair and len(pair) == 2:
        return 0.05, 0.15
    owned = [category.is_owned_data for category in (SegmentCategory(a), SegmentCategory(b))]
    if any(owned) and not all(owned):
        return 0.1, 0.2
    return 0.2, 0.4


class CategoryOverlap:
    """Midpoint of the category-pair band; deterministic and symmetric."""

    def overlap(self, a: Segment, b: Segment) -> float:
        low, width = category_overlap_range(a.category, b.category)
        return low + width / 2


class SeededJitterOverlap:
    """Position within the category band drawn from a hash of the segment pair.

    Each unordered pair always lands on the same value for a given seed, so
    results vary across pairs without varying across calls.
    """

    def __init__(self, seed: int | str = 0) -> None:
        self.seed = str(seed)

    def _unit(self, a: Segment, b: Segment) -> float:
        first, second = sorted((a.id, b.id))
        digest = hashlib.sha256(f"{self.seed}:{first}:{second}".encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") / 2**64

    def overlap(self, a: Segment, b: Segment) -> float:
        low, width = category_overlap_range(a.category, b.category)
        return low + width * self._unit(a, b)


class AudienceOverlapEngine:
    def __init__(
        self,
        settings: AudienceSettings | None = None,
        provider: OverlapProvider | None = None,
    ) -> None:
        self.settings = settings or AudienceSettings()
        self.provider = provider or CategoryOverlap()

    # ------------------------------------------------------------------
    # Overlap and reach
    # ------------------------------------------------------------------
    def overlap(self, a: Segment, b: Segment) -> float:
        if a.id == b.id:
            return 1.0
        return min(1.0, max(0.0, float(self.provider.overlap(a, b))))

    def overlap_matrix(self, segments: Sequence[Segment]) -> List[List[float]]:
        size = len(segments)
        matrix = [[1.0] * size for _ in range(size)]
        for i in range(size):
            for j in range(i + 1, size):
                value = self.overlap(segments[i], segments[j])
                matrix[i][j] = value
                matrix[j][i] = value
        return matrix

    def unique_reach(self, segments: Sequence[Segment]) -> int:
        """Deduplicated reach accumulated in list order.

        Each segment adds its reach scaled by one minus its mean overlap with
        the segments before it, so the estimate depends on ordering. The
        result is kept within [largest single reach, total reach].
        """
        if not segments:
            return 0
        reaches = [max(0, segment.reach or 0) for segment in segments]
        if len(segments) == 1:
            return int(reaches[0])

        accumulated = float(reaches[0])
        for i in range(1, len(segments)):
            mean_overlap = sum(self.overlap(segments[j], segments[i]) for j in range(i)) / i
            accumulated += reaches[i] * (1 - mean_overlap)

        unique = int(accumulated)
        return min(sum(reaches), max(max(reaches), unique))

    def reach_efficiency(self, segments: Sequence[Segment]) -> float:
        total = sum(max(0, segment.reach or 0) for segment in segments)
        return self.unique_reach(segments) / total if total > 0 else 0.0

    def optimal_segments_to_remove(self, segments: Sequence[Segment], max_to_remove: int = 5) -> List[Segment]:
        """Greedily drop segments while each removal lifts reach efficiency by more than 1 point."""
        if len(segments) <= 2:
            return []

        removed: List[Segment] = []
        remaining = list(segments)
        while len(removed) < max_to_remove and len(remaining) > 2:
            current = self.reach_efficiency(remaining)
            best_index, best_gain = -1, 0.0
            for i in range(len(remaining)):
                gain = self.reach_efficiency(remaining[:i] + remaining[i + 1 :]) - current
                if gain > best_gain:
                    best_index, best_gain = i, gain
            if best_index < 0 or best_gain <= 0.01:
                break
            removed.append(remaining.pop(best_index))
        logger.debug("Suggested removing %d of %d segments", len(removed), len(segments))
        return removed

    # ------------------------------------------------------------------
    # Performance
    # ------------------------------------------------------------------
    def segment_performance(self, placements: Sequence[Placement]) -> Dict[str, SegmentPerformance]:
        segments: Dict[str, Segment] = {}
        rows: List[dict] = []
        for placement in placements:
            perf = placement.performance
            if perf is None or not placement.segments:
                continue
            share = 1.0 / len(placement.segments)
            for segment in placement.segments:
                segments.setdefault(segment.id, segment)
                rows.append(
                    {
                        "segment_id": segment.id,
                        "impressions": perf.impressions * share,
                        "clicks": perf.clicks * share,
                        "conversions": perf.conversions * share,
                        "spend": placement.total_cost * share,
                    }
                )
        if not rows:
            return {}

        aov = self.settings.average_order_value
        summary = (
            pl.DataFrame(
                rows,
                schema={
                    "segment_id": pl.Utf8,
                    "impressions": pl.Float64,
                    "clicks": pl.Float64,
                    "conversions": pl.Float64,
                    "spend": pl.Float64,
                },
            )
            .group_by("segment_id", maintain_order=True)
            .agg(
                [
                    pl.col("impressions").sum(),
                    pl.col("clicks").sum(),
                    pl.col("conversions").sum(),
                    pl.col("spend").sum(),
                    pl.len().alias("placements"),
                ]
            )
            .with_columns(
                [
                    pl.when(pl.col("impressions") > 0)
                    .then(pl.col("clicks") / pl.col("impressions"))
                    .otherwise(0.0)
                    .alias("ctr"),
                    pl.when(pl.col("clicks") > 0)
                    .then(pl.col("conversions") / pl.col("clicks"))
                    .otherwise(0.0)
                    .alias("cvr"),
                    pl.when(pl.col("conversions") > 0)
                    .then(pl.col("spend") / pl.col("conversions"))
                    .otherwise(0.0)
                    .alias("cpa"),
                    pl.when(pl.col("impressions") > 0)
                    .then(pl.col("spend") / pl.col("impressions") * 1000)
                    .otherwise(0.0)
                    .alias("cpm"),
                    pl.when(pl.col("spend") > 0)
                    .then(pl.col("conversions") * aov / pl.col("spend"))
                    .otherwise(0.0)
                    .alias("roas"),
                ]
            )
        )

        return {
            row["segment_id"]: SegmentPerformance(
                segment=segments[row["segment_id"]],
                impressions=float(row["impressions"]),
                clicks=float(row["clicks"]),
                conversions=float(row["conversions"]),
                spend=float(row["spend"]),
                placements=int(row["placements"]),
                ctr=float(row["ctr"]),
                cvr=float(row["cvr"]),
                cpa=float(row["cpa"]),
                cpm=float(row["cpm"]),
                roas=float(row["roas"]),
            )
            for row in summary.to_dicts()
        }

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------
    @staticmethod
    def _match_score(segment: Segment, base: Segment) -> float:
        score = 0.0
        if segment.category == base.category:
            score += 40
        cpm_diff = abs(segment.cpm_uplift - base.cpm_uplift)
        if cpm_diff < 1:
            score += 30
        elif cpm_diff < 2:
            score += 20
        elif cpm_diff < 4:
            score += 10
        if segment.reach and base.reach:
            ratio = segment.reach / base.reach
            if 0.5 < ratio < 2:
                score += 20
        if segment.vendor and base.vendor and segment.vendor == base.vendor:
            score += 10
        return score

    def lookalikes(
        self,
        base: Segment,
        library: Sequence[Segment],
        exclude: Sequence[Segment] = (),
    ) -> List[LookalikeRecommendation]:
        excluded = {segment.id for segment in exclude}
        excluded.add(base.id)
        candidates = []
        for segment in library:
            if segment.id in excluded:
                continue
            score = self._match_score(segment, base)
            if score > self.settings.lookalike_min_score:
                candidates.append(LookalikeRecommendation(segment, score, lookalike_reason(segment, base, score)))
        candidates.sort(key=lambda rec: rec.match_score, reverse=True)
        return candidates[: self.settings.lookalike_limit]

    def expansion_recommendations(
        self,
        current: Sequence[Segment],
        goals: CampaignGoals,
        performance: PerformanceMetrics,
        library: Sequence[Segment],
    ) -> List[ExpansionRecommendation]:
        cfg = self.settings
        current_ids = {segment.id for segment in current}
        available = [segment for segment in library if segment.id not in current_ids]
        recommendations: List[ExpansionRecommendation] = []

        if goals.reach and performance.impressions > 0:
            current_reach = performance.impressions * cfg.reach_per_impression
            if current_reach < goals.reach:
                gap = goals.reach - current_reach
                broad = sorted(
                    (segment for segment in available if (segment.reach or 0) > cfg.broad_reach_min),
                    key=lambda segment: segment.reach or 0,
                    reverse=True,
                )[:3]
                if broad:
                    recommendations.append(
                        ExpansionRecommendation(
                            goal=ExpansionGoal.INCREASE_REACH,
                            impact=f"Add {gap / 1_000_000:.1f}M reach",
                            segments=tuple(broad),
                            priority=Priority.HIGH,
                            explanation=(
                                f"You're {gap / goals.reach * 100:.0f}% short of your reach goal. "
                                "These broad segments can help close the gap."
                            ),
                        )
                    )

        if performance.cpa > 0:
            target_cpa = goals.target_cpa or cfg.default_target_cpa
            if performance.cpa > target_cpa * 1.2:
                efficient = sorted(
                    (segment for segment in available if segment.cpm_uplift < 2),
                    key=lambda segment: segment.cpm_uplift,
                )[:3]
                if efficient:
                    recommendations.append(
                        ExpansionRecommendation(
                            goal=ExpansionGoal.REDUCE_CPA,
                            impact="Potentially reduce CPA by 15-25%",
                            segments=tuple(efficient),
                            priority=Priority.HIGH,
                            explanation=(
                                f"Current CPA (${performance.cpa:.2f}) is above target. "
                                "These cost-efficient segments can lower your average CPA."
                            ),
                        )
                    )

        if goals.conversions and performance.cvr < cfg.low_cvr_pct:
            high_intent = sorted(
                (
                    segment
                    for segment in available
                    if segment.category in (SegmentCategory.BEHAVIORAL, SegmentCategory.B2B)
                ),
                key=lambda segment: segment.cpm_uplift,
                reverse=True,
            )[:3]
            if high_intent:
                recommendations.append(
                    ExpansionRecommendation(
                        goal=ExpansionGoal.IMPROVE_CVR,
                        impact="Target high-intent audiences",
                        segments=tuple(high_intent),
                        priority=Priority.MEDIUM,
                        explanation=(
                            f"Current CVR is {performance.cvr:.2f}%. "
                            "These high-intent segments typically convert 2-3x better."
                        ),
                    )
                )

        if goals.conversions and performance.conversions < goals.conversions:
            gap = goals.conversions - performance.conversions
            balanced = [
                segment
                for segment in available
                if 1 < segment.cpm_uplift < 4 and (segment.reach or 0) > cfg.balanced_reach_min
            ][:3]
            if balanced:
                recommendations.append(
                    ExpansionRecommendation(
                        goal=ExpansionGoal.INCREASE_CONVERSIONS,
                        impact=f"Close {gap:,.0f} conversion gap",
                        segments=tuple(balanced),
                        priority=Priority.HIGH,
                        explanation=(
                            f"You need {gap:,.0f} more conversions to hit your goal. "
                            "These balanced segments offer good reach and quality."
                        ),
                    )
                )

        return sorted(recommendations, key=lambda rec: rec.priority.rank, reverse=True)


def calculate_overlap(a: Segment, b: Segment, provider: OverlapProvider | None = None) -> float:
    return AudienceOverlapEngine(provider=provider).overlap(a, b)


def calculate_overlap_matrix(
    segments: Sequence[Segment],
    provider: OverlapProvider | None = None,
) -> List[List[float]]:
    """Pairwise overlap for ``segments``; symmetric with an exact 1.0 diagonal."""
    return AudienceOverlapEngine(provider=provider).overlap_matrix(segments)


def calculate_unique_reach(segments: Sequence[Segment], provider: OverlapProvider | None = None) -> int:
    return AudienceOverlapEngine(provider=provider).unique_reach(segments)


def calculate_average_overlap(index: int, matrix: Sequence[Sequence[float]]) -> float:
    """Mean overlap of the segment at ``index`` with every other segment in ``matrix``."""
    if index < 0 or index >= len(matrix):
        return 0.0
    others = [value for j, value in enumerate(matrix[index]) if j != index]
    return sum(others) / len(others) if others else 0.0


def find_optimal_segments_to_remove(
    segments: Sequence[Segment],
    max_to_remove: int = 5,
    provider: OverlapProvider | None = None,
) -> List[Segment]:
    return AudienceOverlapEngine(provider=provider).optimal_segments_to_remove(segments, max_to_remove)


def aggregate_segment_performance(
    placements: Sequence[Placement],
    settings: AudienceSettings | None = None,
) -> Dict[str, SegmentPerformance]:
    return AudienceOverlapEngine(settings).segment_performance(placements)


def find_lookalike_segments(
    base: Segment,
    library: Sequence[Segment],
    exclude: Sequence[Segment] = (),
    settings: AudienceSettings | None = None,
) -> List[LookalikeRecommendation]:
    return AudienceOverlapEngine(settings).lookalikes(base, library, exclude)


def generate_expansion_recommendations(
    current: Sequence[Segment],
    goals: CampaignGoals,
    performance: PerformanceMetrics,
    library: Sequence[Segment],
    settings: AudienceSettings | None = None,
) -> List[ExpansionRecommendation]:
    return AudienceOverlapEngine(settings).expansion_recommendations(current, goals, performance, library)


def find_segment(library: Sequence[Segment], key: str) -> Optional[Segment]:
    """Look a segment up by id, then by exact name."""
    for segment in library:
        if segment.id == key:
            return segment
    for segment in library:
        if segment.name == key:
            return segment
    return None
