"""
Card Comps — Population Rarity

Pure functions over grading population counts:

- classify_rarity_tier:  target-grade pop -> RarityTier
- compute_percentile:    share of the population at or above the target grade
- pop_multiplier:        price multiplier, non-increasing in pop, clamped to
                         [POP_MULTIPLIER_MIN, POP_MULTIPLIER_MAX]
- build_population_snapshot: shared by every population source so primary and
                         fallback snapshots are indistinguishable

Multiplier curve (log10 decay, saturating at POP_MULTIPLIER_SATURATION_POP):

    | pop   | multiplier |
    |:------|:-----------|
    | <= 1  | 1.25       |
    | 5     | 1.18       |
    | 10    | 1.15       |
    | 100   | 1.05       |
    | 500   | 0.98       |
    | 1000+ | 0.95       |
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone

import structlog

from cardcomps.config import RarityTier, settings
from cardcomps.engine.grade_filter import AUTH_GRADE, normalize_grade_label
from cardcomps.models.comps import GradeCount, PopulationSnapshot

logger = structlog.get_logger(__name__)

# Higher index = higher grade, across all grading companies
UNIVERSAL_GRADE_ORDER: tuple[str, ...] = (
    AUTH_GRADE,
    "1", "1.5", "2", "2.5", "3", "3.5", "4", "4.5",
    "5", "5.5", "6", "6.5", "7", "7.5", "8", "8.5",
    "9", "9.5", "10",
)


def classify_rarity_tier(target_grade_pop: int) -> RarityTier:
    if target_grade_pop <= settings.RARITY_ULTRA_LOW_MAX:
        return RarityTier.ULTRA_LOW
    if target_grade_pop <= settings.RARITY_LOW_MAX:
        return RarityTier.LOW
    if target_grade_pop <= settings.RARITY_MEDIUM_MAX:
        return RarityTier.MEDIUM
    if target_grade_pop <= settings.RARITY_HIGH_MAX:
        return RarityTier.HIGH
    return RarityTier.VERY_HIGH


def compute_percentile(target_grade_pop: int, higher_grade_pop: int, total_graded: int) -> float:
    """round2((target + higher) / total × 100); 0 when nothing is graded."""
    if total_graded <= 0:
        return 0.0
    return round((target_grade_pop + higher_grade_pop) / total_graded * 100, 2)


def pop_multiplier(target_grade_pop: int) -> float:
    """
    Price multiplier for a target-grade population.

    1.25 - 0.30 × log10(pop) / log10(saturation), rounded to 3dp and clamped.
    pop <= 1 is pinned to the ceiling (new or unpopulated grades).
    """
    ceiling = settings.POP_MULTIPLIER_MAX
    floor = settings.POP_MULTIPLIER_MIN
    if target_grade_pop <= 1:
        return ceiling
    span = ceiling - floor
    raw = ceiling - span * math.log10(target_grade_pop) / math.log10(
        settings.POP_MULTIPLIER_SATURATION_POP
    )
    return min(ceiling, max(floor, round(raw, 3)))


def grade_rank(grade: str) -> int:
    """Position on the universal grade ladder, -1 for labels not on it."""
    label = normalize_grade_label(grade)
    try:
        return UNIVERSAL_GRADE_ORDER.index(label)
    except ValueError:
        return -1


def compute_higher_grade_pop(entries: Sequence[GradeCount], target_grade: str) -> int:
    """Sum of counts for grades strictly above the target."""
    target_idx = grade_rank(target_grade)
    if target_idx < 0:
        return 0
    return sum(entry.count for entry in entries if grade_rank(entry.grade) > target_idx)


def build_population_snapshot(
    grading_company: str,
    grade_breakdown: Sequence[GradeCount],
    target_grade: str,
    fetched_at: datetime | None = None,
) -> PopulationSnapshot:
    """Classify a raw grade breakdown for one target grade."""
    target = normalize_grade_label(target_grade)
    breakdown = [
        GradeCount(grade=normalize_grade_label(entry.grade), count=entry.count)
        for entry in grade_breakdown
    ]
    total_graded = sum(entry.count for entry in breakdown)
    target_grade_pop = sum(entry.count for entry in breakdown if entry.grade == target)
    higher_grade_pop = compute_higher_grade_pop(breakdown, target)

    snapshot = PopulationSnapshot(
        grading_company=grading_company.upper(),
        total_graded=total_graded,
        grade_breakdown=breakdown,
        target_grade=target,
        target_grade_pop=target_grade_pop,
        higher_grade_pop=higher_grade_pop,
        percentile=compute_percentile(target_grade_pop, higher_grade_pop, total_graded),
        rarity_tier=classify_rarity_tier(target_grade_pop),
        fetched_at=fetched_at or datetime.now(timezone.utc),
    )
    logger.debug(
        "population_classified",
        grading_company=snapshot.grading_company,
        target_grade=target,
        target_grade_pop=target_grade_pop,
        total_graded=total_graded,
        rarity_tier=snapshot.rarity_tier.value,
    )
    return snapshot


def reclassify(snapshot: PopulationSnapshot) -> PopulationSnapshot:
    """Recompute tier and percentile from a snapshot's own counts."""
    return snapshot.model_copy(
        update={
            "percentile": compute_percentile(
                snapshot.target_grade_pop,
                snapshot.higher_grade_pop,
                snapshot.total_graded,
            ),
            "rarity_tier": classify_rarity_tier(snapshot.target_grade_pop),
        }
    )
