"""
Card Comps — Grade Relevance Filter

Narrows a source's sale-like records to the ones relevant to the requested
grade. Four tiers, tried in order; a tier's output is kept only when it holds
at least GRADE_FILTER_MIN_THRESHOLD records:

    1. EXACT         same company, same grade
    2. ADJACENT      same company, grade within one step (±1, or ±0.5 for
                     half-point companies), clamped to [GRADE_MIN, GRADE_MAX]
    3. SAME_COMPANY  same company, any grade
    4. ALL           everything, unfiltered

Ungraded queries pass every record through. The output is never empty when
the input is not.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

import structlog

from cardcomps.config import GradeMatchTier, settings
from cardcomps.models.comps import GradingInfo, PricingQuery

logger = structlog.get_logger(__name__)

T = TypeVar("T")
GradeExtractor = Callable[[Any], GradingInfo | None]

GRADE_REGEX = re.compile(
    r"\b(PSA|BGS|SGC|CGC|HGA|BVG|GMA|MNT|CSG|AGS)[\s_]*(\d+(?:\.\d+)?|Auth(?:entic)?)\b",
    re.IGNORECASE,
)

AUTH_GRADE = "Auth"


def normalize_grade_label(grade: str) -> str:
    """Canonical grade label: "Authentic" -> "Auth", "10.0" -> "10", "9.50" -> "9.5"."""
    label = grade.strip()
    if label.lower().startswith("auth"):
        return AUTH_GRADE
    try:
        value = float(label)
    except ValueError:
        return label
    return f"{value:g}"


def extract_grade_from_title(title: str | None) -> GradingInfo | None:
    """Pull ``COMPANY GRADE`` out of free listing text, e.g. "2018 Prizm Luka PSA 10"."""
    if not title:
        return None
    match = GRADE_REGEX.search(title)
    if not match:
        return None
    return GradingInfo(
        company=match.group(1).upper(),
        grade=normalize_grade_label(match.group(2)),
    )


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def title_grade_extractor(record: Any) -> GradingInfo | None:
    """Default extractor: parse the record's ``title``."""
    return extract_grade_from_title(_field(record, "title"))


def sale_grade_extractor(record: Any) -> GradingInfo | None:
    """Structured extractor for SaleRecord-like data: ``grade`` first, then ``title``."""
    info = extract_grade_from_title(_field(record, "grade"))
    if info is not None:
        return info
    return title_grade_extractor(record)


def _numeric_grade(grade: str) -> float | None:
    try:
        return float(grade)
    except ValueError:
        return None


def grade_step(company: str) -> float:
    half_point = {c.upper() for c in settings.HALF_POINT_GRADING_COMPANIES}
    return 0.5 if company.upper() in half_point else 1.0


def select_relevant_by_grade(
    records: Sequence[T],
    query: PricingQuery,
    extractor: GradeExtractor | None = None,
    min_threshold: int | None = None,
) -> tuple[list[T], GradeMatchTier]:
    """
    Run the four-tier fallback and report which tier produced the result.

    Args:
        records: Candidate sale-like records.
        query: The pricing request; only ``query.grading`` is consulted.
        extractor: Maps a record to its GradingInfo (default: parse ``title``).
        min_threshold: Override for GRADE_FILTER_MIN_THRESHOLD.

    Returns:
        (relevant_records, tier)
    """
    items = list(records)
    if not query.is_graded or not items:
        return items, GradeMatchTier.UNGRADED

    assert query.grading is not None
    extract = extractor or title_grade_extractor
    threshold = min_threshold if min_threshold is not None else settings.GRADE_FILTER_MIN_THRESHOLD

    target_company = query.grading.company.upper()
    target_grade = normalize_grade_label(query.grading.grade)

    same_company: list[tuple[T, str]] = []
    for record in items:
        info = extract(record)
        if info is not None and info.company.upper() == target_company:
            same_company.append((record, normalize_grade_label(info.grade)))

    exact = [record for record, grade in same_company if grade == target_grade]
    if len(exact) >= threshold:
        return _done(exact, GradeMatchTier.EXACT, len(items))

    target_value = _numeric_grade(target_grade)
    if target_value is not None:
        step = grade_step(target_company)
        lo = max(settings.GRADE_MIN, target_value - step)
        hi = min(settings.GRADE_MAX, target_value + step)
        adjacent = []
        for record, grade in same_company:
            value = _numeric_grade(grade)
            if value is not None and lo <= value <= hi:
                adjacent.append(record)
        if len(adjacent) >= threshold:
            return _done(adjacent, GradeMatchTier.ADJACENT, len(items))

    company_only = [record for record, _ in same_company]
    if len(company_only) >= threshold:
        return _done(company_only, GradeMatchTier.SAME_COMPANY, len(items))

    return _done(items, GradeMatchTier.ALL, len(items))


def _done(selected: list[T], tier: GradeMatchTier, total: int) -> tuple[list[T], GradeMatchTier]:
    logger.debug(
        "grade_filter_applied",
        tier=tier.value,
        kept=len(selected),
        total=total,
    )
    return selected, tier


def filter_by_grade(
    records: Sequence[T],
    query: PricingQuery,
    extractor: GradeExtractor | None = None,
    min_threshold: int | None = None,
) -> list[T]:
    """Records most relevant to the requested grade. See select_relevant_by_grade."""
    selected, _ = select_relevant_by_grade(records, query, extractor, min_threshold)
    return selected
