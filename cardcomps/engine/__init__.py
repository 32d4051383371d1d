from cardcomps.engine.aggregate import (
    compute_fallback_from_market_values,
    compute_trimmed_mean,
    compute_weighted_trimmed_mean,
    recency_weight,
)
from cardcomps.engine.dates import normalize_date
from cardcomps.engine.dedup import deduplicate_sales
from cardcomps.engine.grade_filter import extract_grade_from_title, filter_by_grade
from cardcomps.engine.rarity import (
    build_population_snapshot,
    classify_rarity_tier,
    compute_percentile,
    pop_multiplier,
)

__all__ = [
    "build_population_snapshot",
    "classify_rarity_tier",
    "compute_fallback_from_market_values",
    "compute_percentile",
    "compute_trimmed_mean",
    "compute_weighted_trimmed_mean",
    "deduplicate_sales",
    "extract_grade_from_title",
    "filter_by_grade",
    "normalize_date",
    "pop_multiplier",
    "recency_weight",
]
