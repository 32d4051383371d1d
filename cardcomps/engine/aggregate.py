"""
Card Comps — Price Aggregation

Two aggregators feed PricingReport.aggregate_*:

1. Weighted trimmed mean over individual sales (primary path).
   Each sale is weighted by recency:
       w = max(RECENCY_WEIGHT_FLOOR, 0.5 ^ (age_days / RECENCY_HALF_LIFE_DAYS))
   Undated sales get UNKNOWN_DATE_WEIGHT, which sits below the floor.
   With MIN_SALES_FOR_TRIM or more sales, TRIM_PERCENTAGE of the total weight
   mass is removed from each price tail before averaging. The trim works on
   weight, not record count, so a few very recent extreme sales are not
   discarded just for being few.

2. Reliability-weighted fallback over per-source point estimates, used only
   when no source returned individual sales.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

import structlog

from cardcomps.config import settings
from cardcomps.engine.dates import MS_PER_DAY
from cardcomps.models.comps import Aggregate, NormalizedSale, SourceResult

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Recency weighting
# ---------------------------------------------------------------------------


def recency_weight(sale_date_ms: int | None, now_ms: int) -> float:
    """
    Exponential decay with a floor.

    today -> 1.0, 30d -> 0.5, 60d -> 0.25, 90d+ -> 0.20 (floor), undated -> 0.10.
    Future dates clamp to age 0.
    """
    if sale_date_ms is None:
        return settings.UNKNOWN_DATE_WEIGHT
    age_days = max(0.0, (now_ms - sale_date_ms) / MS_PER_DAY)
    decayed = math.pow(0.5, age_days / settings.RECENCY_HALF_LIFE_DAYS)
    return max(settings.RECENCY_WEIGHT_FLOOR, decayed)


# ---------------------------------------------------------------------------
# Weighted trimmed mean
# ---------------------------------------------------------------------------


def _trim_tails(weighted: list[list[float]], trim_weight: float) -> list[list[float]]:
    """
    Remove ``trim_weight`` of mass from each end of a price-sorted [price, weight] list.

    An item straddling the cut keeps its untrimmed remainder.
    """
    low_idx = 0
    remaining = trim_weight
    while low_idx < len(weighted) and remaining > 0:
        weight = weighted[low_idx][1]
        if weight <= remaining:
            remaining -= weight
            low_idx += 1
        else:
            weighted[low_idx][1] = weight - remaining
            remaining = 0

    high_idx = len(weighted) - 1
    remaining = trim_weight
    while high_idx >= low_idx and remaining > 0:
        weight = weighted[high_idx][1]
        if weight <= remaining:
            remaining -= weight
            high_idx -= 1
        else:
            weighted[high_idx][1] = weight - remaining
            remaining = 0

    return weighted[low_idx:high_idx + 1]


def compute_weighted_trimmed_mean(
    sales: Sequence[NormalizedSale],
    now_ms: int,
) -> Aggregate | None:
    """
    Recency-weighted, outlier-trimmed average with a low/high band.

    Args:
        sales: Deduplicated pooled sales.
        now_ms: Reference "now" in epoch ms.

    Returns:
        Aggregate(average, low, high), or None for an empty input.
        low/high are the min/max of the untrimmed input prices.
    """
    if not sales:
        return None

    weighted = sorted(
        ([sale.price, recency_weight(sale.date_ms, now_ms)] for sale in sales),
        key=lambda item: item[0],
    )
    low = weighted[0][0]
    high = weighted[-1][0]
    total_weight = sum(weight for _, weight in weighted)

    kept = weighted
    if len(sales) >= settings.MIN_SALES_FOR_TRIM:
        kept = _trim_tails(weighted, total_weight * settings.TRIM_PERCENTAGE)

    kept_weight = sum(weight for _, weight in kept)
    if not kept or kept_weight <= 0:
        return None

    average = sum(price * weight for price, weight in kept) / kept_weight
    # clamp float drift
    average = min(max(average, low), high)

    logger.info(
        "weighted_mean_computed",
        sale_count=len(sales),
        trimmed=len(sales) >= settings.MIN_SALES_FOR_TRIM,
        total_weight=round(total_weight, 4),
        average=round(average, 2),
        low=low,
        high=high,
    )
    return Aggregate(average=average, low=low, high=high)


# ---------------------------------------------------------------------------
# Reliability-weighted fallback
# ---------------------------------------------------------------------------


def source_reliability(source: str, reliability: Mapping[str, float] | None = None) -> float:
    table = reliability if reliability is not None else settings.SOURCE_RELIABILITY
    return table.get(source, settings.DEFAULT_SOURCE_RELIABILITY)


def compute_fallback_from_market_values(
    results: Sequence[SourceResult],
    reliability: Mapping[str, float] | None = None,
) -> Aggregate | None:
    """
    Blend per-source point estimates when no individual sales exist.

    average = Σ(estimate_i × reliability_i) / Σ(reliability_i)
    low/high are the raw min/max of the estimates used. Errored sources and
    sources without marketValue/averagePrice are skipped.
    """
    entries: list[tuple[float, float]] = []
    for result in results:
        if result.error:
            continue
        estimate = result.point_estimate
        if estimate is None:
            continue
        entries.append((estimate, source_reliability(result.source, reliability)))

    if not entries:
        return None

    total_weight = sum(weight for _, weight in entries)
    if total_weight <= 0:
        return None

    average = sum(value * weight for value, weight in entries) / total_weight
    values = [value for value, _ in entries]

    logger.info(
        "fallback_estimate_computed",
        source_count=len(entries),
        average=round(average, 2),
    )
    return Aggregate(average=average, low=min(values), high=max(values))


# ---------------------------------------------------------------------------
# Per-source helper
# ---------------------------------------------------------------------------


def compute_trimmed_mean(prices: Sequence[float]) -> float:
    """
    Plain count-trimmed mean used by adapters for their own averagePrice.

    Below MIN_SALES_FOR_TRIM prices: simple mean. Otherwise drop
    max(1, floor(n × SOURCE_TRIM_PERCENTAGE)) from each end.
    """
    if not prices:
        raise ValueError("prices must not be empty")
    ordered = sorted(prices)
    if len(ordered) < settings.MIN_SALES_FOR_TRIM:
        return sum(ordered) / len(ordered)
    trim = max(1, math.floor(len(ordered) * settings.SOURCE_TRIM_PERCENTAGE))
    kept = ordered[trim:len(ordered) - trim]
    return sum(kept) / len(kept)
