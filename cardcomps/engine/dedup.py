"""
Card Comps — Cross-source Sale Deduplication

Several sources re-report the same real-world sale (an aggregator scraping
eBay, say). Two pooled sales are the same transaction iff all of:

- both are dated and ``|date_a - date_b| <= DEDUP_DATE_TOLERANCE_DAYS``
  (undated sales never match anything, including each other);
- ``|price_a - price_b| <= max(DEDUP_PRICE_FLOOR, PCT × mean(price_a, price_b))``;
- the venues overlap (see venues_overlap).

Input order is source priority. The first-seen record of a duplicate group
is kept and survivors keep their relative order, so dedup(dedup(x)) == dedup(x).
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from cardcomps.config import settings
from cardcomps.engine.dates import MS_PER_DAY
from cardcomps.models.comps import NormalizedSale

logger = structlog.get_logger(__name__)


def price_tolerance(price_a: float, price_b: float) -> float:
    """Dollar floor protects cheap cards where a percentage band would be too tight."""
    mean = (price_a + price_b) / 2
    return max(settings.DEDUP_PRICE_FLOOR, settings.DEDUP_PRICE_TOLERANCE_PCT * mean)


def venues_overlap(venue_a: str, venue_b: str) -> bool:
    """
    Case-insensitive equality, a shared marketplace family ("ebay" in both),
    or either side being a wildcard label from an aggregator.
    """
    a = venue_a.strip().lower()
    b = venue_b.strip().lower()
    if a == b:
        return True

    wildcards = {w.lower() for w in settings.DEDUP_WILDCARD_VENUES}
    if a in wildcards or b in wildcards:
        return True

    return any(
        family in a and family in b
        for family in (f.lower() for f in settings.DEDUP_MARKETPLACE_FAMILIES)
    )


def is_duplicate(a: NormalizedSale, b: NormalizedSale) -> bool:
    if a.date_ms is None or b.date_ms is None:
        return False
    if abs(a.date_ms - b.date_ms) > settings.DEDUP_DATE_TOLERANCE_DAYS * MS_PER_DAY:
        return False
    if abs(a.price - b.price) > price_tolerance(a.price, b.price):
        return False
    return venues_overlap(a.venue, b.venue)


def deduplicate_sales(sales: Sequence[NormalizedSale]) -> list[NormalizedSale]:
    """
    Drop later reports of a sale already seen from a higher-priority source.

    Args:
        sales: Pooled sales, ordered by source priority.

    Returns:
        Surviving sales in first-seen order.
    """
    kept: list[NormalizedSale] = []

    for sale in sales:
        if sale.date_ms is not None and any(is_duplicate(existing, sale) for existing in kept):
            continue
        kept.append(sale)

    removed = len(sales) - len(kept)
    if removed:
        logger.info(
            "dedup_complete",
            input_count=len(sales),
            kept_count=len(kept),
            removed_count=removed,
        )
    return kept
