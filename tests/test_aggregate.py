"""Tests for recency weighting, the weighted trimmed mean and the reliability fallback."""

from __future__ import annotations

import pytest

from cardcomps.engine.aggregate import (
    compute_fallback_from_market_values,
    compute_trimmed_mean,
    compute_weighted_trimmed_mean,
    recency_weight,
    source_reliability,
)
from cardcomps.models.comps import NormalizedSale, SourceResult
from tests.helpers import DAY_MS, NOW_MS


def _sale(price: float, age_days: float | None = 0) -> NormalizedSale:
    date_ms = None if age_days is None else int(NOW_MS - age_days * DAY_MS)
    return NormalizedSale(price=price, date_ms=date_ms, venue="eBay", source_adapter="eBay")


# ---------------------------------------------------------------------------
# recency_weight
# ---------------------------------------------------------------------------


class TestRecencyWeight:
    def test_anchor_values(self) -> None:
        """today 1.0, 30d 0.5, 60d 0.25, 90d floor 0.20, undated 0.10."""
        assert recency_weight(NOW_MS, NOW_MS) == pytest.approx(1.0)
        assert recency_weight(NOW_MS - 30 * DAY_MS, NOW_MS) == pytest.approx(0.5)
        assert recency_weight(NOW_MS - 60 * DAY_MS, NOW_MS) == pytest.approx(0.25)
        assert recency_weight(NOW_MS - 90 * DAY_MS, NOW_MS) == pytest.approx(0.20)
        assert recency_weight(None, NOW_MS) == pytest.approx(0.10)

    def test_future_dates_count_as_today(self) -> None:
        assert recency_weight(NOW_MS + 5 * DAY_MS, NOW_MS) == pytest.approx(1.0)

    def test_non_increasing_and_bounded(self) -> None:
        """Weight never grows with age and stays within [0.2, 1.0]."""
        weights = [recency_weight(NOW_MS - d * DAY_MS, NOW_MS) for d in range(0, 400, 7)]

        assert all(a >= b for a, b in zip(weights, weights[1:]))
        assert all(0.2 <= w <= 1.0 for w in weights)


# ---------------------------------------------------------------------------
# compute_weighted_trimmed_mean
# ---------------------------------------------------------------------------


class TestWeightedTrimmedMean:
    def test_empty_is_none(self) -> None:
        assert compute_weighted_trimmed_mean([], NOW_MS) is None

    def test_below_trim_threshold_is_weighted_mean(self) -> None:
        """Three same-day sales: plain mean, low/high the extremes."""
        result = compute_weighted_trimmed_mean([_sale(100), _sale(150), _sale(200)], NOW_MS)

        assert result is not None
        assert result.average == pytest.approx(150.0)
        assert result.low == 100.0
        assert result.high == 200.0

    def test_recent_sales_dominate(self) -> None:
        """A fresh $200 outweighs a 60-day-old $100 four to one."""
        result = compute_weighted_trimmed_mean([_sale(100, 60), _sale(200, 0)], NOW_MS)

        assert result is not None
        assert result.average == pytest.approx((100 * 0.25 + 200 * 1.0) / 1.25)

    def test_trim_removes_outlier_mass(self) -> None:
        """10% of the weight comes off each tail; the $1000 outlier is dropped."""
        sales = [_sale(p) for p in (100, 100, 100, 100, 100, 100, 100, 100, 100, 1000)]
        result = compute_weighted_trimmed_mean(sales, NOW_MS)

        assert result is not None
        assert result.average == pytest.approx(100.0)
        assert result.high == 1000.0

    def test_trim_pulls_toward_median(self) -> None:
        """The trimmed average sits closer to the median than the plain mean."""
        prices = [10, 95, 100, 105, 110, 500]
        sales = [_sale(p) for p in prices]
        result = compute_weighted_trimmed_mean(sales, NOW_MS)
        plain_mean = sum(prices) / len(prices)

        assert result is not None
        assert abs(result.average - 102.5) < abs(plain_mean - 102.5)

    def test_partial_item_at_cut_keeps_remainder(self) -> None:
        """Five equal-weight sales: trim 0.5 from each end, keep half of each extreme."""
        sales = [_sale(p) for p in (10, 20, 30, 40, 50)]
        result = compute_weighted_trimmed_mean(sales, NOW_MS)

        # kept: 10×0.5, 20, 30, 40, 50×0.5 over weight 4
        assert result is not None
        assert result.average == pytest.approx((5 + 20 + 30 + 40 + 25) / 4)

    @pytest.mark.parametrize(
        "prices",
        [[42.0] * 7, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0], [10.0, 10.01, 999.99, 5.0, 7.5]],
    )
    def test_same_date_average_within_bounds(self, prices: list[float]) -> None:
        """Same-day sales: average within [min, max]."""
        result = compute_weighted_trimmed_mean([_sale(p) for p in prices], NOW_MS)

        assert result is not None
        assert min(prices) <= result.average <= max(prices)

    def test_undated_sales_still_count(self) -> None:
        """Undated sales contribute at weight 0.1."""
        result = compute_weighted_trimmed_mean([_sale(100, 0), _sale(200, None)], NOW_MS)

        assert result is not None
        assert result.average == pytest.approx((100 * 1.0 + 200 * 0.1) / 1.1)


# ---------------------------------------------------------------------------
# compute_fallback_from_market_values
# ---------------------------------------------------------------------------


class TestFallback:
    def test_reliability_weighted_blend(self) -> None:
        """(100×1.0 + 50×0.6) / 1.6 = 81.25."""
        results = [
            SourceResult(source="eBay", market_value=100.0),
            SourceResult(source="SportsCardsPro", market_value=50.0),
        ]
        aggregate = compute_fallback_from_market_values(results)

        assert aggregate is not None
        assert aggregate.average == pytest.approx(81.25)
        assert aggregate.low == 50.0
        assert aggregate.high == 100.0

    def test_average_price_used_when_no_market_value(self) -> None:
        results = [SourceResult(source="eBay", average_price=120.0)]
        aggregate = compute_fallback_from_market_values(results)

        assert aggregate is not None
        assert aggregate.average == pytest.approx(120.0)

    def test_errored_and_empty_sources_skipped(self) -> None:
        results = [
            SourceResult.failed("eBay", "eBay HTTP 500"),
            SourceResult(source="CardLadder"),
            SourceResult(source="PSA", market_value=80.0),
        ]
        aggregate = compute_fallback_from_market_values(results)

        assert aggregate is not None
        assert aggregate.average == pytest.approx(80.0)

    def test_nothing_usable_is_none(self) -> None:
        assert compute_fallback_from_market_values([]) is None
        assert compute_fallback_from_market_values([SourceResult.failed("eBay", "boom")]) is None

    def test_custom_reliability_table(self) -> None:
        results = [
            SourceResult(source="A", market_value=100.0),
            SourceResult(source="B", market_value=0.0),
        ]
        aggregate = compute_fallback_from_market_values(results, {"A": 3.0, "B": 1.0})

        assert aggregate is not None
        assert aggregate.average == pytest.approx(75.0)

    def test_unknown_source_gets_default_reliability(self) -> None:
        assert source_reliability("SomeNewSite") == 0.5
        assert source_reliability("eBay") == 1.0


# ---------------------------------------------------------------------------
# compute_trimmed_mean
# ---------------------------------------------------------------------------


class TestTrimmedMean:
    def test_small_sample_is_plain_mean(self) -> None:
        assert compute_trimmed_mean([10, 20, 30]) == pytest.approx(20.0)

    def test_drops_at_least_one_from_each_end(self) -> None:
        """Five prices: 15% rounds down to 0, but one is dropped per side anyway."""
        assert compute_trimmed_mean([1, 100, 100, 100, 1000]) == pytest.approx(100.0)

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            compute_trimmed_mean([])
