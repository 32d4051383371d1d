"""Tests for the four-tier grade relevance filter."""

from __future__ import annotations

import pytest

from cardcomps.config import GradeMatchTier
from cardcomps.engine.grade_filter import (
    extract_grade_from_title,
    filter_by_grade,
    grade_step,
    normalize_grade_label,
    sale_grade_extractor,
    select_relevant_by_grade,
)
from cardcomps.models.comps import GradingInfo, SaleRecord
from tests.helpers import make_query


def _listing(title: str) -> dict:
    return {"title": title, "price": 100.0}


# ---------------------------------------------------------------------------
# Grade extraction
# ---------------------------------------------------------------------------


class TestExtractGrade:
    @pytest.mark.parametrize(
        "title, company, grade",
        [
            ("2018 Prizm Luka Doncic #280 PSA 10 Gem Mint", "PSA", "10"),
            ("Luka Doncic Prizm bgs 9.5", "BGS", "9.5"),
            ("Prizm Luka SGC_9", "SGC", "9"),
            ("Luka Prizm PSA Authentic", "PSA", "Auth"),
            ("Luka Prizm PSA Auth", "PSA", "Auth"),
            ("Luka Prizm CGC 10.0", "CGC", "10"),
        ],
    )
    def test_extracts_company_and_grade(self, title: str, company: str, grade: str) -> None:
        """Company is upper-cased and the grade normalized."""
        info = extract_grade_from_title(title)

        assert info == GradingInfo(company=company, grade=grade)

    def test_raw_title_has_no_grade(self) -> None:
        """Titles without a grading stamp yield None."""
        assert extract_grade_from_title("2018 Prizm Luka Doncic #280 Raw NM") is None
        assert extract_grade_from_title(None) is None

    def test_sale_extractor_prefers_structured_grade(self) -> None:
        """The grade field wins over whatever the title claims."""
        sale = SaleRecord(price=10.0, grade="BGS 9.5", title="Luka PSA 10")

        assert sale_grade_extractor(sale) == GradingInfo(company="BGS", grade="9.5")

    def test_sale_extractor_falls_back_to_title(self) -> None:
        """No grade field: parse the title."""
        sale = SaleRecord(price=10.0, title="Luka PSA 9")

        assert sale_grade_extractor(sale) == GradingInfo(company="PSA", grade="9")


def test_normalize_grade_label() -> None:
    """Numeric labels are canonicalized; Authentic collapses to Auth."""
    assert normalize_grade_label("10.0") == "10"
    assert normalize_grade_label("9.50") == "9.5"
    assert normalize_grade_label("Authentic") == "Auth"
    assert normalize_grade_label(" 8 ") == "8"


def test_grade_step_half_point_companies() -> None:
    """BGS/SGC/CGC step by half points, PSA by whole points."""
    assert grade_step("bgs") == 0.5
    assert grade_step("SGC") == 0.5
    assert grade_step("PSA") == 1.0


# ---------------------------------------------------------------------------
# Tier selection
# ---------------------------------------------------------------------------


class TestSelectRelevantByGrade:
    def test_exact_tier_with_two_matches_among_four(self) -> None:
        """Two exact matches meet the threshold; tier 1 output has length 2."""
        records = [
            _listing("Luka PSA 10"),
            _listing("Luka psa 10 gem"),
            _listing("Luka PSA 9"),
            _listing("Luka BGS 9.5"),
        ]
        selected, tier = select_relevant_by_grade(records, make_query("PSA", "10"))

        assert tier == GradeMatchTier.EXACT
        assert len(selected) == 2

    def test_one_exact_one_adjacent_falls_to_adjacent(self) -> None:
        """One exact + one adjacent same-company match drops to tier 2, exact included."""
        records = [
            _listing("Luka PSA 10"),
            _listing("Luka PSA 9"),
            _listing("Luka BGS 10"),
        ]
        selected, tier = select_relevant_by_grade(records, make_query("PSA", "10"))

        assert tier == GradeMatchTier.ADJACENT
        assert len(selected) >= 2
        assert records[0] in selected and records[1] in selected

    def test_adjacent_uses_half_steps_for_bgs(self) -> None:
        """BGS 9.5 accepts 9 and 10 but not 8.5."""
        records = [
            _listing("Luka BGS 9"),
            _listing("Luka BGS 10"),
            _listing("Luka BGS 8.5"),
        ]
        selected, tier = select_relevant_by_grade(records, make_query("BGS", "9.5"))

        assert tier == GradeMatchTier.ADJACENT
        assert selected == records[:2]

    def test_adjacent_range_clamped_to_ten(self) -> None:
        """PSA 10 adjacency covers 9..10 only."""
        records = [_listing("Luka PSA 9"), _listing("Luka PSA 9")]
        selected, tier = select_relevant_by_grade(records, make_query("PSA", "10"))

        assert tier == GradeMatchTier.ADJACENT
        assert selected == records

    def test_same_company_tier(self) -> None:
        """Same company but far-off grades lands on tier 3."""
        records = [
            _listing("Luka PSA 7"),
            _listing("Luka PSA 6"),
            _listing("Luka BGS 10"),
        ]
        selected, tier = select_relevant_by_grade(records, make_query("PSA", "10"))

        assert tier == GradeMatchTier.SAME_COMPANY
        assert selected == records[:2]

    def test_no_company_match_returns_full_input(self) -> None:
        """Nothing from the requested company: the unfiltered input comes back."""
        records = [
            _listing("Luka BGS 10"),
            _listing("Luka SGC 9"),
            _listing("Luka raw"),
        ]
        selected, tier = select_relevant_by_grade(records, make_query("PSA", "10"))

        assert tier == GradeMatchTier.ALL
        assert selected == records

    def test_ungraded_query_passes_everything(self) -> None:
        """Ungraded queries are not filtered."""
        records = [_listing("Luka PSA 10"), _listing("Luka raw")]
        selected, tier = select_relevant_by_grade(records, make_query())

        assert tier == GradeMatchTier.UNGRADED
        assert selected == records

    def test_single_record_never_filtered_to_empty(self) -> None:
        """Non-empty input always yields non-empty output."""
        records = [_listing("Luka PSA 10")]

        assert filter_by_grade(records, make_query("PSA", "10")) == records

    def test_custom_threshold(self) -> None:
        """A threshold of 1 lets a single exact match win tier 1."""
        records = [_listing("Luka PSA 10"), _listing("Luka PSA 9")]
        selected, tier = select_relevant_by_grade(
            records, make_query("PSA", "10"), min_threshold=1
        )

        assert tier == GradeMatchTier.EXACT
        assert selected == records[:1]

    def test_structured_extractor(self) -> None:
        """Callers can supply their own extractor instead of title parsing."""
        records = [
            SaleRecord(price=100.0, grade="PSA 10"),
            SaleRecord(price=110.0, grade="PSA 10"),
            SaleRecord(price=50.0, grade="PSA 8"),
        ]
        selected = filter_by_grade(records, make_query("PSA", "10"), extractor=sale_grade_extractor)

        assert [s.price for s in selected] == [100.0, 110.0]

    def test_auth_query_has_no_adjacent_tier(self) -> None:
        """Auth is not numeric; a lone Auth sale skips adjacency and falls to company."""
        records = [_listing("Luka PSA Authentic"), _listing("Luka PSA 1")]
        selected, tier = select_relevant_by_grade(records, make_query("PSA", "Auth"))

        assert tier == GradeMatchTier.SAME_COMPANY
        assert selected == records
