"""Builders and fakes shared across the test modules."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from cardcomps.engine.rarity import build_population_snapshot
from cardcomps.models.comps import (
    GradeCount,
    GradingInfo,
    PopulationSnapshot,
    PricingQuery,
    SourceResult,
)
from cardcomps.pipeline.base import CompAdapter

# 2026-02-23T00:00:00Z
NOW_MS = 1_771_804_800_000
NOW = datetime(2026, 2, 23, tzinfo=timezone.utc)
DAY_MS = 86_400_000


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_query(company: str | None = None, grade: str | None = None, **overrides) -> PricingQuery:
    fields = {
        "player": "Luka Doncic",
        "year": 2018,
        "brand": "Panini Prizm",
        "card_number": "280",
    }
    fields.update(overrides)
    if company and grade:
        fields["grading"] = GradingInfo(company=company, grade=grade)
    return PricingQuery(**fields)


def make_snapshot(
    company: str = "PSA",
    target_grade: str = "10",
    breakdown: dict[str, int] | None = None,
    fetched_at: datetime | None = None,
) -> PopulationSnapshot:
    counts = breakdown if breakdown is not None else {"10": 50, "9": 120, "8": 30}
    return build_population_snapshot(
        grading_company=company,
        grade_breakdown=[GradeCount(grade=g, count=c) for g, c in counts.items()],
        target_grade=target_grade,
        fetched_at=fetched_at or NOW,
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class StaticAdapter(CompAdapter):
    """Adapter that answers with a fixed SourceResult, raises, or sleeps first."""

    def __init__(
        self,
        source: str,
        result: SourceResult | None = None,
        raises: Exception | None = None,
        delay: float = 0.0,
        grading_company: str | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.source = source
        self.grading_company = grading_company
        self._result = result
        self._raises = raises
        self._delay = delay
        self.calls = 0

    async def _fetch(self, query: PricingQuery) -> SourceResult:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._raises is not None:
            raise self._raises
        return self._result or SourceResult(source=self.source)


class RaisingAdapter(StaticAdapter):
    """Escapes the CompAdapter error boundary entirely."""

    async def fetch_comps(self, query: PricingQuery) -> SourceResult:
        raise RuntimeError(f"{self.source} exploded")


class FakePopulationSource:
    def __init__(
        self,
        company: str,
        snapshot: PopulationSnapshot | None = None,
        raises: Exception | None = None,
    ):
        self.company = company
        self._snapshot = snapshot
        self._raises = raises
        self.calls = 0

    async def fetch_population(self, query: PricingQuery) -> PopulationSnapshot | None:
        self.calls += 1
        if self._raises is not None:
            raise self._raises
        return self._snapshot


class FakeSnapshotStore:
    """Dict-backed SnapshotStore."""

    def __init__(self, fail: bool = False):
        self.rows: dict[tuple[str, str, str], PopulationSnapshot] = {}
        self.fail = fail

    async def get_latest(self, card_key: str, company: str, grade: str) -> PopulationSnapshot | None:
        if self.fail:
            raise RuntimeError("store offline")
        return self.rows.get((card_key, company.upper(), grade))

    async def save(self, card_key: str, snapshot: PopulationSnapshot) -> None:
        if self.fail:
            raise RuntimeError("store offline")
        self.rows[(card_key, snapshot.grading_company, snapshot.target_grade)] = snapshot
