"""
Card Comps — Pricing Domain Models

Pydantic models for everything that flows through the pricing pipeline.
All models are frozen: a report or snapshot is superseded, never mutated.
Serialize with ``model_dump(by_alias=True)`` for the camelCase report shape
consumed by presentation layers.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cardcomps.config import RarityTier


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class GradingInfo(_Frozen):
    """Grading company + grade label (e.g. PSA / "10", BGS / "9.5", PSA / "Auth")."""

    company: str
    grade: str


class PricingQuery(_Frozen):
    """Identifies exactly one card variant to price."""

    player: str
    year: int
    brand: str
    card_number: str
    card_id: str | None = None
    set_name: str | None = None
    parallel: str | None = None
    condition: str | None = None
    grading: GradingInfo | None = None

    @property
    def is_graded(self) -> bool:
        return bool(self.grading and self.grading.company and self.grading.grade)

    @property
    def card_key(self) -> str:
        """Stable identity for population snapshots."""
        if self.card_id:
            return self.card_id
        parts = [
            _norm(self.player),
            str(self.year),
            _norm(self.brand),
            _norm(self.card_number),
            _norm(self.set_name or ""),
            _norm(self.parallel or ""),
        ]
        return "|".join(parts)


def _norm(value: str) -> str:
    return " ".join(value.lower().split())


# ---------------------------------------------------------------------------
# Source output
# ---------------------------------------------------------------------------


class SaleRecord(_Frozen):
    """One observed transaction as reported by a source. ``date`` is free-form text."""

    price: float = Field(..., ge=0)
    date: str | None = None
    venue: str = ""
    grade: str | None = None
    title: str | None = None


class NormalizedSale(_Frozen):
    """A SaleRecord with its date parsed to epoch ms and tagged with its source."""

    price: float
    date_ms: int | None
    venue: str
    source_adapter: str


class SourceResult(_Frozen):
    """
    Per-adapter outcome.

    When ``error`` is set the struct is still well-formed: empty sales and
    null numbers, so downstream code never has to special-case it.
    """

    source: str
    market_value: float | None = None
    sales: list[SaleRecord] = Field(default_factory=list)
    average_price: float | None = None
    low: float | None = None
    high: float | None = None
    error: str | None = None

    @classmethod
    def failed(cls, source: str, error: str) -> SourceResult:
        return cls(source=source, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def point_estimate(self) -> float | None:
        """marketValue, or failing that averagePrice."""
        if self.market_value is not None:
            return self.market_value
        return self.average_price


class Aggregate(_Frozen):
    average: float
    low: float
    high: float


# ---------------------------------------------------------------------------
# Population
# ---------------------------------------------------------------------------


class GradeCount(_Frozen):
    grade: str
    count: int = Field(..., ge=0)


class PopulationSnapshot(_Frozen):
    """Grading population for one card at one company, classified for one target grade."""

    grading_company: str
    total_graded: int
    grade_breakdown: list[GradeCount] = Field(default_factory=list)
    target_grade: str
    target_grade_pop: int
    higher_grade_pop: int
    percentile: float
    rarity_tier: RarityTier
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Final report
# ---------------------------------------------------------------------------


class PricingReport(_Frozen):
    player: str
    year: int
    brand: str
    card_number: str
    card_id: str | None = None
    condition: str | None = None
    sources: list[SourceResult] = Field(default_factory=list)
    aggregate_average: float | None = None
    aggregate_low: float | None = None
    aggregate_high: float | None = None
    pop_data: PopulationSnapshot | None = None
    pop_multiplier: float | None = None
    pop_adjusted_average: float | None = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
