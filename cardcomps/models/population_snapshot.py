"""
Card Comps — Population Snapshot Model

Append-only history of grading population lookups. The latest row per
(card_key, grading_company, target_grade) is the cached snapshot; older rows
are superseded, never updated.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import FLOAT, INTEGER, JSON, TIMESTAMP, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from cardcomps.models.base import Base


class PopulationSnapshotRecord(Base):
    """One persisted PopulationSnapshot."""

    __tablename__ = "population_snapshots"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    card_key: Mapped[str] = mapped_column(
        String, nullable=False, comment="card_id, or normalized player|year|brand|number|set|parallel"
    )
    grading_company: Mapped[str] = mapped_column(
        String, nullable=False, comment="Upper-cased grading company code (PSA, BGS, ...)"
    )
    target_grade: Mapped[str] = mapped_column(String, nullable=False)
    total_graded: Mapped[int] = mapped_column(INTEGER, nullable=False)
    grade_breakdown: Mapped[list] = mapped_column(
        JSON, nullable=False, comment="[{grade, count}, ...]"
    )
    target_grade_pop: Mapped[int] = mapped_column(INTEGER, nullable=False)
    higher_grade_pop: Mapped[int] = mapped_column(INTEGER, nullable=False)
    percentile: Mapped[float] = mapped_column(FLOAT, nullable=False)
    rarity_tier: Mapped[str] = mapped_column(String, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, comment="When the source was queried"
    )

    __table_args__ = (
        Index(
            "ix_population_snapshots_lookup",
            "card_key",
            "grading_company",
            "target_grade",
            "fetched_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<PopulationSnapshotRecord card_key={self.card_key!r} "
            f"company={self.grading_company!r} grade={self.target_grade!r} "
            f"pop={self.target_grade_pop}>"
        )
