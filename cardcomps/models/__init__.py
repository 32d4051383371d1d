"""
Models package — pydantic domain models and SQLAlchemy tables.
"""

from cardcomps.models.base import Base
from cardcomps.models.comps import (
    Aggregate,
    GradeCount,
    GradingInfo,
    NormalizedSale,
    PopulationSnapshot,
    PricingQuery,
    PricingReport,
    SaleRecord,
    SourceResult,
)
from cardcomps.models.population_snapshot import PopulationSnapshotRecord

__all__ = [
    "Aggregate",
    "Base",
    "GradeCount",
    "GradingInfo",
    "NormalizedSale",
    "PopulationSnapshot",
    "PopulationSnapshotRecord",
    "PricingQuery",
    "PricingReport",
    "SaleRecord",
    "SourceResult",
]
