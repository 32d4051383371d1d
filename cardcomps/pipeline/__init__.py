from cardcomps.pipeline.base import CompAdapter, build_search_query
from cardcomps.pipeline.cache import ResultCache, build_cache_key
from cardcomps.pipeline.comps import CompService, compute_weighted_aggregate, pool_sales
from cardcomps.pipeline.http_source import HttpCompAdapter
from cardcomps.pipeline.population import HttpPopulationSource, PopulationService, SqlSnapshotStore
from cardcomps.pipeline.report import format_comp_report

__all__ = [
    "CompAdapter",
    "CompService",
    "HttpCompAdapter",
    "HttpPopulationSource",
    "PopulationService",
    "ResultCache",
    "SqlSnapshotStore",
    "build_cache_key",
    "build_search_query",
    "compute_weighted_aggregate",
    "format_comp_report",
    "pool_sales",
]
