"""
Card Comps — Comp Orchestration

CompService prices one PricingQuery:

    adapters (concurrent, isolated, timed out individually)
        -> SourceResults in configuration order
        -> pooled NormalizedSales -> dedup -> weighted trimmed mean
           (or reliability-weighted fallback when no sales exist)
        -> population multiplier for graded queries
        -> PricingReport

A failing, hanging or raising adapter only ever produces an error
SourceResult. Population lookups never affect the price aggregate.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence

import structlog

from cardcomps.config import settings
from cardcomps.engine.aggregate import (
    compute_fallback_from_market_values,
    compute_weighted_trimmed_mean,
)
from cardcomps.engine.dates import normalize_date
from cardcomps.engine.dedup import deduplicate_sales
from cardcomps.engine.rarity import pop_multiplier
from cardcomps.models.comps import (
    Aggregate,
    NormalizedSale,
    PopulationSnapshot,
    PricingQuery,
    PricingReport,
    SourceResult,
)
from cardcomps.pipeline.base import CompAdapter
from cardcomps.pipeline.population import PopulationService

logger = structlog.get_logger(__name__)


def pool_sales(results: Sequence[SourceResult]) -> list[NormalizedSale]:
    """Flatten every successful source's sales, in source order, with parsed dates."""
    pooled: list[NormalizedSale] = []
    for result in results:
        if result.error:
            continue
        for sale in result.sales:
            pooled.append(
                NormalizedSale(
                    price=sale.price,
                    date_ms=normalize_date(sale.date),
                    venue=sale.venue,
                    source_adapter=result.source,
                )
            )
    return pooled


def compute_weighted_aggregate(
    results: Sequence[SourceResult],
    now_ms: int,
    reliability: Mapping[str, float] | None = None,
) -> Aggregate | None:
    """Pooled-sales aggregate, or the point-estimate fallback when the pool is empty."""
    pooled = pool_sales(results)
    if pooled:
        deduped = deduplicate_sales(pooled)
        aggregate = compute_weighted_trimmed_mean(deduped, now_ms)
        if aggregate is not None:
            return aggregate
    return compute_fallback_from_market_values(results, reliability)


def _money(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None


class CompService:
    """
    Runs every configured adapter for a query and reconciles their answers.

    Usage:
        service = CompService(adapters, population=PopulationService(...))
        report = await service.generate_comps(query)
    """

    def __init__(
        self,
        adapters: Sequence[CompAdapter],
        population: PopulationService | None = None,
        reliability: Mapping[str, float] | None = None,
        source_timeout: float | None = None,
        query_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._adapters = list(adapters)
        self._population = population
        self._reliability = reliability
        self._source_timeout = (
            source_timeout if source_timeout is not None else settings.COMP_SOURCE_TIMEOUT_SECONDS
        )
        self._query_timeout = (
            query_timeout if query_timeout is not None else settings.COMP_QUERY_TIMEOUT_SECONDS
        )
        self._clock = clock

    async def _run_adapter(self, adapter: CompAdapter, query: PricingQuery) -> SourceResult:
        try:
            result = await asyncio.wait_for(adapter.fetch_comps(query), self._source_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "comp_source_timeout",
                source=adapter.source,
                timeout_seconds=self._source_timeout,
            )
            return SourceResult.failed(
                adapter.source, f"{adapter.source} timed out after {self._source_timeout:g}s"
            )
        except Exception as e:
            logger.error("comp_source_failed", source=adapter.source, error=str(e))
            return SourceResult.failed(adapter.source, str(e) or type(e).__name__)

        if not isinstance(result, SourceResult):
            logger.error("comp_source_bad_result", source=adapter.source)
            return SourceResult.failed(adapter.source, f"{adapter.source} returned no result")
        return result

    async def collect_results(self, query: PricingQuery) -> list[SourceResult]:
        """One SourceResult per applicable adapter, in configuration order."""
        active: list[CompAdapter] = []
        for adapter in self._adapters:
            if adapter.supports(query):
                active.append(adapter)
            else:
                logger.debug("comp_source_skipped", source=adapter.source)

        if not active:
            return []

        tasks = [asyncio.create_task(self._run_adapter(a, query)) for a in active]
        _, pending = await asyncio.wait(tasks, timeout=self._query_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "comp_query_timeout",
                timeout_seconds=self._query_timeout,
                unfinished=len(pending),
            )

        results: list[SourceResult] = []
        for adapter, task in zip(active, tasks):
            if task in pending:
                results.append(
                    SourceResult.failed(adapter.source, f"{adapter.source} cancelled: query timed out")
                )
            else:
                results.append(task.result())
        return results

    async def _population_for(self, query: PricingQuery) -> PopulationSnapshot | None:
        if self._population is None or not query.is_graded:
            return None
        try:
            return await self._population.get_population_data(query)
        except Exception as e:
            logger.warning("pop_lookup_failed", error=str(e), player=query.player)
            return None

    async def generate_comps(self, query: PricingQuery) -> PricingReport:
        results = await self.collect_results(query)

        now_ms = int(self._clock() * 1000)
        aggregate = compute_weighted_aggregate(results, now_ms, self._reliability)

        pop_data = await self._population_for(query)
        multiplier: float | None = None
        adjusted: float | None = None
        if pop_data is not None:
            multiplier = pop_multiplier(pop_data.target_grade_pop)
            if aggregate is not None:
                adjusted = _money(aggregate.average) * multiplier

        failed = [r.source for r in results if r.error]
        logger.info(
            "comps_generated",
            player=query.player,
            year=query.year,
            card_number=query.card_number,
            source_count=len(results),
            failed_sources=failed,
            aggregate_average=_money(aggregate.average) if aggregate else None,
            pop_multiplier=multiplier,
        )

        return PricingReport(
            player=query.player,
            year=query.year,
            brand=query.brand,
            card_number=query.card_number,
            card_id=query.card_id,
            condition=query.condition,
            sources=results,
            aggregate_average=_money(aggregate.average) if aggregate else None,
            aggregate_low=_money(aggregate.low) if aggregate else None,
            aggregate_high=_money(aggregate.high) if aggregate else None,
            pop_data=pop_data,
            pop_multiplier=multiplier,
            pop_adjusted_average=_money(adjusted),
        )
