"""
Card Comps — Command-line Entrypoint

Prices one card against every configured comps source and prints the report.

Run via:
    python -m cardcomps.main --player "Luka Doncic" --year 2018 --brand "Panini Prizm" \\
        --card-number 280 --grading-company PSA --grade 10
    python -m cardcomps.main ... --json
    python -m cardcomps.main ... --store-pop      # persist population snapshots

Sources come from the environment (see cardcomps.config):
    COMP_SOURCES='[{"name": "eBay", "base_url": "https://...", "api_key": "..."}]'
    POPULATION_SOURCES='[{"company": "PSA", "base_url": "https://..."}]'
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardcomps.config import settings
from cardcomps.models.comps import GradingInfo, PricingQuery, PricingReport
from cardcomps.pipeline.cache import ResultCache
from cardcomps.pipeline.comps import CompService
from cardcomps.pipeline.http_source import HttpCompAdapter
from cardcomps.pipeline.population import (
    HttpPopulationSource,
    PopulationService,
    SnapshotStore,
    SqlSnapshotStore,
)
from cardcomps.pipeline.report import format_comp_report


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output on stderr.

    stdout is reserved for the report itself.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_adapters(cache: ResultCache | None = None) -> list[HttpCompAdapter]:
    """One adapter per COMP_SOURCES entry, in configured (priority) order."""
    return [HttpCompAdapter.from_config(config, cache=cache) for config in settings.COMP_SOURCES]


def build_reliability() -> dict[str, float]:
    """SOURCE_RELIABILITY with per-source overrides from COMP_SOURCES."""
    table = dict(settings.SOURCE_RELIABILITY)
    for config in settings.COMP_SOURCES:
        if config.reliability is not None:
            table[config.name] = config.reliability
    return table


def build_population_service(
    client: httpx.AsyncClient | None = None,
    store: SnapshotStore | None = None,
) -> PopulationService:
    sources = [
        HttpPopulationSource(c.company, c.base_url, api_key=c.api_key, client=client)
        for c in settings.POPULATION_SOURCES
    ]
    fallback = None
    if settings.POPULATION_FALLBACK_URL:
        fallback = HttpPopulationSource(
            "fallback",
            settings.POPULATION_FALLBACK_URL,
            api_key=settings.POPULATION_FALLBACK_API_KEY,
            client=client,
        )
    return PopulationService(sources, fallback=fallback, store=store)


async def create_db_engine() -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory from DATABASE_URL.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    logger.info("database_engine_initializing")

    engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Aggregate sold comps for one card and apply population rarity.",
    )
    parser.add_argument("--player", required=True, help="Player name, e.g. 'Luka Doncic'.")
    parser.add_argument("--year", type=int, required=True, help="Card year.")
    parser.add_argument("--brand", required=True, help="Brand / product line, e.g. 'Panini Prizm'.")
    parser.add_argument("--card-number", required=True, help="Card number within the set.")
    parser.add_argument("--card-id", default=None, help="Stable card identifier, if known.")
    parser.add_argument("--set-name", default=None)
    parser.add_argument("--parallel", default=None, help="Parallel / variation, e.g. 'Silver'.")
    parser.add_argument("--condition", default=None, help="Free-text condition label.")
    parser.add_argument("--grading-company", default=None, help="PSA, BGS, SGC, CGC, ...")
    parser.add_argument("--grade", default=None, help="Grade label, e.g. 10, 9.5, Auth.")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON.")
    parser.add_argument(
        "--store-pop",
        action="store_true",
        help="Persist population snapshots to DATABASE_URL.",
    )
    args = parser.parse_args(argv)
    if bool(args.grading_company) != bool(args.grade):
        parser.error("--grading-company and --grade must be given together")
    return args


def query_from_args(args: argparse.Namespace) -> PricingQuery:
    grading = None
    if args.grading_company and args.grade:
        grading = GradingInfo(company=args.grading_company, grade=args.grade)
    return PricingQuery(
        player=args.player,
        year=args.year,
        brand=args.brand,
        card_number=args.card_number,
        card_id=args.card_id,
        set_name=args.set_name,
        parallel=args.parallel,
        condition=args.condition,
        grading=grading,
    )


async def run(args: argparse.Namespace) -> PricingReport:
    """Wire sources from settings and price the requested card."""
    logger = structlog.get_logger(__name__)
    query = query_from_args(args)

    if not settings.COMP_SOURCES:
        logger.warning("config_comp_sources_missing", note="report will have no sources")

    engine = None
    store: SnapshotStore | None = None
    if args.store_pop:
        engine, session_factory = await create_db_engine()
        store = SqlSnapshotStore(session_factory)

    try:
        async with contextlib.AsyncExitStack() as stack:
            adapters = [
                await stack.enter_async_context(adapter)
                for adapter in build_adapters(cache=ResultCache())
            ]
            client = await stack.enter_async_context(
                httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
            )
            service = CompService(
                adapters,
                population=build_population_service(client=client, store=store),
                reliability=build_reliability(),
            )
            return await service.generate_comps(query)
    finally:
        if engine is not None:
            await engine.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)

    try:
        report = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("cardcomps_interrupted_by_user")
        return 130
    except Exception as e:
        logger.error("cardcomps_fatal_error", error=str(e), error_type=type(e).__name__)
        return 1

    if args.json:
        print(report.model_dump_json(by_alias=True, indent=2))
    else:
        print(format_comp_report(report), end="")
    return 0


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    sys.exit(main())
