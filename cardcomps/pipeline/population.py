"""
Card Comps — Population Report Service

Looks up grading population for graded queries:

    1. Ungraded query                      -> None
    2. Snapshot cached and younger than TTL -> cached snapshot
    3. Company-specific source             -> classify, cache, return
    4. Generic fallback source             -> same, if it has that company
    5. Nothing                             -> None ("no rarity adjustment")

Snapshots are cached in-process and, when a SnapshotStore is configured,
persisted so they survive restarts. Source and store failures are logged
and treated as "no data"; nothing here raises to the caller.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardcomps.config import RarityTier, settings
from cardcomps.engine.grade_filter import normalize_grade_label
from cardcomps.engine.rarity import build_population_snapshot, reclassify
from cardcomps.models.comps import GradeCount, PopulationSnapshot, PricingQuery
from cardcomps.models.population_snapshot import PopulationSnapshotRecord
from cardcomps.pipeline.base import build_search_query
from cardcomps.pipeline.pop_parsing import parse_population_payload

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class PopulationSource(Protocol):
    company: str

    async def fetch_population(self, query: PricingQuery) -> PopulationSnapshot | None: ...


class SnapshotStore(Protocol):
    async def get_latest(
        self, card_key: str, company: str, grade: str
    ) -> PopulationSnapshot | None: ...

    async def save(self, card_key: str, snapshot: PopulationSnapshot) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PopulationService:
    """
    Population lookup with a primary-per-company / single-fallback chain.

    Usage:
        service = PopulationService([psa_source], fallback=aggregator, store=store)
        snapshot = await service.get_population_data(query)
    """

    def __init__(
        self,
        sources: Sequence[PopulationSource] = (),
        fallback: PopulationSource | None = None,
        store: SnapshotStore | None = None,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._sources = list(sources)
        self._fallback = fallback
        self._store = store
        self._ttl = ttl if ttl is not None else timedelta(days=settings.POP_CACHE_TTL_DAYS)
        self._clock = clock
        self._memory: dict[tuple[str, str, str], PopulationSnapshot] = {}

    def _source_for(self, company: str) -> PopulationSource | None:
        wanted = company.lower()
        return next((s for s in self._sources if s.company.lower() == wanted), None)

    def _is_fresh(self, snapshot: PopulationSnapshot) -> bool:
        return self._clock() - _aware(snapshot.fetched_at) < self._ttl

    async def _cached(self, key: tuple[str, str, str]) -> PopulationSnapshot | None:
        snapshot = self._memory.get(key)
        if snapshot is not None:
            if self._is_fresh(snapshot):
                return snapshot
            del self._memory[key]

        if self._store is None:
            return None
        try:
            stored = await self._store.get_latest(*key)
        except Exception as e:
            logger.warning("pop_store_read_failed", error=str(e), card_key=key[0])
            return None
        if stored is not None and self._is_fresh(stored):
            self._memory[key] = stored
            return stored
        return None

    @staticmethod
    def _retarget(snapshot: PopulationSnapshot, grade: str) -> PopulationSnapshot | None:
        """Rebuild a snapshot for another grade from its breakdown, if it has one."""
        if not snapshot.grade_breakdown:
            logger.info("pop_fallback_wrong_grade", wanted=grade, got=snapshot.target_grade)
            return None
        logger.info("pop_fallback_retargeted", wanted=grade, got=snapshot.target_grade)
        return build_population_snapshot(
            snapshot.grading_company,
            snapshot.grade_breakdown,
            grade,
            fetched_at=snapshot.fetched_at,
        )

    async def _call(self, source: PopulationSource, query: PricingQuery) -> PopulationSnapshot | None:
        try:
            return await source.fetch_population(query)
        except Exception as e:
            logger.warning(
                "pop_source_failed",
                company=source.company,
                error=str(e),
                player=query.player,
            )
            return None

    async def get_population_data(self, query: PricingQuery) -> PopulationSnapshot | None:
        if not query.is_graded:
            return None
        assert query.grading is not None

        company = query.grading.company.upper()
        grade = normalize_grade_label(query.grading.grade)
        key = (query.card_key, company, grade)

        cached = await self._cached(key)
        if cached is not None:
            logger.debug("pop_cache_hit", card_key=key[0], company=company, grade=grade)
            return cached

        snapshot: PopulationSnapshot | None = None
        primary = self._source_for(company)
        if primary is not None:
            logger.info(
                "pop_fetch_primary",
                player=query.player,
                year=query.year,
                card_number=query.card_number,
                company=company,
                grade=grade,
            )
            snapshot = await self._call(primary, query)
        else:
            logger.info("pop_no_primary_source", company=company)

        if snapshot is None and self._fallback is not None:
            logger.info("pop_fetch_fallback", fallback=self._fallback.company, player=query.player)
            snapshot = await self._call(self._fallback, query)
            if snapshot is not None and snapshot.grading_company.upper() != company:
                logger.info(
                    "pop_fallback_wrong_company",
                    wanted=company,
                    got=snapshot.grading_company,
                )
                snapshot = None
            elif snapshot is not None and normalize_grade_label(snapshot.target_grade) != grade:
                snapshot = self._retarget(snapshot, grade)

        if snapshot is None:
            logger.info("pop_no_data", player=query.player, company=company, grade=grade)
            return None

        snapshot = reclassify(snapshot)
        self._memory[key] = snapshot
        if self._store is not None:
            try:
                await self._store.save(key[0], snapshot)
            except Exception as e:
                logger.warning("pop_store_write_failed", error=str(e), card_key=key[0])

        logger.info(
            "pop_data_found",
            company=company,
            target_grade_pop=snapshot.target_grade_pop,
            total_graded=snapshot.total_graded,
            rarity_tier=snapshot.rarity_tier.value,
        )
        return snapshot


# ---------------------------------------------------------------------------
# HTTP population source
# ---------------------------------------------------------------------------


class HttpPopulationSource:
    """
    Population provider behind a JSON endpoint:

        GET {base_url}/population?q=<search>&gradingCompany=PSA&grade=10

    Any payload shape understood by parse_population_payload is accepted.
    Set ``company`` to the grading company for a primary source, or to the
    provider's own label for a multi-company fallback.
    """

    def __init__(
        self,
        company: str,
        base_url: str,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.company = company
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client
        self._clock = clock

    async def _get(self, params: dict[str, str]) -> Any:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        url = f"{self._base_url}/population"
        if self._client is not None:
            response = await self._client.get(url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    async def fetch_population(self, query: PricingQuery) -> PopulationSnapshot | None:
        if not query.is_graded or not self._base_url:
            return None
        assert query.grading is not None
        company = query.grading.company.upper()

        params = {
            "q": build_search_query(query),
            "gradingCompany": company,
            "grade": query.grading.grade,
        }
        try:
            data = await self._get(params)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("pop_http_failed", provider=self.company, error=str(e))
            return None

        parsed = parse_population_payload(data, company)
        if parsed is None:
            logger.info("pop_http_no_breakdown", provider=self.company, company=company)
            return None

        return build_population_snapshot(
            grading_company=company,
            grade_breakdown=parsed.grade_breakdown,
            target_grade=query.grading.grade,
            fetched_at=self._clock(),
        )


# ---------------------------------------------------------------------------
# SQL snapshot store
# ---------------------------------------------------------------------------


class SqlSnapshotStore:
    """Persists PopulationSnapshots to the population_snapshots table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_latest(self, card_key: str, company: str, grade: str) -> PopulationSnapshot | None:
        stmt = (
            select(PopulationSnapshotRecord)
            .where(
                PopulationSnapshotRecord.card_key == card_key,
                PopulationSnapshotRecord.grading_company == company.upper(),
                PopulationSnapshotRecord.target_grade == grade,
            )
            .order_by(PopulationSnapshotRecord.fetched_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()

        if row is None:
            return None
        data = row.to_dict(exclude={"id", "card_key"})
        data["grade_breakdown"] = [GradeCount(**entry) for entry in row.grade_breakdown]
        data["rarity_tier"] = RarityTier(row.rarity_tier)
        data["fetched_at"] = _aware(row.fetched_at)
        return PopulationSnapshot(**data)

    async def save(self, card_key: str, snapshot: PopulationSnapshot) -> None:
        record = PopulationSnapshotRecord(
            card_key=card_key,
            grading_company=snapshot.grading_company.upper(),
            target_grade=snapshot.target_grade,
            total_graded=snapshot.total_graded,
            grade_breakdown=[entry.model_dump() for entry in snapshot.grade_breakdown],
            target_grade_pop=snapshot.target_grade_pop,
            higher_grade_pop=snapshot.higher_grade_pop,
            percentile=snapshot.percentile,
            rarity_tier=snapshot.rarity_tier.value,
            fetched_at=_aware(snapshot.fetched_at),
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()

        logger.info(
            "pop_snapshot_stored",
            card_key=card_key,
            company=record.grading_company,
            grade=record.target_grade,
        )
