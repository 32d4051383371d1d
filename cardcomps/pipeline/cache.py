"""
Card Comps — Per-source Result Cache

TTL-keyed store for a source's previous answer to a logical query.

Keys are built from the source name plus the query's normalized identity
(lower-cased, whitespace-collapsed player, year, brand, card number,
condition, grading), so incidental formatting never splits a cache line.

Expiry is strict: an entry is dead once ``now >= expires_at``. A TTL of 0 is
therefore expired on write. ``set`` on an existing key overwrites in place.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from cardcomps.config import settings
from cardcomps.models.comps import PricingQuery, SourceResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _Entry:
    result: SourceResult
    expires_at: float


def _norm(value: str | None) -> str:
    return " ".join((value or "").lower().split())


def build_cache_key(source: str, query: PricingQuery) -> str:
    grading = ""
    if query.is_graded:
        assert query.grading is not None
        grading = f"{_norm(query.grading.company)} {_norm(query.grading.grade)}"
    parts = [
        _norm(source),
        _norm(query.player),
        str(query.year),
        _norm(query.brand),
        _norm(query.card_number),
        _norm(query.condition),
        grading,
    ]
    return "|".join(parts)


class ResultCache:
    """
    In-process TTL cache shared by adapters.

    Usage:
        cache = ResultCache(ttl_seconds=3600)
        cached = cache.get("eBay", query)
        if cached is None:
            result = ...
            cache.set("eBay", query, result)
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.COMP_CACHE_TTL_SECONDS
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, source: str, query: PricingQuery) -> SourceResult | None:
        key = build_cache_key(source, query)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            logger.debug("comp_cache_expired", source=source, key=key)
            return None
        logger.debug("comp_cache_hit", source=source, key=key)
        return entry.result

    def set(
        self,
        source: str,
        query: PricingQuery,
        result: SourceResult,
        ttl_seconds: float | None = None,
    ) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl
        key = build_cache_key(source, query)
        entry = _Entry(result=result, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry
        logger.debug("comp_cache_set", source=source, key=key, ttl_seconds=ttl)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("comp_cache_purged", removed=len(expired))
        return len(expired)
