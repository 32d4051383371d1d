"""
Card Comps — Comp Source Adapter Base

Every marketplace adapter subclasses CompAdapter and implements ``_fetch``.
``fetch_comps`` wraps it with:

- result cache consult/populate (successful results only)
- a per-instance circuit breaker: after a RateLimitError the adapter refuses
  every request for RATE_LIMIT_COOLDOWN_SECONDS and answers immediately with
  the block reason; ``reset()`` clears it
- error mapping: CompSourceError and httpx failures become an error
  SourceResult, never an exception
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import httpx
import structlog

from cardcomps.config import settings
from cardcomps.errors import CompSourceError, RateLimitError
from cardcomps.models.comps import PricingQuery, SourceResult
from cardcomps.pipeline.cache import ResultCache

logger = structlog.get_logger(__name__)


def build_search_query(query: PricingQuery) -> str:
    """
    "2018 Panini Prizm Luka Doncic #280 Silver PSA 10"

    year, brand, optional set name, player, #number, optional parallel and,
    for graded queries, company + grade.
    """
    parts: list[str] = [str(query.year), query.brand]
    if query.set_name:
        parts.append(query.set_name)
    parts.extend([query.player, f"#{query.card_number}"])
    if query.parallel:
        parts.append(query.parallel)
    if query.is_graded:
        assert query.grading is not None
        parts.extend([query.grading.company, query.grading.grade])
    return " ".join(parts)


class CompAdapter(ABC):
    """
    Base class for one comps source.

    Subclasses set ``source`` and, for registries that only know one grading
    company, ``grading_company``.
    """

    source: str = ""
    grading_company: str | None = None

    def __init__(
        self,
        cache: ResultCache | None = None,
        cooldown_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._cache = cache
        self._cooldown = (
            cooldown_seconds if cooldown_seconds is not None else settings.RATE_LIMIT_COOLDOWN_SECONDS
        )
        self._clock = clock
        self._blocked_until = 0.0

    # -----------------------------------------------------------------------
    # Circuit breaker
    # -----------------------------------------------------------------------

    @property
    def is_blocked(self) -> bool:
        return self._clock() < self._blocked_until

    def reset(self) -> None:
        """Clear rate-limit state."""
        self._blocked_until = 0.0

    def _trip(self) -> None:
        self._blocked_until = self._clock() + self._cooldown
        logger.warning(
            "comp_source_rate_limited",
            source=self.source,
            cooldown_seconds=self._cooldown,
        )

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def supports(self, query: PricingQuery) -> bool:
        """False when this source only covers a different grading company."""
        if self.grading_company is None or not query.is_graded:
            return True
        assert query.grading is not None
        return query.grading.company.upper() == self.grading_company.upper()

    async def fetch_comps(self, query: PricingQuery) -> SourceResult:
        if self._cache is not None:
            cached = self._cache.get(self.source, query)
            if cached is not None:
                return cached

        if self.is_blocked:
            remaining = math.ceil((self._blocked_until - self._clock()) / 60)
            return self.error_result(
                f"{self.source} rate limited, blocked for {remaining} more minute(s)"
            )

        try:
            result = await self._fetch(query)
        except RateLimitError:
            self._trip()
            minutes = math.ceil(self._cooldown / 60)
            return self.error_result(
                f"{self.source} rate limit exceeded, blocked for {minutes} minute(s)"
            )
        except CompSourceError as e:
            return self.error_result(str(e))
        except httpx.HTTPStatusError as e:
            return self.error_result(f"{self.source} HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            return self.error_result(f"{self.source} fetch failed: {e}")

        if result.error is None and self._cache is not None:
            self._cache.set(self.source, query, result)
        return result

    def error_result(self, error: str) -> SourceResult:
        logger.warning("comp_source_error", source=self.source, error=error)
        return SourceResult.failed(self.source, error)

    @abstractmethod
    async def _fetch(self, query: PricingQuery) -> SourceResult:
        """Query the source. May raise CompSourceError or httpx errors."""
