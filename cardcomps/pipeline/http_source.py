"""
Card Comps — Generic JSON Comps Source

Adapter for comps providers that expose a normalized JSON endpoint:

    GET {base_url}/comps?q=<search query>&player=...&year=...
    -> {"marketValue": 123.45,
        "sales": [{"price": 120.0, "date": "2026-02-20", "venue": "eBay",
                   "grade": "PSA 10", "title": "..."}]}

Site-specific scrapers live outside this package; they plug into the same
CompAdapter base.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from cardcomps.config import CompSourceConfig, settings
from cardcomps.engine.aggregate import compute_trimmed_mean
from cardcomps.engine.grade_filter import sale_grade_extractor, select_relevant_by_grade
from cardcomps.errors import (
    AuthenticationError,
    ConfigurationError,
    NoDataError,
    RateLimitError,
    ResponseParseError,
    SourceHTTPError,
)
from cardcomps.models.comps import PricingQuery, SaleRecord, SourceResult
from cardcomps.pipeline.base import CompAdapter, build_search_query
from cardcomps.pipeline.cache import ResultCache

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class CompSalePayload(BaseModel):
    price: float
    date: str | None = None
    venue: str | None = None
    marketplace: str | None = None
    grade: str | None = None
    title: str | None = None


class CompsPayload(BaseModel):
    market_value: float | None = Field(default=None, validation_alias="marketValue")
    sales: list[CompSalePayload] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class HttpCompAdapter(CompAdapter):
    """
    Comps source backed by a JSON HTTP API.

    Usage:
        async with HttpCompAdapter("CardLadder", "https://api.example.com", api_key="...") as src:
            result = await src.fetch_comps(query)
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        api_key: str = "",
        requires_api_key: bool = True,
        grading_company: str | None = None,
        cache: ResultCache | None = None,
        cooldown_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(cache=cache, cooldown_seconds=cooldown_seconds, clock=clock)
        self.source = source
        self.grading_company = grading_company
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._requires_api_key = requires_api_key
        self._client = client
        self._owns_client = False

    @classmethod
    def from_config(
        cls,
        config: CompSourceConfig,
        cache: ResultCache | None = None,
    ) -> HttpCompAdapter:
        return cls(
            source=config.name,
            base_url=config.base_url,
            api_key=config.api_key,
            requires_api_key=bool(config.api_key),
            grading_company=config.grading_company,
            cache=cache,
        )

    async def __aenter__(self) -> HttpCompAdapter:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
            self._owns_client = True
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _params(self, query: PricingQuery) -> dict[str, str]:
        params = {
            "q": build_search_query(query),
            "player": query.player,
            "year": str(query.year),
            "brand": query.brand,
            "cardNumber": query.card_number,
        }
        if query.is_graded:
            assert query.grading is not None
            params["gradingCompany"] = query.grading.company
            params["grade"] = query.grading.grade
        return params

    async def _get(self, query: PricingQuery) -> httpx.Response:
        url = f"{self._base_url}/comps"
        if self._client is not None:
            return await self._client.get(url, params=self._params(query), headers=self._headers())
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            return await client.get(url, params=self._params(query), headers=self._headers())

    async def _fetch(self, query: PricingQuery) -> SourceResult:
        if not self._base_url:
            raise ConfigurationError(f"{self.source} base URL not configured")
        if self._requires_api_key and not self._api_key:
            raise ConfigurationError(f"{self.source} API key not configured")

        search = build_search_query(query)
        logger.info("comp_source_fetch", source=self.source, query=search)

        response = await self._get(query)
        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"{self.source} rejected credentials (HTTP {status})")
        if status == 429:
            raise RateLimitError(f"{self.source} HTTP 429")
        if status >= 400:
            raise SourceHTTPError(f"{self.source} HTTP {status}", status_code=status)

        try:
            payload = CompsPayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ResponseParseError(f"{self.source} returned an unreadable payload: {e}") from e

        sales = [
            SaleRecord(
                price=sale.price,
                date=sale.date,
                venue=sale.venue or sale.marketplace or self.source,
                grade=sale.grade,
                title=sale.title,
            )
            for sale in payload.sales
            if sale.price > 0
        ]

        if not sales and payload.market_value is None:
            raise NoDataError(f"No {self.source} sold listings found for: {search}")

        return self._summarize(query, sales, payload.market_value)

    def _summarize(
        self,
        query: PricingQuery,
        sales: list[SaleRecord],
        market_value: float | None,
    ) -> SourceResult:
        if not sales:
            return SourceResult(source=self.source, market_value=round(market_value, 2))

        relevant, tier = select_relevant_by_grade(sales, query, extractor=sale_grade_extractor)
        prices = [sale.price for sale in relevant]
        average = round(compute_trimmed_mean(prices), 2)

        logger.info(
            "comp_source_fetch_complete",
            source=self.source,
            sale_count=len(relevant),
            raw_count=len(sales),
            grade_tier=tier.value,
            average=average,
        )
        return SourceResult(
            source=self.source,
            market_value=round(market_value, 2) if market_value is not None else average,
            sales=relevant,
            average_price=average,
            low=round(min(prices), 2),
            high=round(max(prices), 2),
        )
