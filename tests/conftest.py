"""
Card Comps — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory database session factory (aiosqlite)
- Standard graded / raw queries
- Async test support via pytest-asyncio

Builders and fakes live in tests/helpers.py.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cardcomps.models.base import Base
from cardcomps.models.comps import PricingQuery
from tests.helpers import make_query


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh aiosqlite in-memory database.

    StaticPool keeps every session on one connection so the tables created
    here are visible to each session the code under test opens.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Query Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def graded_query() -> PricingQuery:
    return make_query("PSA", "10")


@pytest.fixture
def raw_query() -> PricingQuery:
    return make_query()
