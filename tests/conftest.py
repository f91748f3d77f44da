"""Shared pytest fixtures for all test suites."""

import os
import random
from collections.abc import AsyncGenerator
from datetime import date

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.quoting.config import Settings
from backend.quoting.db.inmemory import (
    InMemoryCatalogRepository,
    InMemoryItineraryStore,
    InMemorySessionRepository,
)
from backend.quoting.db.models import Base
from backend.quoting.matching.place_matcher import PlaceMatcher
from backend.quoting.models.itinerary import SessionContext
from backend.quoting.orchestration.conversation import ConversationOrchestrator
from backend.quoting.orchestration.factory import build_orchestrator
from backend.quoting.orchestration.mutation import ItineraryMutationEngine
from backend.quoting.orchestration.ranking import PlaceRanker
from backend.quoting.sourcing.candidate_sourcer import CandidateSourcer
from backend.quoting.upstream.executor import BreakerRegistry, UpstreamExecutor
from tests.fakes import (
    ITINERARY_ID,
    SESSION_ID,
    ScriptedCompletionClient,
    sample_places,
    starting_items,
)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=None,
        openai_api_key=None,
        upstream_retry_count=0,
        catalog_timeout_ms=2000,
        llm_timeout_ms=2000,
    )


@pytest.fixture
def catalog() -> InMemoryCatalogRepository:
    return InMemoryCatalogRepository(sample_places())


@pytest.fixture
def store() -> InMemoryItineraryStore:
    store = InMemoryItineraryStore()
    store.create(starting_items(), itinerary_id=ITINERARY_ID)
    return store


@pytest.fixture
def session_ctx() -> SessionContext:
    return SessionContext(
        session_id=SESSION_ID,
        itinerary_id=ITINERARY_ID,
        region="seoul",
        duration=3,
        travel_date=date(2026, 11, 2),
        interest_main=["history"],
        interest_sub=["food"],
    )


@pytest.fixture
def sessions(session_ctx: SessionContext) -> InMemorySessionRepository:
    repo = InMemorySessionRepository()
    repo.add(session_ctx)
    return repo


@pytest.fixture
def client() -> ScriptedCompletionClient:
    return ScriptedCompletionClient()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)


@pytest.fixture
def engine(
    catalog: InMemoryCatalogRepository,
    store: InMemoryItineraryStore,
    client: ScriptedCompletionClient,
    test_settings: Settings,
    rng: random.Random,
) -> ItineraryMutationEngine:
    """Mutation engine over the in-memory fakes (no upstream guard)."""
    return ItineraryMutationEngine(
        store=store,
        matcher=PlaceMatcher(catalog),
        sourcer=CandidateSourcer(catalog),
        ranker=PlaceRanker(client),
        settings=test_settings,
        rng=rng,
    )


@pytest.fixture
def orchestrator(
    catalog: InMemoryCatalogRepository,
    store: InMemoryItineraryStore,
    sessions: InMemorySessionRepository,
    client: ScriptedCompletionClient,
    test_settings: Settings,
    rng: random.Random,
) -> ConversationOrchestrator:
    """Fully wired orchestrator with a private breaker registry."""
    return build_orchestrator(
        catalog=catalog,
        store=store,
        sessions=sessions,
        client=client,
        settings=test_settings,
        rng=rng,
        executor=UpstreamExecutor(breakers=BreakerRegistry()),
    )


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    # One shared connection, otherwise every checkout sees a fresh empty database
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL (or TEST_POSTGRES_URL) to point at a real PostgreSQL
    with the pg_trgm extension available. Tests using this fixture should be
    marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("TEST_POSTGRES_URL") or os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS pg_trgm")
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
