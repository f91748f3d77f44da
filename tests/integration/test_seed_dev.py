"""Integration tests for dev seeding and the settings-driven wiring."""

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.quoting.config import Settings
from backend.quoting.db.engine import create_session_factory
from backend.quoting.db.seed_dev import (
    DEV_PLACES,
    DEV_QUOTE_ID,
    DEV_SESSION_ID,
    build_dev_repositories,
    dev_itinerary_items,
    seed_dev_data,
)
from backend.quoting.db.sql_repositories import (
    SqlCatalogRepository,
    SqlItineraryStore,
    SqlSessionRepository,
)
from backend.quoting.llm.client import DeterministicStubClient
from backend.quoting.models.common import ChatIntent, Eligibility, ModificationAction
from backend.quoting.models.intent import ModificationIntent
from backend.quoting.orchestration.factory import build_orchestrator_from_settings


def test_dev_itinerary_layout() -> None:
    """Test the dev itinerary covers two days in order."""
    items = dev_itinerary_items()

    assert [(i.day_number, i.order_index, i.item_id) for i in items] == [
        (1, 0, 1),
        (1, 1, 2),
        (2, 0, 3),
        (2, 1, 4),
    ]
    assert all(not i.is_tbd for i in items)


def test_dev_itinerary_ids_are_stable() -> None:
    """Test repeated builds give identical items, ids included."""
    first = dev_itinerary_items()

    assert [i.id for i in first] == ["dev-1-1", "dev-1-2", "dev-2-3", "dev-2-4"]
    assert dev_itinerary_items() == first


@pytest.mark.asyncio
async def test_build_dev_repositories() -> None:
    catalog, store, sessions = build_dev_repositories()

    doc = await store.read(DEV_QUOTE_ID)
    session = await sessions.get(DEV_SESSION_ID)

    assert doc is not None and len(doc.items) == 4
    assert session is not None and session.itinerary_id == DEV_QUOTE_ID
    assert len(await catalog.find_by_ids([p.id for p in DEV_PLACES])) == len(DEV_PLACES) - 1


@pytest.mark.asyncio
async def test_seed_dev_data_is_idempotent(
    sqlite_engine: AsyncEngine, capsys: pytest.CaptureFixture[str]
) -> None:
    await seed_dev_data(sqlite_engine)
    await seed_dev_data(sqlite_engine)

    out = capsys.readouterr().out
    assert f"Dev quote {DEV_QUOTE_ID} already exists" in out
    assert f"Dev session {DEV_SESSION_ID} already exists" in out

    factory = create_session_factory(sqlite_engine)
    places = await SqlCatalogRepository(factory).find_by_ids(
        [p.id for p in DEV_PLACES], eligibility=Eligibility.any
    )
    doc = await SqlItineraryStore(factory).read(DEV_QUOTE_ID)
    session = await SqlSessionRepository(factory).get(DEV_SESSION_ID)

    assert len(places) == len(DEV_PLACES)
    assert doc is not None and doc.items == dev_itinerary_items()
    assert session is not None and session.duration == 2


class TestInMemoryWiring:
    """build_orchestrator_from_settings without DATABASE_URL or an API key."""

    @pytest.fixture
    def settings(self) -> Settings:
        return Settings(_env_file=None, database_url=None, openai_api_key=None)

    @pytest.mark.asyncio
    async def test_chat_uses_offline_client(self, settings: Settings) -> None:
        orchestrator = build_orchestrator_from_settings(settings)

        result = await orchestrator.chat(DEV_SESSION_ID, "What should I eat?")

        assert result.response == DeterministicStubClient.REPLY
        assert result.intent == ChatIntent.other

    @pytest.mark.asyncio
    async def test_modify_dev_itinerary(self, settings: Settings) -> None:
        orchestrator = build_orchestrator_from_settings(settings)

        result = await orchestrator.modify_itinerary(
            DEV_SESSION_ID,
            "remove the market",
            ModificationIntent(
                action=ModificationAction.remove_item, item_name="market", confidence=1.0
            ),
        )

        assert result.success is True
        assert 3 not in [i.item_id for i in result.updated_items]
