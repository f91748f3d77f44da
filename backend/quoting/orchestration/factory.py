"""Wiring: repositories and clients -> guarded upstreams -> engine -> orchestrator."""

import logging
import random

from backend.quoting.config import Settings, get_settings
from backend.quoting.db.engine import create_async_engine_from_settings, create_session_factory
from backend.quoting.db.repositories import CatalogRepository, ItineraryStore, SessionRepository
from backend.quoting.db.seed_dev import build_dev_repositories
from backend.quoting.db.sql_repositories import (
    SqlCatalogRepository,
    SqlItineraryStore,
    SqlSessionRepository,
)
from backend.quoting.llm.client import CompletionClient, get_completion_client
from backend.quoting.matching.place_matcher import PlaceMatcher
from backend.quoting.orchestration.conversation import ConversationOrchestrator
from backend.quoting.orchestration.intent_resolver import IntentResolver
from backend.quoting.orchestration.mutation import ItineraryMutationEngine
from backend.quoting.orchestration.ranking import PlaceRanker
from backend.quoting.sourcing.candidate_sourcer import CandidateSourcer
from backend.quoting.upstream.executor import UpstreamExecutor
from backend.quoting.upstream.guarded import GuardedCatalogRepository, GuardedCompletionClient
from backend.quoting.utils.logging import StructuredCallLogger
from backend.quoting.utils.metrics import PrometheusUpstreamMetrics

logger = logging.getLogger(__name__)


def build_orchestrator(
    *,
    catalog: CatalogRepository,
    store: ItineraryStore,
    sessions: SessionRepository,
    client: CompletionClient,
    settings: Settings | None = None,
    rng: random.Random | None = None,
    executor: UpstreamExecutor | None = None,
) -> ConversationOrchestrator:
    """Assemble the orchestrator; catalog and completion calls go through the executor."""
    settings = settings or get_settings()
    executor = executor or UpstreamExecutor(
        metrics=PrometheusUpstreamMetrics(), logger=StructuredCallLogger()
    )

    guarded_catalog = GuardedCatalogRepository(catalog, executor, settings)
    guarded_client = GuardedCompletionClient(client, executor, settings)

    engine = ItineraryMutationEngine(
        store=store,
        matcher=PlaceMatcher(guarded_catalog),
        sourcer=CandidateSourcer(guarded_catalog, trigram_threshold=settings.fuzzy_threshold),
        ranker=PlaceRanker(guarded_client),
        settings=settings,
        rng=rng,
    )
    return ConversationOrchestrator(
        sessions=sessions,
        store=store,
        client=guarded_client,
        resolver=IntentResolver(guarded_client),
        engine=engine,
        settings=settings,
    )


def build_orchestrator_from_settings(settings: Settings | None = None) -> ConversationOrchestrator:
    """SQL repositories when DATABASE_URL is set, seeded in-memory ones otherwise."""
    settings = settings or get_settings()
    client = get_completion_client(settings)

    if settings.database_url:
        session_factory = create_session_factory(create_async_engine_from_settings(settings))
        logger.info("Using SQL repositories")
        return build_orchestrator(
            catalog=SqlCatalogRepository(session_factory),
            store=SqlItineraryStore(session_factory),
            sessions=SqlSessionRepository(session_factory),
            client=client,
            settings=settings,
        )

    logger.warning("DATABASE_URL not set, using in-memory repositories with dev data")
    catalog, store, sessions = build_dev_repositories()
    return build_orchestrator(
        catalog=catalog, store=store, sessions=sessions, client=client, settings=settings
    )
