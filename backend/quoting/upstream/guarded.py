"""Catalog and completion decorators that route every call through the executor."""

import uuid

from backend.quoting.config import Settings
from backend.quoting.db.repositories import CatalogRepository
from backend.quoting.llm.client import ChatHistory, CompletionClient
from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import Eligibility, ItemType
from backend.quoting.upstream.executor import CallConfig, CallContext, UpstreamExecutor

CATALOG_UPSTREAM = "catalog"
COMPLETION_UPSTREAM = "completion"


def call_config_from_settings(settings: Settings, *, timeout_ms: int) -> CallConfig:
    return CallConfig(
        hard_timeout_ms=timeout_ms,
        retry_count=settings.upstream_retry_count,
        retry_jitter_min_ms=settings.retry_jitter_min_ms,
        retry_jitter_max_ms=settings.retry_jitter_max_ms,
        breaker_failure_threshold=settings.circuit_breaker_failures,
        breaker_window_seconds=settings.circuit_breaker_window_sec,
        breaker_half_open_seconds=settings.circuit_breaker_half_open_sec,
    )


class GuardedCatalogRepository:
    """CatalogRepository wrapper with timeout, retry and breaker policy."""

    def __init__(
        self,
        inner: CatalogRepository,
        executor: UpstreamExecutor,
        settings: Settings,
        trace_id: str | None = None,
    ) -> None:
        self._inner = inner
        self._executor = executor
        self._config = call_config_from_settings(settings, timeout_ms=settings.catalog_timeout_ms)
        self._trace_id = trace_id

    def _ctx(self, operation: str) -> CallContext:
        return CallContext(
            trace_id=self._trace_id or uuid.uuid4().hex,
            upstream=CATALOG_UPSTREAM,
            operation=operation,
        )

    async def find_by_ids(
        self, ids: list[int], *, eligibility: Eligibility = Eligibility.eligible
    ) -> list[CatalogPlace]:
        return await self._executor.call(
            self._ctx("find_by_ids"),
            self._config,
            lambda: self._inner.find_by_ids(ids, eligibility=eligibility),
        )

    async def search(self, criteria: CatalogFilter) -> list[CatalogPlace]:
        return await self._executor.call(
            self._ctx("search"), self._config, lambda: self._inner.search(criteria)
        )

    async def fuzzy_search(
        self,
        queries: list[str],
        *,
        type: ItemType | None,
        threshold: float,
        region: str | None = None,
        eligibility: Eligibility = Eligibility.eligible,
    ) -> dict[str, ScoredPlace]:
        return await self._executor.call(
            self._ctx("fuzzy_search"),
            self._config,
            lambda: self._inner.fuzzy_search(
                queries, type=type, threshold=threshold, region=region, eligibility=eligibility
            ),
        )

    async def rank_by_similarity(
        self,
        query: str,
        *,
        type: ItemType | None,
        threshold: float,
        exclude_ids: list[int] | None = None,
        limit: int = 20,
    ) -> list[ScoredPlace]:
        return await self._executor.call(
            self._ctx("rank_by_similarity"),
            self._config,
            lambda: self._inner.rank_by_similarity(
                query, type=type, threshold=threshold, exclude_ids=exclude_ids, limit=limit
            ),
        )


class GuardedCompletionClient:
    """CompletionClient wrapper with timeout, retry and breaker policy."""

    def __init__(
        self,
        inner: CompletionClient,
        executor: UpstreamExecutor,
        settings: Settings,
        trace_id: str | None = None,
    ) -> None:
        self._inner = inner
        self._executor = executor
        self._config = call_config_from_settings(settings, timeout_ms=settings.llm_timeout_ms)
        self._trace_id = trace_id

    async def complete(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        history: ChatHistory | None = None,
    ) -> str:
        ctx = CallContext(
            trace_id=self._trace_id or uuid.uuid4().hex,
            upstream=COMPLETION_UPSTREAM,
            operation="complete",
        )
        return await self._executor.call(
            ctx,
            self._config,
            lambda: self._inner.complete(
                prompt=prompt,
                system_prompt=system_prompt,
                temperature=temperature,
                max_output_tokens=max_output_tokens,
                history=history,
            ),
        )
