"""SQL implementations of repository interfaces.

Each call opens its own session from the factory; every write is a single
transaction.
"""

from typing import Any

from sqlalchemy import ColumnElement, Text, cast, func, or_, select, true
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.quoting.db.models import CatalogItem, ChatSession, Quote
from backend.quoting.db.repositories import (
    ItineraryNotFoundError,
    SessionNotFoundError,
    StaleItineraryError,
)
from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import Eligibility, ItemType
from backend.quoting.models.itinerary import ItineraryDocument, ItineraryItem, SessionContext


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _contains(column: Any, term: str) -> ColumnElement[bool]:
    return column.ilike(_like(term), escape="\\")


def _to_place(row: CatalogItem) -> CatalogPlace:
    return CatalogPlace(
        id=row.id,
        type=ItemType(row.type),
        name_kor=row.name_kor or "",
        name_eng=row.name_eng or "",
        keyword=row.keyword,
        description=row.description,
        description_eng=row.description_eng,
        categories=list(row.categories or []),
        region=row.region,
        address_english=row.address_english,
        images=list(row.images or []),
        lat=row.lat,
        lng=row.lng,
        ai_enabled=row.ai_enabled,
    )


def _base_conditions(
    type: ItemType | None,
    eligibility: Eligibility,
    exclude_ids: list[int] | None = None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if type is not None:
        conditions.append(CatalogItem.type == type.value)
    flag = eligibility.as_flag()
    if flag is not None:
        conditions.append(CatalogItem.ai_enabled.is_(flag))
    if exclude_ids:
        conditions.append(CatalogItem.id.not_in(exclude_ids))
    return conditions


def _region_condition(regions: list[str]) -> ColumnElement[bool]:
    return or_(
        *[
            or_(_contains(CatalogItem.region, r), _contains(CatalogItem.address_english, r))
            for r in regions
        ]
    )


def _similarity(query: Any) -> ColumnElement[float]:
    """pg_trgm score: greatest of English name, Korean name and keyword."""
    return func.greatest(
        func.similarity(CatalogItem.name_eng, query),
        func.similarity(CatalogItem.name_kor, query),
        func.similarity(func.coalesce(CatalogItem.keyword, ""), query),
    )


class SqlCatalogRepository:
    """SQL implementation of CatalogRepository (trigram tiers need pg_trgm)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_ids(
        self, ids: list[int], *, eligibility: Eligibility = Eligibility.eligible
    ) -> list[CatalogPlace]:
        """Get catalog entries by id."""
        if not ids:
            return []
        stmt = (
            select(CatalogItem)
            .where(CatalogItem.id.in_(ids), *_base_conditions(None, eligibility))
            .order_by(CatalogItem.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_place(r) for r in rows]

    async def search(self, criteria: CatalogFilter) -> list[CatalogPlace]:
        """Substring/category search."""
        conditions = _base_conditions(criteria.type, criteria.eligibility, criteria.exclude_ids)

        if criteria.regions:
            conditions.append(_region_condition(criteria.regions))

        if criteria.text_query is not None:
            conditions.append(
                or_(
                    *[
                        _contains(getattr(CatalogItem, f), criteria.text_query)
                        for f in criteria.text_fields
                    ]
                )
            )

        if criteria.categories or criteria.keyword_terms:
            # JSON array rendered as text contains each tag quoted
            category_hits = [
                cast(CatalogItem.categories, Text).contains(f'"{c}"', autoescape=True)
                for c in criteria.categories
            ]
            term_hits = [
                or_(
                    _contains(CatalogItem.keyword, t),
                    _contains(CatalogItem.description, t),
                    _contains(CatalogItem.description_eng, t),
                )
                for t in criteria.keyword_terms
            ]
            conditions.append(or_(*category_hits, *term_hits))

        if criteria.name_terms:
            conditions.append(
                or_(
                    *[
                        or_(_contains(CatalogItem.name_eng, t), _contains(CatalogItem.name_kor, t))
                        for t in criteria.name_terms
                    ]
                )
            )

        stmt = select(CatalogItem).where(*conditions).order_by(CatalogItem.id)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_place(r) for r in rows]

    async def fuzzy_search(
        self,
        queries: list[str],
        *,
        type: ItemType | None,
        threshold: float,
        region: str | None = None,
        eligibility: Eligibility = Eligibility.eligible,
    ) -> dict[str, ScoredPlace]:
        """Best trigram match per query: unnest the inputs, cross join, DISTINCT ON."""
        if not queries:
            return {}

        inputs = (
            func.unnest(postgresql.array(queries))
            .table_valued("query_name")
            .render_derived(name="q")
        )
        score = _similarity(inputs.c.query_name)
        conditions = _base_conditions(type, eligibility)
        if region:
            conditions.append(_region_condition([region]))

        stmt = (
            select(inputs.c.query_name, CatalogItem, score.label("score"))
            .select_from(inputs)
            .join(CatalogItem, true())
            .where(*conditions, score > threshold)
            .distinct(inputs.c.query_name)
            .order_by(inputs.c.query_name, score.desc(), CatalogItem.id)
        )

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return {
            row.query_name: ScoredPlace(place=_to_place(row.CatalogItem), score=float(row.score))
            for row in rows
        }

    async def rank_by_similarity(
        self,
        query: str,
        *,
        type: ItemType | None,
        threshold: float,
        exclude_ids: list[int] | None = None,
        limit: int = 20,
    ) -> list[ScoredPlace]:
        """Eligible entries above threshold, best first."""
        score = _similarity(query)
        stmt = (
            select(CatalogItem, score.label("score"))
            .where(*_base_conditions(type, Eligibility.eligible, exclude_ids), score > threshold)
            .order_by(score.desc(), CatalogItem.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ScoredPlace(place=_to_place(row.CatalogItem), score=float(row.score)) for row in rows
        ]


class SqlItineraryStore:
    """SQL implementation of ItineraryStore over the quotes table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, items: list[ItineraryItem]) -> int:
        """Insert a new quote with the given items (initial generation path)."""
        async with self._session_factory() as session, session.begin():
            quote = Quote(items=[i.model_dump(mode="json") for i in items], version=0)
            session.add(quote)
            await session.flush()
            quote_id = quote.id
        return quote_id

    async def read(self, itinerary_id: int) -> ItineraryDocument | None:
        """Get the item list and its version."""
        async with self._session_factory() as session:
            quote = await session.get(Quote, itinerary_id)
            if quote is None:
                return None
            return ItineraryDocument(
                itinerary_id=quote.id,
                items=[ItineraryItem.model_validate(d) for d in quote.items or []],
                version=quote.version,
            )

    async def replace_all(
        self,
        itinerary_id: int,
        items: list[ItineraryItem],
        *,
        expected_version: int | None = None,
    ) -> int:
        """Replace the item list in one transaction, checking the version."""
        async with self._session_factory() as session, session.begin():
            quote = await session.get(Quote, itinerary_id, with_for_update=True)
            if quote is None:
                raise ItineraryNotFoundError(f"Itinerary {itinerary_id} not found")
            if expected_version is not None and quote.version != expected_version:
                raise StaleItineraryError(
                    f"Itinerary {itinerary_id} is at version {quote.version}, "
                    f"expected {expected_version}"
                )
            new_version = quote.version + 1
            quote.items = [i.model_dump(mode="json") for i in items]
            quote.version = new_version
        return new_version

    async def mark_pending_review(self, itinerary_id: int) -> None:
        """Flag the itinerary for expert review."""
        async with self._session_factory() as session, session.begin():
            quote = await session.get(Quote, itinerary_id)
            if quote is None:
                raise ItineraryNotFoundError(f"Itinerary {itinerary_id} not found")
            quote.status_ai = "pending"

    async def status(self, itinerary_id: int) -> str | None:
        async with self._session_factory() as session:
            quote = await session.get(Quote, itinerary_id)
            return quote.status_ai if quote else None


class SqlSessionRepository:
    """SQL implementation of SessionRepository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, ctx: SessionContext) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(
                ChatSession(
                    session_id=ctx.session_id,
                    quote_id=ctx.itinerary_id,
                    region=ctx.region,
                    duration=ctx.duration,
                    travel_date=ctx.travel_date,
                    interest_main=list(ctx.interest_main),
                    interest_sub=list(ctx.interest_sub),
                    attractions=list(ctx.attractions),
                    is_completed=ctx.is_completed,
                )
            )

    async def get(self, session_id: str) -> SessionContext | None:
        """Get session by id."""
        async with self._session_factory() as session:
            row = await session.get(ChatSession, session_id)
            if row is None:
                return None
            return SessionContext(
                session_id=row.session_id,
                itinerary_id=row.quote_id,
                region=row.region,
                duration=row.duration,
                travel_date=row.travel_date,
                interest_main=list(row.interest_main or []),
                interest_sub=list(row.interest_sub or []),
                attractions=list(row.attractions or []),
                is_completed=row.is_completed,
            )

    async def mark_completed(self, session_id: str) -> None:
        """Mark the chat flow as finished."""
        async with self._session_factory() as session, session.begin():
            row = await session.get(ChatSession, session_id)
            if row is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            row.is_completed = True
