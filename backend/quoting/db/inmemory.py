"""In-memory implementations of repository interfaces."""

from backend.quoting.db.repositories import (
    ItineraryNotFoundError,
    SessionNotFoundError,
    StaleItineraryError,
)
from backend.quoting.matching.trigram import best_similarity
from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import Eligibility, ItemType
from backend.quoting.models.itinerary import ItineraryDocument, ItineraryItem, SessionContext


def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


def _in_region(place: CatalogPlace, regions: list[str]) -> bool:
    return any(_contains(place.region, r) or _contains(place.address_english, r) for r in regions)


class InMemoryCatalogRepository:
    """In-memory implementation of CatalogRepository."""

    def __init__(self, places: list[CatalogPlace] | None = None) -> None:
        self._places: dict[int, CatalogPlace] = {}
        for place in places or []:
            self.add(place)

    def add(self, place: CatalogPlace) -> None:
        self._places[place.id] = place

    def _ordered(self) -> list[CatalogPlace]:
        return [self._places[i] for i in sorted(self._places)]

    def _base_matches(
        self,
        place: CatalogPlace,
        type: ItemType | None,
        eligibility: Eligibility,
        exclude_ids: list[int] | None = None,
    ) -> bool:
        if type is not None and place.type != type:
            return False
        flag = eligibility.as_flag()
        if flag is not None and place.ai_enabled != flag:
            return False
        if exclude_ids and place.id in exclude_ids:
            return False
        return True

    async def find_by_ids(
        self, ids: list[int], *, eligibility: Eligibility = Eligibility.eligible
    ) -> list[CatalogPlace]:
        """Get catalog entries by id."""
        wanted = set(ids)
        return [
            p
            for p in self._ordered()
            if p.id in wanted and self._base_matches(p, None, eligibility)
        ]

    async def search(self, criteria: CatalogFilter) -> list[CatalogPlace]:
        """Substring/category search."""
        results: list[CatalogPlace] = []

        for place in self._ordered():
            if not self._base_matches(
                place, criteria.type, criteria.eligibility, criteria.exclude_ids
            ):
                continue

            if criteria.regions and not _in_region(place, criteria.regions):
                continue

            if criteria.text_query is not None:
                fields = [getattr(place, f, None) for f in criteria.text_fields]
                if not any(_contains(v, criteria.text_query) for v in fields):
                    continue

            if criteria.categories or criteria.keyword_terms:
                category_hit = any(c in place.categories for c in criteria.categories)
                term_hit = any(
                    _contains(place.keyword, t)
                    or _contains(place.description, t)
                    or _contains(place.description_eng, t)
                    for t in criteria.keyword_terms
                )
                if not (category_hit or term_hit):
                    continue

            if criteria.name_terms and not any(
                _contains(place.name_eng, t) or _contains(place.name_kor, t)
                for t in criteria.name_terms
            ):
                continue

            results.append(place)
            if criteria.limit is not None and len(results) >= criteria.limit:
                break

        return results

    async def fuzzy_search(
        self,
        queries: list[str],
        *,
        type: ItemType | None,
        threshold: float,
        region: str | None = None,
        eligibility: Eligibility = Eligibility.eligible,
    ) -> dict[str, ScoredPlace]:
        """Best trigram match per query."""
        pool = [
            p
            for p in self._ordered()
            if self._base_matches(p, type, eligibility)
            and (region is None or _in_region(p, [region]))
        ]

        matches: dict[str, ScoredPlace] = {}
        for query in queries:
            best: ScoredPlace | None = None
            for place in pool:
                score = best_similarity(query, place.name_eng, place.name_kor, place.keyword)
                if score > threshold and (best is None or score > best.score):
                    best = ScoredPlace(place=place, score=score)
            if best is not None:
                matches[query] = best
        return matches

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
        scored = [
            ScoredPlace(
                place=p,
                score=best_similarity(query, p.name_eng, p.name_kor, p.keyword),
            )
            for p in self._ordered()
            if self._base_matches(p, type, Eligibility.eligible, exclude_ids)
        ]
        scored = [s for s in scored if s.score > threshold]
        scored.sort(key=lambda s: (-s.score, s.place.id))
        return scored[:limit]


class InMemoryItineraryStore:
    """In-memory implementation of ItineraryStore."""

    def __init__(self) -> None:
        self._docs: dict[int, ItineraryDocument] = {}
        self._status: dict[int, str] = {}
        self._next_id = 1

    def create(self, items: list[ItineraryItem], itinerary_id: int | None = None) -> int:
        """Store a new item list (the initial generator's job in production)."""
        if itinerary_id is None:
            itinerary_id = self._next_id
        self._next_id = max(self._next_id, itinerary_id + 1)
        self._docs[itinerary_id] = ItineraryDocument(
            itinerary_id=itinerary_id,
            items=[i.model_copy(deep=True) for i in items],
            version=0,
        )
        self._status[itinerary_id] = "draft"
        return itinerary_id

    def status(self, itinerary_id: int) -> str | None:
        return self._status.get(itinerary_id)

    async def read(self, itinerary_id: int) -> ItineraryDocument | None:
        """Get the item list and its version."""
        doc = self._docs.get(itinerary_id)
        if doc is None:
            return None
        return doc.model_copy(deep=True)

    async def replace_all(
        self,
        itinerary_id: int,
        items: list[ItineraryItem],
        *,
        expected_version: int | None = None,
    ) -> int:
        """Atomically replace the whole item list."""
        doc = self._docs.get(itinerary_id)
        if doc is None:
            raise ItineraryNotFoundError(f"Itinerary {itinerary_id} not found")
        if expected_version is not None and doc.version != expected_version:
            raise StaleItineraryError(
                f"Itinerary {itinerary_id} is at version {doc.version}, expected {expected_version}"
            )

        new_version = doc.version + 1
        self._docs[itinerary_id] = ItineraryDocument(
            itinerary_id=itinerary_id,
            items=[i.model_copy(deep=True) for i in items],
            version=new_version,
        )
        return new_version

    async def mark_pending_review(self, itinerary_id: int) -> None:
        """Flag the itinerary for expert review."""
        if itinerary_id not in self._docs:
            raise ItineraryNotFoundError(f"Itinerary {itinerary_id} not found")
        self._status[itinerary_id] = "pending"


class InMemorySessionRepository:
    """In-memory implementation of SessionRepository."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionContext] = {}

    def add(self, session: SessionContext) -> None:
        self._sessions[session.session_id] = session

    async def get(self, session_id: str) -> SessionContext | None:
        """Get session by id."""
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def mark_completed(self, session_id: str) -> None:
        """Mark the chat flow as finished."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        self._sessions[session_id] = session.model_copy(update={"is_completed": True})
