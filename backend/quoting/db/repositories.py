"""Repository protocol interfaces for data access."""

from typing import Protocol

from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import Eligibility, ItemType
from backend.quoting.models.itinerary import ItineraryDocument, ItineraryItem, SessionContext


class NotFoundError(Exception):
    """Requested record does not exist."""


class SessionNotFoundError(NotFoundError):
    """No chat session with the given id."""


class ItineraryNotFoundError(NotFoundError):
    """Session has no itinerary, or the itinerary record is missing."""


class StaleItineraryError(Exception):
    """Itinerary changed between read and write (version mismatch)."""


class CatalogRepository(Protocol):
    """Read-only access to the place catalog."""

    async def find_by_ids(
        self, ids: list[int], *, eligibility: Eligibility = Eligibility.eligible
    ) -> list[CatalogPlace]:
        """Get catalog entries by id.

        Args:
            ids: Catalog ids
            eligibility: ai_enabled filter

        Returns:
            Matching entries (missing ids are skipped)
        """
        ...

    async def search(self, criteria: CatalogFilter) -> list[CatalogPlace]:
        """Substring/category search.

        Args:
            criteria: Filter groups (AND'd) with OR'd values

        Returns:
            Up to ``criteria.limit`` entries in catalog order
        """
        ...

    async def fuzzy_search(
        self,
        queries: list[str],
        *,
        type: ItemType | None,
        threshold: float,
        region: str | None = None,
        eligibility: Eligibility = Eligibility.eligible,
    ) -> dict[str, ScoredPlace]:
        """Best trigram match per query, in a single round trip.

        Similarity is the greatest of English name, Korean name and keyword
        similarity. Only scores above ``threshold`` are returned.

        Args:
            queries: Free-text names
            type: Item type filter
            threshold: Minimum similarity (exclusive)
            region: Optional region/address substring filter
            eligibility: ai_enabled filter

        Returns:
            Map of query -> best scored entry
        """
        ...

    async def rank_by_similarity(
        self,
        query: str,
        *,
        type: ItemType | None,
        threshold: float,
        exclude_ids: list[int] | None = None,
        limit: int = 20,
    ) -> list[ScoredPlace]:
        """Eligible entries above ``threshold`` ordered by similarity desc.

        Args:
            query: Free-text query
            type: Item type filter
            threshold: Minimum similarity (exclusive)
            exclude_ids: Ids to leave out
            limit: Maximum number of results

        Returns:
            Scored entries, best first
        """
        ...


class ItineraryStore(Protocol):
    """Persistence for itinerary item lists."""

    async def read(self, itinerary_id: int) -> ItineraryDocument | None:
        """Get the item list and its version.

        Args:
            itinerary_id: Quote/itinerary id

        Returns:
            Document or None if not found
        """
        ...

    async def replace_all(
        self,
        itinerary_id: int,
        items: list[ItineraryItem],
        *,
        expected_version: int | None = None,
    ) -> int:
        """Atomically replace the whole item list.

        Args:
            itinerary_id: Quote/itinerary id
            items: Complete new item list
            expected_version: Version read before mutating (None = unchecked)

        Returns:
            New version

        Raises:
            ItineraryNotFoundError: No such itinerary
            StaleItineraryError: Stored version differs from expected_version
        """
        ...

    async def mark_pending_review(self, itinerary_id: int) -> None:
        """Flag the itinerary for expert review.

        Raises:
            ItineraryNotFoundError: No such itinerary
        """
        ...


class SessionRepository(Protocol):
    """Access to chat sessions."""

    async def get(self, session_id: str) -> SessionContext | None:
        """Get session by id.

        Args:
            session_id: Session id

        Returns:
            Session or None if not found
        """
        ...

    async def mark_completed(self, session_id: str) -> None:
        """Mark the chat flow as finished.

        Raises:
            SessionNotFoundError: No such session
        """
        ...
