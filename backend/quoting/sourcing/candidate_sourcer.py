"""Cascading candidate search for the mutation engine.

Tries progressively broader queries and returns the first non-empty result:
text substring, whitespace-stripped text, trigram similarity, categories or
interests, then region and type alone. Zero results is an empty list.
"""

import logging
import re

from pydantic import BaseModel, Field

from backend.quoting.db.repositories import CatalogRepository
from backend.quoting.models.catalog import CatalogFilter, CatalogPlace
from backend.quoting.models.common import ItemType

logger = logging.getLogger(__name__)

REGION_SYNONYMS: dict[str, list[str]] = {
    "seoul": ["서울", "seoul", "Seoul"],
    "busan": ["부산", "busan", "Busan"],
    "jeju": ["제주", "jeju", "Jeju"],
    "gyeonggi": ["경기", "gyeonggi", "Gyeonggi"],
    "incheon": ["인천", "incheon", "Incheon"],
    "daegu": ["대구", "daegu", "Daegu"],
    "daejeon": ["대전", "daejeon", "Daejeon"],
    "gwangju": ["광주", "gwangju", "Gwangju"],
    "gangwon": ["강원", "gangwon", "Gangwon"],
}

INTEREST_CATEGORY_MAP: dict[str, list[str]] = {
    # Themes
    "culture": ["Theme:History", "Theme:Art"],
    "history": ["Theme:History"],
    "art": ["Theme:Art"],
    "museums": ["Theme:History", "Theme:Art"],
    "architecture": ["Theme:History", "Theme:Art"],
    "food": ["Theme:Foodie"],
    "foodie": ["Theme:Foodie"],
    "shopping": ["Theme:Shopping"],
    "nature": ["Theme:Nature"],
    "adventure": ["Theme:Adventure"],
    "luxury": ["Theme:Luxury"],
    "nightlife": ["Theme:Nightlife"],
    "wellness": ["Theme:Wellness"],
    # Targets
    "first-time": ["Target:First-Timer"],
    "off-beaten": ["Target:Off-Beaten"],
    "local-vibe": ["Target:Local-Vibe"],
    "photogenic": ["Target:Photogenic"],
    # Demographics
    "family": ["Demographic:Family"],
    "couple": ["Demographic:Couple"],
    "solo": ["Demographic:Solo"],
    "group": ["Demographic:Group"],
    "kids": ["Demographic:Kids-Friendly"],
}

COMPACT_TEXT_FIELDS = ("name_eng", "name_kor", "keyword")
TRIGRAM_THRESHOLD = 0.3

_SEPARATOR_RE = re.compile(r"[_\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def region_variants(region: str | None) -> list[str]:
    """Spellings to OR together when filtering by region."""
    if not region or not region.strip():
        return []
    return REGION_SYNONYMS.get(region.strip().lower(), [region.strip()])


def map_interests_to_categories(interests: list[str]) -> list[str]:
    """Normalized category tags for free-text interests, unknown ones dropped."""
    mapped: list[str] = []
    for interest in interests:
        key = _SEPARATOR_RE.sub("-", interest.strip().lower())
        for category in INTEREST_CATEGORY_MAP.get(key, []):
            if category not in mapped:
                mapped.append(category)
    return mapped


class CandidateRequest(BaseModel):
    """What to look for. Everything is optional except the type."""

    query: str | None = None
    interests: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    region: str | None = None
    type: ItemType = ItemType.place
    exclude_ids: list[int] = Field(default_factory=list)
    limit: int = Field(20, ge=1)


class CandidateSourcer:
    """Finds a bounded pool of eligible catalog entries for a request."""

    def __init__(self, catalog: CatalogRepository, trigram_threshold: float = TRIGRAM_THRESHOLD):
        self._catalog = catalog
        self._trigram_threshold = trigram_threshold

    async def find_candidates(self, request: CandidateRequest) -> list[CatalogPlace]:
        """Run the cascade; the first non-empty step wins.

        Raises:
            UpstreamError: The catalog itself is unavailable
        """
        regions = region_variants(request.region)
        base = {
            "type": request.type,
            "regions": regions,
            "exclude_ids": list(request.exclude_ids),
            "limit": request.limit,
        }

        query = (request.query or "").strip()
        if query:
            results = await self._catalog.search(CatalogFilter(text_query=query, **base))
            if results:
                return self._done("text", query, results)

            compact = _WHITESPACE_RE.sub("", query)
            if compact != query:
                results = await self._catalog.search(
                    CatalogFilter(text_query=compact, text_fields=COMPACT_TEXT_FIELDS, **base)
                )
                if results:
                    return self._done("compact text", compact, results)

            results = await self._trigram(query, request)
            if results:
                return self._done("trigram", query, results)

        categories = list(request.categories)
        for category in map_interests_to_categories(request.interests):
            if category not in categories:
                categories.append(category)
        if categories or request.interests:
            results = await self._catalog.search(
                CatalogFilter(categories=categories, keyword_terms=list(request.interests), **base)
            )
            if results:
                return self._done("category", ",".join(categories), results)

        results = await self._catalog.search(CatalogFilter(**base))
        return self._done("region fallback", request.region or "-", results)

    async def _trigram(self, query: str, request: CandidateRequest) -> list[CatalogPlace]:
        try:
            scored = await self._catalog.rank_by_similarity(
                query,
                type=request.type,
                threshold=self._trigram_threshold,
                exclude_ids=list(request.exclude_ids),
                limit=request.limit,
            )
        except Exception as e:
            logger.warning(f"Trigram search failed for '{query}': {e}")
            return []
        return [s.place for s in scored]

    @staticmethod
    def _done(step: str, detail: str, results: list[CatalogPlace]) -> list[CatalogPlace]:
        logger.info(f"Candidate sourcing via {step} ({detail}): {len(results)} results")
        return results
