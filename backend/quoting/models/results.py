"""Result envelopes returned by the matcher, ranker and engine."""

from pydantic import BaseModel, Field

from backend.quoting.models.catalog import CatalogPlace
from backend.quoting.models.common import ChatIntent, MatchTier
from backend.quoting.models.intent import ModificationIntent
from backend.quoting.models.itinerary import ItineraryItem


class MatchInput(BaseModel):
    """Free-text place name (plus optional localized spelling) to resolve."""

    name: str
    localized_name: str | None = None


class MatchResult(BaseModel):
    """Outcome of matching one input against the catalog."""

    input: MatchInput
    tier: MatchTier
    place: CatalogPlace | None = None
    score: float | None = None

    @property
    def matched(self) -> bool:
        return self.tier != MatchTier.unmatched

    @property
    def strength(self) -> float:
        """1.0 for exact and partial hits, the similarity score for fuzzy ones."""
        if self.tier in (MatchTier.exact, MatchTier.partial):
            return 1.0
        if self.tier is MatchTier.fuzzy:
            return self.score or 0.0
        return 0.0


class RankedPick(BaseModel):
    """Catalog id chosen by the ranking call, with its justification."""

    selected_id: int
    reason: str = ""


class MutationResult(BaseModel):
    """Outcome of one engine action. ``success=False`` is a normal outcome."""

    success: bool
    updated_items: list[ItineraryItem] = Field(default_factory=list)
    bot_message: str
    intent: ModificationIntent | None = None


class ChatResult(BaseModel):
    """Assistant reply, optionally carrying the result of a mutation."""

    response: str
    intent: ChatIntent
    updated_items: list[ItineraryItem] | None = None
    modification_success: bool | None = None


class FinalizeResult(BaseModel):
    """Handoff of the itinerary to a human expert."""

    success: bool
    message: str
    itinerary_id: int


class DayTimeline(BaseModel):
    """Short narrative timeline for one day."""

    success: bool
    timeline: str = ""
