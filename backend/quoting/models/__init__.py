"""Models package - re-exports for convenience."""

from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import (
    ChatIntent,
    Eligibility,
    ItemType,
    MatchTier,
    ModificationAction,
)
from backend.quoting.models.intent import (
    IntentParsed,
    IntentParseFailure,
    IntentParseResult,
    ModificationHint,
    ModificationIntent,
)
from backend.quoting.models.itinerary import (
    ItemInfo,
    ItineraryDocument,
    ItineraryItem,
    ItinerarySummaryLine,
    SessionContext,
)
from backend.quoting.models.results import (
    ChatResult,
    DayTimeline,
    FinalizeResult,
    MatchInput,
    MatchResult,
    MutationResult,
    RankedPick,
)

__all__ = [
    # Common
    "ItemType",
    "ModificationAction",
    "ChatIntent",
    "MatchTier",
    "Eligibility",
    # Catalog
    "CatalogPlace",
    "ScoredPlace",
    "CatalogFilter",
    # Itinerary
    "ItemInfo",
    "ItineraryItem",
    "ItineraryDocument",
    "ItinerarySummaryLine",
    "SessionContext",
    # Intent
    "ModificationIntent",
    "ModificationHint",
    "IntentParsed",
    "IntentParseFailure",
    "IntentParseResult",
    # Results
    "MatchInput",
    "MatchResult",
    "RankedPick",
    "MutationResult",
    "ChatResult",
    "FinalizeResult",
    "DayTimeline",
]
