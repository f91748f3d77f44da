"""Common types and enums shared across all models."""

from enum import Enum


class ItemType(str, Enum):
    """Kind of itinerary entry / catalog record."""

    place = "place"
    accommodation = "accommodation"
    transportation = "transportation"
    contents = "contents"
    restaurant = "restaurant"


class ModificationAction(str, Enum):
    """Mutation actions understood by the itinerary engine."""

    regenerate_day = "regenerate_day"
    add_item = "add_item"
    remove_item = "remove_item"
    replace_item = "replace_item"
    general_feedback = "general_feedback"


class ChatIntent(str, Enum):
    """Classification tag attached to an assistant reply."""

    question = "question"
    modification = "modification"
    feedback = "feedback"
    other = "other"


class MatchTier(str, Enum):
    """Place matching tier, cheapest first."""

    exact = "exact"
    partial = "partial"
    fuzzy = "fuzzy"
    unmatched = "unmatched"


class Eligibility(str, Enum):
    """Which catalog entries a lookup may return, keyed on ``ai_enabled``."""

    eligible = "eligible"
    ineligible = "ineligible"
    any = "any"

    def as_flag(self) -> bool | None:
        """Return the ``ai_enabled`` value to filter on (None = no filter)."""
        if self is Eligibility.eligible:
            return True
        if self is Eligibility.ineligible:
            return False
        return None
