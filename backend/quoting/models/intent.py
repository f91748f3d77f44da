"""Modification intent models - what the user asked the engine to do."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from backend.quoting.models.common import ModificationAction


class ModificationIntent(BaseModel):
    """Typed edit request produced by the intent resolver."""

    action: ModificationAction
    day_number: int | None = Field(None, ge=1)
    item_name: str | None = None
    category: str | None = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    explanation: str | None = None

    def needs_clarification(self, threshold: float = 0.5) -> bool:
        """Low confidence on anything but feedback must not mutate."""
        return self.confidence < threshold and self.action != ModificationAction.general_feedback

    @property
    def target_text(self) -> str | None:
        return self.item_name or self.category


class ModificationHint(BaseModel):
    """Best-effort action hint embedded in the assistant's chat reply."""

    action: ModificationAction
    day_number: int | None = Field(None, ge=1)
    item_name: str | None = None
    category: str | None = None

    def to_intent(self) -> ModificationIntent:
        return ModificationIntent(
            action=self.action,
            day_number=self.day_number,
            item_name=self.item_name,
            category=self.category,
            confidence=0.8,
            explanation="Pre-parsed from travel assistant",
        )


@dataclass(frozen=True)
class IntentParsed:
    """Completion text validated into an intent."""

    intent: ModificationIntent


@dataclass(frozen=True)
class IntentParseFailure:
    """Completion text that could not be turned into an intent."""

    reason: str
    raw: Any = None


IntentParseResult = IntentParsed | IntentParseFailure
