"""Intent resolver - turns a user message into a typed ModificationIntent."""

import logging
from typing import Any

from pydantic import ValidationError

from backend.quoting.llm.client import CompletionClient
from backend.quoting.llm.parsing import JsonParseFailure, extract_json
from backend.quoting.llm.prompts import (
    MODIFICATION_INTENT_CONFIG,
    build_modification_intent_prompt,
)
from backend.quoting.models.common import ModificationAction
from backend.quoting.models.intent import (
    IntentParsed,
    IntentParseFailure,
    IntentParseResult,
    ModificationIntent,
)
from backend.quoting.models.itinerary import ItinerarySummaryLine

logger = logging.getLogger(__name__)

NEUTRAL_INTENT = ModificationIntent(
    action=ModificationAction.general_feedback,
    confidence=0.5,
    explanation="Could not parse user intent",
)


def _field(payload: dict[str, Any], camel: str, snake: str) -> Any:
    return payload[camel] if camel in payload else payload.get(snake)


def _optional_text(value: Any, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    return value.strip() or None


def _optional_day(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("dayNumber must be an integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        raise ValueError(f"dayNumber must be a positive integer, got {value!r}")
    return value


def _confidence(value: Any) -> float:
    if value is None:
        raise ValueError("confidence is missing")
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError(f"confidence must be a number, got {value!r}")
    if not 0.0 <= float(value) <= 1.0:
        raise ValueError(f"confidence out of range: {value!r}")
    return float(value)


def validate_intent_payload(payload: dict[str, Any]) -> IntentParseResult:
    """Validate a decoded JSON object field by field.

    Accepts camelCase or snake_case keys.
    """
    try:
        raw_action = payload.get("action")
        try:
            action = ModificationAction(raw_action)
        except ValueError as e:
            raise ValueError(f"unknown action {raw_action!r}") from e

        intent = ModificationIntent(
            action=action,
            day_number=_optional_day(_field(payload, "dayNumber", "day_number")),
            item_name=_optional_text(_field(payload, "itemName", "item_name"), "itemName"),
            category=_optional_text(payload.get("category"), "category"),
            confidence=_confidence(payload.get("confidence")),
            explanation=_optional_text(payload.get("explanation"), "explanation"),
        )
    except (ValueError, ValidationError) as e:
        return IntentParseFailure(reason=str(e), raw=payload)

    return IntentParsed(intent=intent)


def parse_intent(text: str | None) -> IntentParseResult:
    """Parse completion text into an intent or an explicit failure."""
    result = extract_json(text, expect="object")
    if isinstance(result, JsonParseFailure):
        return IntentParseFailure(reason=result.reason, raw=text)
    return validate_intent_payload(result.value)


class IntentResolver:
    """Single completion call with a strict JSON contract."""

    def __init__(self, client: CompletionClient):
        self._client = client

    async def resolve_detailed(
        self,
        message: str,
        summary: list[ItinerarySummaryLine],
        interests: list[str],
        region: str,
    ) -> IntentParseResult:
        """Resolve and keep the parse outcome explicit.

        Raises:
            UpstreamError: Completion call failed; there is no intent without it
        """
        prompt = build_modification_intent_prompt(
            summary=summary, interests=interests, region=region, message=message
        )
        text = await self._client.complete(
            prompt=prompt,
            temperature=MODIFICATION_INTENT_CONFIG.temperature,
            max_output_tokens=MODIFICATION_INTENT_CONFIG.max_output_tokens,
        )
        return parse_intent(text)

    async def resolve(
        self,
        message: str,
        summary: list[ItinerarySummaryLine],
        interests: list[str],
        region: str,
    ) -> ModificationIntent:
        """Resolve to an intent; an unparseable reply becomes the neutral intent."""
        result = await self.resolve_detailed(message, summary, interests, region)
        if isinstance(result, IntentParseFailure):
            logger.warning(f"Intent parse failed: {result.reason}")
            return NEUTRAL_INTENT.model_copy()

        intent = result.intent
        logger.info(
            f"Resolved intent action={intent.action.value} day={intent.day_number} "
            f"confidence={intent.confidence:.2f}"
        )
        return intent
