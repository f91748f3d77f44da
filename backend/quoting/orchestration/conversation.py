"""Conversation orchestrator - the entry point for chat and itinerary edits."""

import logging
from typing import Any

from pydantic import ValidationError

from backend.quoting.config import Settings, get_settings
from backend.quoting.db.repositories import (
    ItineraryNotFoundError,
    ItineraryStore,
    SessionNotFoundError,
    SessionRepository,
)
from backend.quoting.llm.client import ChatHistory, CompletionClient, EmptyCompletionError
from backend.quoting.llm.parsing import split_reply_and_json
from backend.quoting.llm.prompts import (
    DAY_TIMELINE_CONFIG,
    TRAVEL_ASSISTANT_CONFIG,
    build_assistant_system_prompt,
    build_context_info,
    build_day_timeline_prompt,
)
from backend.quoting.models.common import ChatIntent
from backend.quoting.models.intent import ModificationHint, ModificationIntent
from backend.quoting.models.itinerary import ItineraryItem, SessionContext, summarize_items
from backend.quoting.models.results import ChatResult, DayTimeline, FinalizeResult, MutationResult
from backend.quoting.orchestration.intent_resolver import IntentResolver
from backend.quoting.orchestration.mutation import ItineraryMutationEngine
from backend.quoting.upstream.executor import UpstreamError

logger = logging.getLogger(__name__)

FINALIZE_MESSAGE = (
    "Your itinerary has been sent to our travel expert for review. They will contact you soon!"
)

EMPTY_REPLY_MESSAGE = "Let me know if there's anything else I can help with for your trip."


def parse_chat_intent(payload: dict[str, Any] | None) -> ChatIntent:
    if not payload:
        return ChatIntent.other
    try:
        return ChatIntent(payload.get("intent"))
    except ValueError:
        return ChatIntent.other


def parse_hint(payload: dict[str, Any] | None) -> ModificationHint | None:
    """Structured action hint from the reply's JSON block, if usable."""
    data = (payload or {}).get("modificationData")
    if not isinstance(data, dict):
        return None
    try:
        return ModificationHint(
            action=data.get("action"),
            day_number=data.get("dayNumber", data.get("day_number")),
            item_name=data.get("itemName", data.get("item_name")) or None,
            category=data.get("category") or None,
        )
    except ValidationError:
        logger.debug(f"Ignoring unusable modification hint: {data!r}")
        return None


class ConversationOrchestrator:
    """Classifies messages and delegates edits to the mutation engine."""

    def __init__(
        self,
        *,
        sessions: SessionRepository,
        store: ItineraryStore,
        client: CompletionClient,
        resolver: IntentResolver,
        engine: ItineraryMutationEngine,
        settings: Settings | None = None,
    ) -> None:
        self._sessions = sessions
        self._store = store
        self._client = client
        self._resolver = resolver
        self._engine = engine
        self._settings = settings or get_settings()

    async def chat(
        self, session_id: str, message: str, history: ChatHistory | None = None
    ) -> ChatResult:
        """Answer a message, applying an itinerary edit when one is requested.

        Raises:
            SessionNotFoundError: Unknown session
            UpstreamError: The chat completion itself failed
        """
        session = await self._load_session(session_id)
        items = await self._current_items(session)

        context_info = build_context_info(
            trip_dates=session.trip_dates(),
            region=session.region,
            interests=session.interests,
            summary=summarize_items(items or []),
        )
        raw = await self._client.complete(
            prompt=message,
            system_prompt=build_assistant_system_prompt(context_info),
            temperature=TRAVEL_ASSISTANT_CONFIG.temperature,
            max_output_tokens=TRAVEL_ASSISTANT_CONFIG.max_output_tokens,
            history=history,
        )
        reply, payload = split_reply_and_json(raw)
        reply = reply or EMPTY_REPLY_MESSAGE
        intent = parse_chat_intent(payload)

        if intent is not ChatIntent.modification or items is None:
            return ChatResult(response=reply, intent=intent)

        hint = parse_hint(payload)
        try:
            if hint is not None:
                modification = hint.to_intent()
            else:
                modification = await self._resolver.resolve(
                    message,
                    summarize_items(items),
                    session.interests,
                    session.region or self._settings.default_region_label,
                )
            result = await self._engine.execute(session, modification)
        except Exception as e:
            logger.warning(f"Modification failed in chat for session {session_id}: {e!r}")
            return ChatResult(response=reply, intent=intent)

        return ChatResult(
            response=result.bot_message,
            intent=intent,
            updated_items=result.updated_items,
            modification_success=result.success,
        )

    async def resolve_intent(self, session_id: str, message: str) -> ModificationIntent:
        """Resolve a message against the session's current itinerary."""
        session = await self._load_session(session_id)
        items = await self._current_items(session) or []
        return await self._resolver.resolve(
            message,
            summarize_items(items),
            session.interests,
            session.region or self._settings.default_region_label,
        )

    async def modify_itinerary(
        self,
        session_id: str,
        message: str,
        pre_parsed: ModificationIntent | None = None,
    ) -> MutationResult:
        """Apply a message (or an already resolved intent) to the itinerary.

        Raises:
            SessionNotFoundError: Unknown session
            ItineraryNotFoundError: Session has no itinerary
        """
        session = await self._load_session(session_id)
        if session.itinerary_id is None:
            raise ItineraryNotFoundError(f"Session {session_id} has no itinerary")

        intent = pre_parsed or await self.resolve_intent(session_id, message)
        return await self._engine.execute(session, intent)

    async def regenerate_day(self, session_id: str, day_number: int) -> MutationResult:
        session = await self._load_session(session_id)
        if session.itinerary_id is None:
            raise ItineraryNotFoundError(f"Session {session_id} has no itinerary")
        return await self._engine.regenerate_day(session, day_number)

    async def day_timeline(self, session_id: str, day_number: int) -> DayTimeline:
        """Short narrative timeline for one day (read-only)."""
        session = await self._load_session(session_id)
        items = await self._current_items(session)
        if items is None:
            raise ItineraryNotFoundError(f"Session {session_id} has no itinerary")

        day_items = sorted(
            (i for i in items if i.day_number == day_number), key=lambda i: i.order_index
        )
        if not day_items:
            return DayTimeline(success=False)

        try:
            text = await self._client.complete(
                prompt=build_day_timeline_prompt(day_number=day_number, items=day_items),
                temperature=DAY_TIMELINE_CONFIG.temperature,
                max_output_tokens=DAY_TIMELINE_CONFIG.max_output_tokens,
            )
        except (UpstreamError, EmptyCompletionError) as e:
            logger.warning(f"Timeline generation failed for day {day_number}: {e}")
            return DayTimeline(success=False)

        return DayTimeline(success=True, timeline=text.strip())

    async def finalize(self, session_id: str) -> FinalizeResult:
        """Hand the itinerary over to a human expert."""
        session = await self._load_session(session_id)
        if session.itinerary_id is None:
            raise ItineraryNotFoundError(f"Session {session_id} has no itinerary")

        await self._store.mark_pending_review(session.itinerary_id)
        await self._sessions.mark_completed(session_id)
        logger.info(f"Session {session_id} finalized, itinerary {session.itinerary_id} pending")
        return FinalizeResult(
            success=True, message=FINALIZE_MESSAGE, itinerary_id=session.itinerary_id
        )

    async def _load_session(self, session_id: str) -> SessionContext:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def _current_items(self, session: SessionContext) -> list[ItineraryItem] | None:
        """Items of the attached itinerary, None when there is none."""
        if session.itinerary_id is None:
            return None
        doc = await self._store.read(session.itinerary_id)
        return doc.items if doc is not None else None
