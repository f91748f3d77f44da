"""Chat-session endpoints: chat, intent, modification, timeline and handoff."""

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field

from backend.quoting.api.dependencies import get_orchestrator
from backend.quoting.db.repositories import NotFoundError, StaleItineraryError
from backend.quoting.llm.client import EmptyCompletionError
from backend.quoting.models import (
    ChatResult,
    DayTimeline,
    FinalizeResult,
    ModificationIntent,
    MutationResult,
)
from backend.quoting.orchestration.conversation import ConversationOrchestrator
from backend.quoting.upstream.executor import UpstreamError

router = APIRouter(prefix="/sessions/{session_id}", tags=["sessions"])
logger = logging.getLogger(__name__)

Orchestrator = Annotated[ConversationOrchestrator, Depends(get_orchestrator)]
DayNumber = Annotated[int, Path(ge=1)]


class ChatTurn(BaseModel):
    """One prior message of the conversation."""

    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[ChatTurn] = Field(default_factory=list)


class IntentRequest(BaseModel):
    message: str = Field(..., min_length=1)


class ModifyRequest(BaseModel):
    message: str = Field(..., min_length=1)
    intent: ModificationIntent | None = None


HANDLED_ERRORS = (NotFoundError, StaleItineraryError, UpstreamError, EmptyCompletionError)


def to_http_error(e: Exception) -> HTTPException:
    """Map domain errors to HTTP responses."""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, StaleItineraryError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Itinerary was modified concurrently, please retry",
        )
    logger.warning(f"Upstream failure: {e!r}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="A backing service is temporarily unavailable, please retry",
    )


@router.post("/chat", response_model=ChatResult)
async def chat(session_id: str, body: ChatRequest, orchestrator: Orchestrator) -> ChatResult:
    """Conversational reply, applying an itinerary edit when requested."""
    try:
        return await orchestrator.chat(
            session_id, body.message, [t.model_dump() for t in body.history] or None
        )
    except HANDLED_ERRORS as e:
        raise to_http_error(e) from e


@router.post("/intent", response_model=ModificationIntent)
async def resolve_intent(
    session_id: str, body: IntentRequest, orchestrator: Orchestrator
) -> ModificationIntent:
    try:
        return await orchestrator.resolve_intent(session_id, body.message)
    except HANDLED_ERRORS as e:
        raise to_http_error(e) from e


@router.post("/modify", response_model=MutationResult)
async def modify(session_id: str, body: ModifyRequest, orchestrator: Orchestrator) -> MutationResult:
    """Apply a message (or a pre-parsed intent) to the itinerary."""
    try:
        return await orchestrator.modify_itinerary(session_id, body.message, body.intent)
    except HANDLED_ERRORS as e:
        raise to_http_error(e) from e


@router.post("/days/{day_number}/regenerate", response_model=MutationResult)
async def regenerate_day(
    session_id: str, day_number: DayNumber, orchestrator: Orchestrator
) -> MutationResult:
    try:
        return await orchestrator.regenerate_day(session_id, day_number)
    except HANDLED_ERRORS as e:
        raise to_http_error(e) from e


@router.get("/days/{day_number}/timeline", response_model=DayTimeline)
async def day_timeline(
    session_id: str, day_number: DayNumber, orchestrator: Orchestrator
) -> DayTimeline:
    try:
        return await orchestrator.day_timeline(session_id, day_number)
    except HANDLED_ERRORS as e:
        raise to_http_error(e) from e


@router.post("/finalize", response_model=FinalizeResult)
async def finalize(session_id: str, orchestrator: Orchestrator) -> FinalizeResult:
    """Send the itinerary to a human expert for review."""
    try:
        return await orchestrator.finalize(session_id)
    except HANDLED_ERRORS as e:
        raise to_http_error(e) from e
