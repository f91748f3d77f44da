"""FastAPI dependencies."""

from functools import lru_cache

from backend.quoting.config import get_settings
from backend.quoting.orchestration.conversation import ConversationOrchestrator
from backend.quoting.orchestration.factory import build_orchestrator_from_settings


@lru_cache
def get_orchestrator() -> ConversationOrchestrator:
    """Process-wide orchestrator (tests override this dependency)."""
    return build_orchestrator_from_settings(get_settings())
