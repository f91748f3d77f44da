"""Text-completion client with OpenAI integration.

Security: Reads API key from settings/environment only, never hardcoded.
Provides a deterministic stub when no key is present so the engine still runs
(every JSON-shaped request then falls back to its neutral default).
"""

import logging
from typing import Protocol

from openai import AsyncOpenAI

from backend.quoting.config import Settings, get_settings

logger = logging.getLogger(__name__)

ChatHistory = list[dict[str, str]]


class EmptyCompletionError(Exception):
    """Completion service returned no text."""


class CompletionClient(Protocol):
    """Protocol for text-completion implementations."""

    async def complete(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        history: ChatHistory | None = None,
    ) -> str:
        """Generate text for ``prompt``.

        Args:
            prompt: User-turn text
            system_prompt: Optional system instruction
            temperature: Sampling temperature
            max_output_tokens: Output token cap
            history: Prior turns as ``{"role": "user"|"assistant", "content": ...}``

        Returns:
            Raw completion text (may contain markdown around any JSON)
        """
        ...


class DeterministicStubClient:
    """Deterministic stub client for offline use (no API key required)."""

    REPLY = (
        "I'm running in offline mode right now, so I can't look this up. "
        "Please try again in a moment."
    )

    async def complete(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        history: ChatHistory | None = None,
    ) -> str:
        """Return a fixed reply with no JSON payload."""
        return self.REPLY


class OpenAICompletionClient:
    """OpenAI-backed completion client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def complete(
        self,
        *,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        history: ChatHistory | None = None,
    ) -> str:
        """Generate text using the chat completions API."""
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        for turn in history or []:
            role = "user" if turn.get("role") == "user" else "assistant"
            messages.append({"role": role, "content": turn.get("content", "")})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            temperature=temperature,
            max_tokens=max_output_tokens,
        )

        text = response.choices[0].message.content or ""
        if not text.strip():
            logger.warning("OpenAI returned empty response")
            raise EmptyCompletionError("completion service returned empty response")

        return text


def get_completion_client(settings: Settings | None = None) -> CompletionClient:
    """Factory function to get appropriate completion client based on config.

    Returns:
        OpenAICompletionClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for completions")
        return OpenAICompletionClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
        )

    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient()
