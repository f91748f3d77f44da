"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (None -> in-memory repositories)
    database_url: str | None = None

    # Completion service
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"

    # Timeouts (milliseconds)
    llm_timeout_ms: int = 20000
    catalog_timeout_ms: int = 3000

    # Retry jitter (milliseconds)
    upstream_retry_count: int = 1
    retry_jitter_min_ms: int = 200
    retry_jitter_max_ms: int = 500

    # Circuit breaker
    circuit_breaker_failures: int = 5
    circuit_breaker_window_sec: int = 60
    circuit_breaker_half_open_sec: int = 30

    # Matching
    fuzzy_threshold: float = 0.3
    clarification_confidence: float = 0.5

    # Candidate pool sizes
    regenerate_item_count: int = 4
    regenerate_min_candidates: int = 10
    regenerate_candidate_limit: int = 30
    pick_candidate_limit: int = 15
    exact_match_limit: int = 5

    default_region_label: str = "Korea"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
