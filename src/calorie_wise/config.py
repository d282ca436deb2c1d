"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
_PLACEHOLDER_PREFIX = "YOUR_"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str | None = None
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "low"
    openai_store: bool = False
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    google_search_api_key: str | None = None
    google_cse_id: str | None = None
    google_search_base_url: str = "https://www.googleapis.com/customsearch/v1"
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def persistence_configured(self) -> bool:
        """Return True when the document store credentials are usable."""
        return is_configured(self.supabase_url) and is_configured(
            self.supabase_service_key
        )

    @property
    def image_search_configured(self) -> bool:
        """Return True when the exercise image search credentials are usable."""
        return is_configured(self.google_search_api_key) and is_configured(
            self.google_cse_id
        )


def is_configured(raw: str | None) -> bool:
    """Return False for empty values and README placeholders."""
    if raw is None:
        return False
    cleaned = raw.strip()
    if not cleaned:
        return False
    return not cleaned.upper().startswith(_PLACEHOLDER_PREFIX)
