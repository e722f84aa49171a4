"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
Provider API keys are accessed exclusively through this module;
never call ``os.getenv`` directly elsewhere in the codebase.

Usage::

    from rsa_writer.config.settings import get_settings

    settings = get_settings()
    concurrency = settings.scrape_concurrency
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline configuration backed by environment variables and an optional .env file.

    Every field has a default so the package can be imported (and unit tested)
    without any environment.  Provider keys must be supplied before the real
    HTTP clients are used.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = "sqlite+aiosqlite:///./rsa_writer.db"
    """Async SQLAlchemy DSN.  Use ``postgresql+asyncpg://...`` in production."""

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    # ------------------------------------------------------------------
    # Content-retrieval provider (Firecrawl)
    # ------------------------------------------------------------------

    firecrawl_api_key: str = ""
    firecrawl_api_url: str = "https://api.firecrawl.dev/v1/scrape"
    firecrawl_timeout_seconds: float = 60.0

    # ------------------------------------------------------------------
    # Text-generation provider (OpenAI)
    # ------------------------------------------------------------------

    openai_api_key: str = ""
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 500
    openai_temperature: float = 0.7
    openai_timeout_seconds: float = 60.0

    # ------------------------------------------------------------------
    # Pipeline behaviour
    # ------------------------------------------------------------------

    scrape_concurrency: int = Field(default=5, ge=1)
    """Number of fetches issued together per chunk in the scrape phase."""

    max_headlines: int = Field(default=15, ge=1)
    max_descriptions: int = Field(default=4, ge=1)

    max_headline_chars: int = 30
    """Requested from the generation provider in the prompt; never enforced."""

    max_description_chars: int = 90
    """Requested from the generation provider in the prompt; never enforced."""

    allowed_domains: list[str] = []
    """Domain allow-list (``"shop.com"`` or ``"*.myshopify.com"``).  Empty allows all."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings singleton.

    In tests, call ``get_settings.cache_clear()`` after patching environment
    variables.
    """
    return Settings()
