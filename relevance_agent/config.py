# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: Pydantic V2 `BaseSettings` for configuration.
# Values are validated at startup, loaded from environment variables and an
# optional .env file, and fall back to the defaults below.
#
# Priority order (highest first):
#   1. Environment variables (e.g., `LLM_PROVIDER=openai_compatible`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from relevance_agent.config import settings
#   print(settings.llm_model_heavyweight)
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every setting has a default suitable for local development except the
    API keys, which must come from the environment or .env.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Product Relevance Agent"
    app_version: str = "0.1.0"
    debug: bool = True
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    # No defaults: a missing key raises ConfigurationError when the provider
    # is first built, before any model call is attempted.
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider, Two Model Tiers
    # -------------------------------------------------------------------------
    # Agents declare a tier (lightweight or heavyweight), never a model name.
    # The provider maps the tier to a concrete model:
    #   lightweight → router, context, extraction
    #   heavyweight → analysis, critic
    #
    # Example configs:
    #   Claude:  provider=anthropic, lightweight=claude-haiku-4-5,
    #            heavyweight=claude-sonnet-4-6
    #   OpenAI:  provider=openai_compatible, lightweight=gpt-4o-mini,
    #            heavyweight=o3, search_model=gpt-4o-mini-search-preview
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model_lightweight: str = "claude-haiku-4-5"
    llm_model_heavyweight: str = "claude-sonnet-4-6"
    # OpenAI-compatible APIs only expose web search on dedicated models
    llm_search_model: str = "gpt-4o-mini-search-preview"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 4096

    # -------------------------------------------------------------------------
    # Agent Behaviour
    # -------------------------------------------------------------------------
    # analysis_reasoning_budget: thinking tokens granted to the analysis step.
    # web_search_max_uses: upper bound on searches per search-augmented call.
    # extraction_failure_fatal: when False, a failed extraction branch falls
    #   back to the caller's product; when True it fails the whole workflow.
    # -------------------------------------------------------------------------
    analysis_reasoning_budget: int = 32768
    web_search_max_uses: int = 5
    extraction_failure_fatal: bool = False
    critic_enabled: bool = True
    default_router_mode: Literal[
        "smart", "force-search", "force-knowledge"
    ] = "smart"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, override via FastAPI's dependency_overrides or patch the
    module-level `settings` attributes directly.
    """
    return Settings()


settings = Settings()
