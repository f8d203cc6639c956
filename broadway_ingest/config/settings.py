"""Application settings using Pydantic BaseSettings for environment variable management."""

from pydantic_settings import BaseSettings
from pydantic import Field


def _split_csv(raw: str) -> list[str]:
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Provider credentials are optional: a provider without its credential is
    disabled rather than raising at startup.

    Attributes:
        brightdata_api_token: Bright Data request API token
        brightdata_zone: Bright Data zone used for markdown requests
        scrapingbee_api_key: ScrapingBee API key
        playwright_enabled: Allow the local headless browser provider
        disabled_providers: Comma-separated provider kinds switched off entirely
        render_required_domains: Comma-separated hosts that need full rendering
        provider_timeout_seconds: Timeout for API provider calls
        playwright_timeout_seconds: Timeout for a browser page load
        rate_limit_backoff_seconds: Backoff delays after a rate-limit response
        delay_normal_seconds: Inter-call delay before any throttling
        delay_cautious_seconds: Inter-call delay once throttling started
        delay_slow_seconds: Inter-call delay for a persistently throttling provider
        cautious_after: Rate-limit count that moves a provider to the cautious tier
        slow_after: Rate-limit count that moves a provider to the slow tier
        max_calls_per_window: Optional cap on calls per 60s window per provider
        provider_cooldown_seconds: How long a hard-blocked provider stays down
        guardian_override_subjects: Comma-separated subject ids allowed past the guardian
        gemini_api_key: Google Gemini API key (semantic classifier)
        openai_api_key: OpenAI API key (semantic classifier)
        anthropic_api_key: Anthropic API key (semantic classifier)
        llm_backoff_seconds: Delays between LLM retries on one provider
        max_rpm: Maximum LLM requests per minute
        max_tpm: Maximum LLM tokens per minute
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
        audit_store_path: Optional JSON file for the audit store
        evidence_store_path: Optional JSON file for the evidence pool
    """

    brightdata_api_token: str | None = Field(
        default=None,
        description="Bright Data request API token"
    )
    brightdata_zone: str = Field(
        default="web_unlocker1",
        description="Bright Data zone for markdown requests"
    )
    scrapingbee_api_key: str | None = Field(
        default=None,
        description="ScrapingBee API key"
    )
    playwright_enabled: bool = Field(
        default=True,
        description="Allow the local headless browser provider"
    )
    disabled_providers: str = Field(
        default="",
        description="Comma-separated provider kinds to disable (kill switch)"
    )
    render_required_domains: str = Field(
        default="broadwayworld.com",
        description="Comma-separated hosts that always prefer full rendering"
    )
    provider_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for API provider calls"
    )
    playwright_timeout_seconds: float = Field(
        default=45.0,
        description="Timeout for a headless browser page load"
    )
    rate_limit_backoff_seconds: list[float] = Field(
        default=[30.0, 60.0, 120.0],
        description="Backoff sequence after rate-limit responses (JSON list)"
    )
    delay_normal_seconds: float = Field(default=7.0, description="Normal inter-call delay")
    delay_cautious_seconds: float = Field(default=12.0, description="Cautious inter-call delay")
    delay_slow_seconds: float = Field(default=20.0, description="Slow inter-call delay")
    cautious_after: int = Field(default=2, description="Rate limits before the cautious tier")
    slow_after: int = Field(default=5, description="Rate limits before the slow tier")
    max_calls_per_window: int | None = Field(
        default=None,
        description="Optional cap on calls per 60 second window per provider"
    )
    provider_cooldown_seconds: float = Field(
        default=300.0,
        description="Cooldown after a provider hard-blocks a request"
    )
    guardian_override_subjects: str = Field(
        default="",
        description="Comma-separated subject ids that bypass the verified-data guardian"
    )
    gemini_api_key: str | None = Field(default=None, description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-2.0-flash", description="Gemini model identifier")
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model identifier")
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-3-5-haiku-latest",
        description="Anthropic model identifier"
    )
    llm_timeout_seconds: float = Field(default=60.0, description="Timeout for LLM calls")
    llm_backoff_seconds: list[float] = Field(
        default=[2.0, 5.0],
        description="Backoff before each LLM retry on the same provider (JSON list)"
    )
    max_rpm: int = Field(
        default=15,
        description="Maximum LLM requests per minute"
    )
    max_tpm: int = Field(
        default=1_000_000,
        description="Maximum LLM tokens per minute"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: json or console"
    )
    audit_store_path: str | None = Field(
        default=None,
        description="JSON file backing the audit store"
    )
    evidence_store_path: str | None = Field(
        default=None,
        description="JSON file backing the evidence pool"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def disabled_provider_set(self) -> set[str]:
        return set(_split_csv(self.disabled_providers))

    @property
    def render_required_domain_set(self) -> set[str]:
        return set(_split_csv(self.render_required_domains))

    @property
    def override_subject_set(self) -> set[str]:
        return set(_split_csv(self.guardian_override_subjects))


# Singleton instance - import this throughout the application
settings = Settings()
