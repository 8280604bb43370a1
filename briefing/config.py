"""
Runtime settings for the brief engine.

Every value comes from the environment (or a local .env file); the module
level ``config`` instance is what the rest of the package imports.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def split_csv(raw: str | None) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


class AppConfig(BaseSettings):
    """Brief engine settings. Names match the environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== API Keys =====
    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for Claude (required for every agent)"
    )

    TAVILY_API_KEY: str | None = Field(
        default=None,
        description="Tavily search API key (research stage is skipped without it)"
    )

    TAVILY_SEARCH_URL: str = Field(
        default="https://api.tavily.com/search",
        description="Tavily search endpoint"
    )

    RESEARCH_MAX_SOURCES: int = Field(
        default=8,
        ge=1,
        le=20,
        description="Maximum number of web sources gathered per brief"
    )

    # ===== Persistence =====
    SUPABASE_URL: str | None = Field(
        default=None,
        description="Base URL of the Supabase project holding investigations and credits"
    )

    SUPABASE_ANON_KEY: str | None = Field(
        default=None,
        description="Public Supabase key (unused server-side, accepted for parity with clients)"
    )

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (server-side persistence and credit ledger)"
    )

    # ===== Model Selection =====
    RESEARCH_MODEL: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Model used to annotate research sources and classify questions"
    )

    DRAFTING_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for structure, narrative and draft reconciliation"
    )

    EVALUATOR_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used by the evaluator personas and the arbiter"
    )

    FIXER_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used by the dimension fixers"
    )

    SUMMARY_MODEL: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Model used for reading-level summaries"
    )

    MAX_TOKENS: int = Field(
        default=8000,
        ge=100,
        le=16000,
        description="Maximum tokens per model response"
    )

    # ===== Agent Invocation =====
    AGENT_MAX_RETRIES: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts per agent call for retryable failures"
    )

    AGENT_INITIAL_DELAY_MS: int = Field(
        default=1000,
        ge=0,
        le=60000,
        description="Delay before the second attempt, in milliseconds"
    )

    AGENT_BACKOFF_FACTOR: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Multiplier applied to the delay after every failed attempt"
    )

    AGENT_JITTER_RATIO: float = Field(
        default=0.2,
        ge=0.0,
        le=0.5,
        description="Uniform jitter applied to each delay (0.2 = +/-20%)"
    )

    AGENT_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        ge=5.0,
        le=900.0,
        description="HTTP timeout for a single model call"
    )

    # ===== Scoring & Refinement =====
    DISAGREEMENT_THRESHOLD: float = Field(
        default=2.0,
        ge=0.0,
        le=10.0,
        description="Max-min spread (in points) above which a dimension is disputed"
    )

    PARALLEL_EVALUATORS: bool = Field(
        default=True,
        description="Run the three primary evaluator personas concurrently"
    )

    MAX_REFINEMENT_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum refinement rounds per brief"
    )

    MAX_FIXERS_PER_ROUND: int = Field(
        default=3,
        ge=1,
        le=7,
        description="Maximum fixers deployed in a single refinement round"
    )

    FIXER_SCORE_FLOOR: float = Field(
        default=7.0,
        ge=0.0,
        le=10.0,
        description="Dimensions scoring below this value are eligible for a fixer"
    )

    # ===== Orchestration =====
    STAGE_TIMEOUT_SECONDS: float = Field(
        default=180.0,
        gt=0.0,
        le=1800.0,
        description="Upper bound for a single pipeline stage"
    )

    EVENT_QUEUE_SIZE: int = Field(
        default=256,
        ge=1,
        le=10000,
        description="Per-subscriber buffer for progress events (oldest dropped when full)"
    )

    CREDITS_PER_BRIEF: int = Field(
        default=1,
        ge=1,
        description="Credits deducted per brief generation"
    )

    # ===== Runtime =====
    ENVIRONMENT: str = Field(
        default="development",
        description="\"production\" tightens CORS and auth defaults; anything else is development"
    )

    DEV_MODE: bool = Field(
        default=True,
        description="Enable dev mode (auth bypass when no API keys are configured)"
    )

    @field_validator("DEV_MODE", "PARALLEL_EVALUATORS", mode="before")
    @classmethod
    def coerce_flag(cls, value):
        # Hosting dashboards hand every variable over as a string.
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Threshold for briefing.* records written to stderr"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="Port the HTTP server listens on"
    )

    # ===== Access Control =====
    API_KEYS: str | None = Field(
        default=None,
        description="Accepted client keys, comma separated. Unset in dev mode means no auth."
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="CORS origins, comma separated. \"*\" is honoured only in dev mode."
    )

    RATE_LIMIT_PER_MINUTE: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="Max API requests per minute per API key (0 = unlimited)"
    )

    @property
    def api_keys_list(self) -> list[str]:
        return split_csv(self.API_KEYS)

    @property
    def allowed_origins_list(self) -> list[str]:
        origins = split_csv(self.ALLOWED_ORIGINS)
        if origins == ["*"]:
            return origins if self.DEV_MODE else []
        return origins

    @property
    def auth_required(self) -> bool:
        """Keys are checked unless dev mode runs without any configured."""
        return not self.DEV_MODE or len(self.api_keys_list) > 0

    @property
    def supabase_configured(self) -> bool:
        """Persistence and the credit ledger need the service key."""
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_KEY)

    @property
    def search_configured(self) -> bool:
        return self.TAVILY_API_KEY is not None

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


config = AppConfig()
