"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide the chat defaults (thresholds, TTL, rate limits, timeouts)

Collaborators:
  - container.py: builds options, limiters and provider policies from settings
  - api/main.py: reads settings for CORS and metrics exposure
  - infrastructure/services/retry.py: retry defaults

Constraints:
  - No business logic, pure configuration
  - Numbers here are tuning values, not invariants

Notes:
  - Singleton via lru_cache; tests call get_settings.cache_clear()
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PERSONALITIES = frozenset({"professional", "friendly", "concise"})


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        google_api_key: Google Gemini API key
        app_env: Application environment (development/production)
        fake_embeddings / fake_llm: Deterministic providers for tests and CI
        embedding_model / llm_model: Provider model identifiers
        retrieval_top_k: Chunks returned per query (default: 5)
        similarity_threshold: Minimum cosine similarity (default: 0.7)
        max_context_chars: Context budget for the prompt (default: 4000)
        llm_on_low_confidence: Ask the model (with a fallback notice) instead
            of answering with the fixed fallback template
        max_chunk_chars: Upper bound for an indexed chunk (default: 1200)
        min_chunk_tokens: Chunks below this token count are skipped (default: 3)
        session_ttl_seconds: Inactivity before a session expires (default: 1800)
        session_retention_seconds: How long ended/expired sessions stay readable
            before eviction (default: 86400)
        max_closed_sessions: Hard cap on retained ended/expired sessions
        auto_create_sessions: sendMessage without session_id opens one
        max_history_turns: Recent turns included in the prompt (default: 6)
        rate_limit_per_minute / rate_limit_per_hour: Per-session windows
        max_sessions_per_visitor: Concurrent ACTIVE sessions per visitor
            (visitor_id, else the hashed client IP)
        trust_forwarded_for: Take the client IP from X-Forwarded-For (only
            behind a trusted proxy)
        max_message_chars: Maximum inbound message length (default: 1000)
        injection_risk_threshold: Detector score that rejects a message (default: 0.5)
        llm_timeout_seconds / embedding_timeout_seconds: Provider call timeouts
        llm_max_tokens / llm_temperature: Generation caps
        retry_*: Backoff schedule around provider calls
        circuit_failure_threshold / circuit_reset_seconds: Breaker trip/reset
    """

    google_api_key: str = ""

    # Environment
    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # CORS configuration
    allowed_origins: str = "http://localhost:3000"

    # Testing/CI
    fake_llm: bool = False
    fake_embeddings: bool = False

    # Providers
    embedding_model: str = "text-embedding-004"
    llm_model: str = "gemini-1.5-flash"

    # Retrieval
    retrieval_top_k: int = 5
    similarity_threshold: float = 0.7
    max_context_chars: int = 4000
    llm_on_low_confidence: bool = False  # False: fixed fallback, model not called

    # Indexing
    max_chunk_chars: int = 1200
    min_chunk_tokens: int = 3

    # Sessions
    session_ttl_seconds: int = 1800
    session_sweep_interval_seconds: int = 0  # 0 disables the background sweep
    session_retention_seconds: int = 86400
    max_closed_sessions: int = 10000
    auto_create_sessions: bool = True
    max_history_turns: int = 6
    default_personality: str = "professional"

    # Safety - Rate Limiting
    rate_limit_per_minute: int = 10
    rate_limit_per_hour: int = 100
    max_sessions_per_visitor: int = 5
    trust_forwarded_for: bool = False
    max_message_chars: int = 1000
    injection_risk_threshold: float = 0.5

    # Generation
    llm_timeout_seconds: float = 30.0
    embedding_timeout_seconds: float = 10.0
    llm_max_tokens: int = 500
    llm_temperature: float = 0.7

    # Retry/Resilience
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0
    circuit_failure_threshold: int = 5
    circuit_reset_seconds: float = 60.0

    # Observability
    metrics_enabled: bool = True

    @field_validator(
        "retrieval_top_k",
        "max_context_chars",
        "max_chunk_chars",
        "session_ttl_seconds",
        "session_retention_seconds",
        "max_closed_sessions",
        "max_history_turns",
        "rate_limit_per_minute",
        "rate_limit_per_hour",
        "max_sessions_per_visitor",
        "max_message_chars",
        "llm_max_tokens",
        "retry_max_attempts",
        "circuit_failure_threshold",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("min_chunk_tokens", "session_sweep_interval_seconds")
    @classmethod
    def must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("similarity_threshold", "injection_risk_threshold")
    @classmethod
    def unit_interval(cls, v: float) -> float:
        if v < 0 or v > 1:
            raise ValueError("thresholds must be between 0 and 1")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def llm_temperature_valid(cls, v: float) -> float:
        if v < 0 or v > 2:
            raise ValueError("llm_temperature must be between 0 and 2")
        return v

    @field_validator(
        "llm_timeout_seconds",
        "embedding_timeout_seconds",
        "circuit_reset_seconds",
        "retry_base_delay_seconds",
        "retry_max_delay_seconds",
    )
    @classmethod
    def seconds_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("durations must be greater than 0")
        return v

    @field_validator("default_personality")
    @classmethod
    def default_personality_valid(cls, v: str) -> str:
        value = (v or "professional").strip().lower()
        if value not in PERSONALITIES:
            raise ValueError(
                f"default_personality must be one of {sorted(PERSONALITIES)}"
            )
        return value

    @model_validator(mode="after")
    def validate_rate_windows(self):
        if self.rate_limit_per_hour < self.rate_limit_per_minute:
            raise ValueError(
                "rate_limit_per_hour must be >= rate_limit_per_minute"
            )
        return self

    @model_validator(mode="after")
    def validate_ai_requirements(self):
        if not self.google_api_key and not (self.fake_llm and self.fake_embeddings):
            raise ValueError(
                "GOOGLE_API_KEY is required unless FAKE_LLM=1 and FAKE_EMBEDDINGS=1"
            )
        return self

    def get_allowed_origins_list(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance (validated once)."""
    return Settings()
