"""
Unit tests for crosscutting/config.py (Settings validation).

Tests:
  - Defaults for the chat core (TTL, rate limits, retrieval)
  - Positive / unit-interval validation
  - Cross-field validation (hourly >= per-minute, AI key requirement)
  - get_allowed_origins_list parsing

Note:
  - Uses monkeypatch to set environment variables
  - Fake providers are enabled by tests/conftest.py
"""

import pytest
from pydantic import ValidationError

from portal_chat.crosscutting.config import Settings

pytestmark = pytest.mark.unit


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.session_ttl_seconds == 1800
        assert settings.rate_limit_per_minute == 10
        assert settings.similarity_threshold == 0.7
        assert settings.retrieval_top_k == 5
        assert settings.default_personality == "professional"
        assert settings.session_sweep_interval_seconds == 0
        assert settings.session_retention_seconds == 86400
        assert settings.max_closed_sessions == 10000
        assert settings.trust_forwarded_for is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SESSION_TTL_SECONDS", "60")
        monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.5")
        monkeypatch.setenv("DEFAULT_PERSONALITY", " Friendly ")

        settings = Settings()

        assert settings.session_ttl_seconds == 60
        assert settings.similarity_threshold == 0.5
        assert settings.default_personality == "friendly"

    @pytest.mark.parametrize(
        "name, value",
        [
            ("SESSION_TTL_SECONDS", "0"),
            ("SESSION_RETENTION_SECONDS", "0"),
            ("MAX_CLOSED_SESSIONS", "-5"),
            ("RATE_LIMIT_PER_MINUTE", "-1"),
            ("SIMILARITY_THRESHOLD", "1.5"),
            ("INJECTION_RISK_THRESHOLD", "-0.1"),
            ("LLM_TEMPERATURE", "3"),
            ("LLM_TIMEOUT_SECONDS", "0"),
            ("MIN_CHUNK_TOKENS", "-1"),
            ("DEFAULT_PERSONALITY", "sarcastic"),
        ],
    )
    def test_invalid_values_are_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValidationError):
            Settings()

    def test_hourly_limit_must_cover_per_minute(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "20")
        monkeypatch.setenv("RATE_LIMIT_PER_HOUR", "10")

        with pytest.raises(ValidationError):
            Settings()

    def test_real_providers_require_api_key(self, monkeypatch):
        monkeypatch.setenv("FAKE_LLM", "0")
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

        with pytest.raises(ValidationError):
            Settings()

    def test_allowed_origins_list(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, ,https://b.example ")

        assert Settings().get_allowed_origins_list() == [
            "https://a.example",
            "https://b.example",
        ]

    def test_is_production(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "Production")

        assert Settings().is_production() is True
