"""
Unit tests for limiter configuration and errors.
"""

import pytest
from pydantic import ValidationError as SettingsValidationError

from shared.config import LimiterConfig, get_config
from shared.errors import StoreConnectionError, ValidationError


class TestLimiterConfig:
    """Test cases for LimiterConfig."""

    def test_defaults(self, monkeypatch):
        for name in ("LIMITER_MAX_TOKENS", "LIMITER_TTL_SECONDS", "LIMITER_USE_DELAY", "LIMITER_BUCKET_KEY", "LIMITER_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = get_config()

        assert config.max_tokens == 10
        assert config.ttl_seconds == 60
        assert config.use_delay is True
        assert config.min_delay_seconds == 0
        assert config.max_delay_seconds == 0.5
        assert config.bucket_key is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LIMITER_MAX_TOKENS", "25")
        monkeypatch.setenv("LIMITER_USE_DELAY", "false")
        monkeypatch.setenv("LIMITER_REDIS_URL", "redis://redis:6379/3")

        config = get_config()

        assert config.max_tokens == 25
        assert config.use_delay is False
        assert config.redis_url == "redis://redis:6379/3"

    def test_explicit_overrides_win(self, monkeypatch):
        monkeypatch.setenv("LIMITER_MAX_TOKENS", "25")

        assert get_config(max_tokens=3).max_tokens == 3

    @pytest.mark.parametrize("kwargs", [
        {"max_tokens": 0},
        {"ttl_seconds": 0},
        {"min_delay_seconds": -1},
        {"min_delay_seconds": 1.0, "max_delay_seconds": 0.5},
        {"bucket_key": ""},
        {"log_level": "verbose"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(SettingsValidationError):
            LimiterConfig(**kwargs)

    def test_log_level_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("LIMITER_LOG_LEVEL", "WARNING")

        assert get_config().log_level == "warning"


class TestErrors:
    """Test cases for the error hierarchy."""

    def test_store_error_response(self):
        error = StoreConnectionError("Connection refused", operation="get", key="bucket")

        response = error.to_response()

        assert response.code == "STORE_CONNECTION_ERROR"
        assert response.message == "store: Connection refused"
        assert response.details == {"operation": "get", "key": "bucket"}

    def test_validation_error_code(self):
        assert ValidationError("bad").to_response().code == "VALIDATION_ERROR"
