"""Unit tests for UsageConfig."""

import pytest
from pydantic import ValidationError

from pharmacy_usage.core.usage.config import UsageConfig, get_usage_config, reset_usage_config


class TestUsageConfig:
    """Tests for defaults and environment loading."""

    def test_defaults(self, clean_env):
        config = UsageConfig.from_env()

        assert config.free_message_limit == 10
        assert config.feature_id == "messages"
        assert config.store_backend == "postgres"
        assert config.stats_key == "global"
        assert config.billing_secret_key is None
        assert config.billing_configured is False
        assert config.admin_api_key is None

    def test_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("USAGE_FREE_MESSAGE_LIMIT", "25")
        monkeypatch.setenv("USAGE_STORE_BACKEND", "MEMORY")
        monkeypatch.setenv("USAGE_BILLING_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("AUTUMN_SECRET_KEY", "sk_live_123")
        monkeypatch.setenv("ADMIN_API_KEY", "admin-secret")

        config = UsageConfig.from_env()

        assert config.free_message_limit == 25
        assert config.store_backend == "memory"
        assert config.billing_max_attempts == 5
        assert config.billing_configured is True
        assert config.admin_api_key == "admin-secret"

    def test_empty_secret_is_unconfigured(self, clean_env, monkeypatch):
        monkeypatch.setenv("AUTUMN_SECRET_KEY", "")

        assert UsageConfig.from_env().billing_configured is False

    def test_invalid_backend_rejected(self, clean_env, monkeypatch):
        monkeypatch.setenv("USAGE_STORE_BACKEND", "redis")

        with pytest.raises(ValidationError):
            UsageConfig.from_env()

    def test_negative_limit_rejected(self):
        with pytest.raises(ValidationError):
            UsageConfig(free_message_limit=-1)

    def test_singleton_reset(self, clean_env, monkeypatch):
        first = get_usage_config()
        assert get_usage_config() is first

        monkeypatch.setenv("USAGE_FREE_MESSAGE_LIMIT", "3")
        reset_usage_config()

        assert get_usage_config().free_message_limit == 3
