"""
Usage accounting configuration.

All settings are configurable via environment variables with the USAGE_
prefix. The billing secret and admin key keep the names the rest of the
deployment already uses (AUTUMN_SECRET_KEY, ADMIN_API_KEY).
"""

import os
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from pharmacy_usage.constants import (
    AI_MESSAGE_FEATURE_ID,
    DASHBOARD_STATS_KEY,
    DEFAULT_BILLING_BASE_URL,
    DEFAULT_BILLING_MAX_ATTEMPTS,
    DEFAULT_BILLING_RETRY_WAIT_SECONDS,
    DEFAULT_BILLING_TIMEOUT_SECONDS,
    FREE_MESSAGE_LIMIT,
)
from pharmacy_usage.utils.env_utils import parse_float_env, parse_int_env


class UsageConfig(BaseSettings):
    """Configuration for usage accounting and quota enforcement."""

    # Free tier
    free_message_limit: int = Field(
        default=FREE_MESSAGE_LIMIT,
        ge=0,
        description="Number of AI messages a user may consume before billing is consulted",
    )
    feature_id: str = Field(
        default=AI_MESSAGE_FEATURE_ID,
        description="Billing provider feature id for metered AI messages",
    )

    # Persistence
    store_backend: Literal["postgres", "memory"] = Field(
        default="postgres",
        description="Ledger and stats store backend",
    )
    stats_key: str = Field(
        default=DASHBOARD_STATS_KEY,
        description="Key of the singleton aggregate counter row",
    )

    # Billing provider
    billing_base_url: str = Field(
        default=DEFAULT_BILLING_BASE_URL,
        description="Base URL of the billing provider REST API",
    )
    billing_secret_key: Optional[str] = Field(
        default=None,
        description="Billing provider secret key; billing is disabled when empty",
    )
    billing_timeout_seconds: float = Field(
        default=DEFAULT_BILLING_TIMEOUT_SECONDS,
        gt=0,
        description="Per-request timeout for billing provider calls",
    )
    billing_max_attempts: int = Field(
        default=DEFAULT_BILLING_MAX_ATTEMPTS,
        ge=1,
        description="Maximum attempts for a billing call on transient failures",
    )
    billing_retry_wait_seconds: float = Field(
        default=DEFAULT_BILLING_RETRY_WAIT_SECONDS,
        ge=0,
        description="Base exponential back-off between billing retries",
    )

    # Admin surface
    admin_api_key: Optional[str] = Field(
        default=None,
        description="Shared secret required in X-Admin-Key for admin routes",
    )

    model_config = {"env_prefix": "USAGE_", "case_sensitive": False}

    @property
    def billing_configured(self) -> bool:
        return bool(self.billing_secret_key)

    @classmethod
    def from_env(cls) -> "UsageConfig":
        """Create config from environment variables."""
        return cls(
            free_message_limit=parse_int_env("USAGE_FREE_MESSAGE_LIMIT", FREE_MESSAGE_LIMIT),
            feature_id=os.getenv("USAGE_FEATURE_ID", AI_MESSAGE_FEATURE_ID),
            store_backend=os.getenv("USAGE_STORE_BACKEND", "postgres").lower(),
            stats_key=os.getenv("USAGE_STATS_KEY", DASHBOARD_STATS_KEY),
            billing_base_url=os.getenv("USAGE_BILLING_BASE_URL", DEFAULT_BILLING_BASE_URL),
            billing_secret_key=os.getenv("AUTUMN_SECRET_KEY") or None,
            billing_timeout_seconds=parse_float_env(
                "USAGE_BILLING_TIMEOUT_SECONDS", DEFAULT_BILLING_TIMEOUT_SECONDS
            ),
            billing_max_attempts=parse_int_env(
                "USAGE_BILLING_MAX_ATTEMPTS", DEFAULT_BILLING_MAX_ATTEMPTS
            ),
            billing_retry_wait_seconds=parse_float_env(
                "USAGE_BILLING_RETRY_WAIT_SECONDS", DEFAULT_BILLING_RETRY_WAIT_SECONDS
            ),
            admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        )


# Singleton config instance
_config: Optional[UsageConfig] = None


def get_usage_config() -> UsageConfig:
    """Get the usage config singleton."""
    global _config
    if _config is None:
        _config = UsageConfig.from_env()
    return _config


def reset_usage_config() -> None:
    """Reset the config singleton (for testing)."""
    global _config
    _config = None
