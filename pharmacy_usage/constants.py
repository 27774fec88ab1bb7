"""Application-wide constants and configuration defaults.

This module centralizes magic values and defaults used across the
usage accounting core so they live in one place.
"""

# =============================================================================
# Free Tier
# =============================================================================
FREE_MESSAGE_LIMIT = 10
AI_MESSAGE_FEATURE_ID = "messages"

# =============================================================================
# Aggregate Counters
# =============================================================================
DASHBOARD_STATS_KEY = "global"

# =============================================================================
# Billing Provider
# =============================================================================
DEFAULT_BILLING_BASE_URL = "https://api.useautumn.com/v1"
DEFAULT_BILLING_TIMEOUT_SECONDS = 10.0
DEFAULT_BILLING_MAX_ATTEMPTS = 3
DEFAULT_BILLING_RETRY_WAIT_SECONDS = 0.5

BILLING_NOT_CONFIGURED_CODE = "BILLING_NOT_CONFIGURED"
BILLING_NOT_CONFIGURED_MESSAGE = (
    "Billing is not configured. Set AUTUMN_SECRET_KEY to enable paid AI usage."
)
BILLING_NETWORK_ERROR_CODE = "BILLING_NETWORK_ERROR"
BILLING_INVALID_RESPONSE_CODE = "BILLING_INVALID_RESPONSE"

# =============================================================================
# Database Pool Configuration
# =============================================================================
DEFAULT_DB_POOL_SIZE = 5
DEFAULT_DB_MAX_OVERFLOW = 10
DEFAULT_DB_POOL_TIMEOUT = 30
DEFAULT_DB_POOL_RECYCLE = 1800  # 30 minutes in seconds

# =============================================================================
# Reservation Audit
# =============================================================================
DEFAULT_STALE_RESERVATION_MINUTES = 60
