"""
Custom exceptions for usage accounting and quota enforcement.
"""

from typing import Optional, Dict, Any


class UsageTrackingError(Exception):
    """Base exception for usage accounting errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Reasons a reservation can be denied
REASON_FREE_LIMIT_EXHAUSTED = "free_limit_exhausted"
REASON_BILLING_NOT_CONFIGURED = "billing_not_configured"
REASON_BILLING_CHECK_FAILED = "billing_check_failed"
REASON_UPGRADE_REQUIRED = "upgrade_required"

_UPGRADE_REASONS = frozenset({REASON_BILLING_CHECK_FAILED, REASON_UPGRADE_REQUIRED})

_REASON_MESSAGES = {
    REASON_FREE_LIMIT_EXHAUSTED: "Free AI message limit reached.",
    REASON_BILLING_NOT_CONFIGURED: (
        "Free AI message limit reached and billing is not configured."
    ),
    REASON_BILLING_CHECK_FAILED: (
        "Free AI message limit reached and the billing provider could not be reached."
    ),
    REASON_UPGRADE_REQUIRED: "Free AI message limit reached. Upgrade to keep chatting.",
}


class QuotaExceededException(UsageTrackingError):
    """
    Raised when a reservation is denied by the quota policy.

    Carries the usage snapshot at denial time and renders the HTTP 402
    response body with an upgrade CTA.
    """

    def __init__(
        self,
        user_id: str,
        reason: str,
        messages_used: int,
        pending_messages: int,
        free_limit: int,
        billing_error: Optional[Dict[str, Any]] = None,
        upgrade_url: Optional[str] = None,
    ):
        self.user_id = user_id
        self.reason = reason
        self.messages_used = messages_used
        self.pending_messages = pending_messages
        self.free_limit = free_limit
        self.billing_error = billing_error
        self.upgrade_url = upgrade_url

        base = _REASON_MESSAGES.get(reason, "AI message quota exceeded.")
        message = f"{base} Used: {messages_used:,} / {free_limit:,} (pending: {pending_messages:,})"

        super().__init__(
            message=message,
            details={
                "user_id": user_id,
                "reason": reason,
                "messages_used": messages_used,
                "pending_messages": pending_messages,
                "free_limit": free_limit,
            },
        )

    @property
    def requires_upgrade(self) -> bool:
        return self.reason in _UPGRADE_REASONS

    @property
    def free_messages_remaining(self) -> int:
        return max(0, self.free_limit - (self.messages_used + self.pending_messages))

    def to_response_dict(self) -> Dict[str, Any]:
        """Convert to HTTP 402 response body."""
        response: Dict[str, Any] = {
            "error": "quota_exceeded",
            "reason": self.reason,
            "requires_upgrade": self.requires_upgrade,
            "usage": {
                "messages_used": self.messages_used,
                "pending_messages": self.pending_messages,
                "free_limit": self.free_limit,
                "free_messages_remaining": self.free_messages_remaining,
            },
            "message": self.message,
        }

        if self.billing_error:
            response["billing_error"] = self.billing_error

        if self.requires_upgrade:
            response["upgrade"] = {
                "message": "Add credits or subscribe to continue using the AI assistant",
                "url": self.upgrade_url or "/settings/billing?upgrade=messages",
            }

        return response


class BillingProviderError(UsageTrackingError):
    """Raised by strict billing paths when the provider call fails or is unconfigured."""

    def __init__(self, message: str, code: str):
        self.code = code
        super().__init__(message=message, details={"code": code})


class LedgerNotFoundError(UsageTrackingError):
    """Raised by strict lookups when no usage ledger exists for a user."""

    def __init__(self, user_id: str):
        super().__init__(
            message=f"Usage ledger not found for user: {user_id}",
            details={"user_id": user_id},
        )


__all__ = [
    "UsageTrackingError",
    "QuotaExceededException",
    "BillingProviderError",
    "LedgerNotFoundError",
    "REASON_FREE_LIMIT_EXHAUSTED",
    "REASON_BILLING_NOT_CONFIGURED",
    "REASON_BILLING_CHECK_FAILED",
    "REASON_UPGRADE_REQUIRED",
]
