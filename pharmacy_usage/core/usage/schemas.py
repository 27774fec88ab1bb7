"""
Pydantic schemas for usage accounting and quota enforcement.

Provides data models for the usage ledger, billing provider replies,
quota decisions, and service-level results.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field


class ReservationMode(str, Enum):
    """How a reservation was admitted."""
    FREE = "free"
    PAID = "paid"


class SubscriptionStatus(str, Enum):
    """Classified billing provider state for a user."""
    UNKNOWN = "unknown"
    NEEDS_UPGRADE = "needs_upgrade"
    SUBSCRIBED = "subscribed"
    NOT_CONFIGURED = "not_configured"


# =============================================================================
# Ledger
# =============================================================================


class LedgerRecord(BaseModel):
    """Per-user usage ledger as read from a store."""
    user_id: str
    messages_used: int = 0
    pending_messages: int = 0
    last_reserved_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# =============================================================================
# Billing provider
# =============================================================================


class BillingCheckError(BaseModel):
    """Error reported by (or about) a billing provider call."""
    message: str
    code: str
    transient: bool = Field(default=False, exclude=True)


class BillingStatus(BaseModel):
    """Live billing facts for a user. Never persisted."""
    status: SubscriptionStatus = SubscriptionStatus.UNKNOWN
    configured: bool = True
    credit_balance: Optional[int] = None
    is_unlimited: bool = False
    last_check_error: Optional[BillingCheckError] = None


T = TypeVar("T")


class BillingResult(BaseModel, Generic[T]):
    """Tagged reply from the billing provider: either data or an error."""
    ok: bool
    data: Optional[T] = None
    error: Optional[BillingCheckError] = None

    @classmethod
    def success(cls, data: Any) -> "BillingResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, message: str, code: str, transient: bool = False) -> "BillingResult":
        return cls(ok=False, error=BillingCheckError(message=message, code=code, transient=transient))


class UsageCheckData(BaseModel):
    """Feature access preview returned by the provider's check call."""
    allowed: bool = False
    feature_id: Optional[str] = None
    balance: Optional[int] = None
    unlimited: bool = False


class TrackData(BaseModel):
    """Acknowledgement of a tracked usage event."""
    id: Optional[str] = None
    feature_id: Optional[str] = None


class CheckoutData(BaseModel):
    """Checkout outcome: a hosted payment URL, or access granted immediately."""
    url: Optional[str] = None
    granted_immediately: bool = False


CheckoutResult = BillingResult[CheckoutData]


# =============================================================================
# Policy and results
# =============================================================================


class QuotaDecision(BaseModel):
    """Result of evaluating the quota policy against a ledger."""
    free_limit: int
    messages_used: int
    pending_messages: int
    total_consumed: int
    free_messages_remaining: int
    is_free_tier_exhausted: bool
    generation_blocked: bool
    mode: ReservationMode


class CurrentUsage(BaseModel):
    """Usage counters as displayed to a user."""
    messages_used: int = 0
    pending_messages: int = 0
    free_messages_remaining: int
    free_limit: int
    last_reserved_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None


class UsageSnapshot(CurrentUsage):
    """Usage counters for one user after an operation."""
    user_id: str

    @classmethod
    def from_record(
        cls, record: Optional[LedgerRecord], free_limit: int, user_id: str
    ) -> "UsageSnapshot":
        """Build a snapshot; a missing record is treated as zero usage."""
        messages_used = record.messages_used if record else 0
        pending_messages = record.pending_messages if record else 0
        return cls(
            user_id=user_id,
            messages_used=messages_used,
            pending_messages=pending_messages,
            free_messages_remaining=max(0, free_limit - (messages_used + pending_messages)),
            free_limit=free_limit,
            last_reserved_at=record.last_reserved_at if record else None,
            last_completed_at=record.last_completed_at if record else None,
        )


class LedgerMutation(BaseModel):
    """Outcome of an atomic store operation on a ledger row."""
    applied: bool
    record: Optional[LedgerRecord] = None
    decision: Optional[QuotaDecision] = None


class UsageStatus(BaseModel):
    """Ledger and billing snapshots merged at read time."""
    usage: CurrentUsage
    subscription: BillingStatus


class ReservationResult(BaseModel):
    """Successful reservation."""
    allowed: bool = True
    mode: ReservationMode
    usage: UsageSnapshot


class SettlementResult(BaseModel):
    """Outcome of a commit or release."""
    settled: bool
    reason: Optional[str] = None
    usage: UsageSnapshot


class ReleaseResult(SettlementResult):
    """Outcome of releasing a reservation."""


class CompletionResult(SettlementResult):
    """Outcome of completing a reservation, with paid-usage tracking."""
    mode: ReservationMode
    tracked: bool = False
    track_error: Optional[BillingCheckError] = None


class AggregateStats(BaseModel):
    """System-wide user counters."""
    key: str
    total_users: int = 0
    active_users: int = 0
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UsageConstants(BaseModel):
    """Client-facing usage constants."""
    free_message_limit: int
    feature_id: str


class CompletionMetadata(BaseModel):
    """Optional details about a completed AI message, forwarded to billing."""
    provider: Optional[str] = None
    model: Optional[str] = None
    total_tokens: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    def to_properties(self) -> Dict[str, Any]:
        """Event properties for the provider, omitting unset fields."""
        mapping = {
            "provider": self.provider,
            "model": self.model,
            "totalTokens": self.total_tokens,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
        }
        return {key: value for key, value in mapping.items() if value is not None}
