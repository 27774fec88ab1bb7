"""Usage and admin API schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from pharmacy_usage.core.usage.schemas import (
    BillingCheckError,
    BillingStatus,
    CompletionMetadata,
    CurrentUsage,
    ReservationMode,
    UsageSnapshot,
)


# =============================================================================
# Requests
# =============================================================================


class CompleteRequest(BaseModel):
    """Complete a reserved AI message."""
    mode: ReservationMode = Field(..., description="Mode returned by the reserve call")
    metadata: Optional[CompletionMetadata] = Field(
        default=None, description="Provider, model and token counts forwarded to billing"
    )


class CheckoutRequest(BaseModel):
    """Start a billing checkout."""
    product_id: str = Field(..., min_length=1, examples=["ai-credits-100"])
    success_url: Optional[str] = None


class AdjustCountsRequest(BaseModel):
    """Apply a user lifecycle delta to the aggregate counters."""
    total_delta: int = Field(..., examples=[1])
    active_delta: Optional[int] = Field(
        default=None, description="Defaults to total_delta when omitted"
    )


# =============================================================================
# Responses
# =============================================================================


class CurrentUsageResponse(BaseModel):
    """Current usage counters; usage is null before the first reservation."""
    success: bool = True
    usage: Optional[CurrentUsage] = None


class UsageStatusResponse(BaseModel):
    """Usage counters merged with billing status."""
    success: bool = True
    usage: CurrentUsage
    subscription: BillingStatus


class UsageConstantsResponse(BaseModel):
    success: bool = True
    free_message_limit: int
    feature_id: str


class ReserveResponse(BaseModel):
    """Successful reservation. Denials are returned as HTTP 402."""
    success: bool = True
    allowed: bool = True
    mode: ReservationMode
    usage: UsageSnapshot


class CompleteResponse(BaseModel):
    success: bool = True
    settled: bool
    reason: Optional[str] = None
    mode: ReservationMode
    tracked: bool = False
    track_error: Optional[BillingCheckError] = None
    usage: UsageSnapshot


class ReleaseResponse(BaseModel):
    success: bool = True
    released: bool
    reason: Optional[str] = None
    usage: UsageSnapshot


class CheckoutResponse(BaseModel):
    success: bool
    url: Optional[str] = None
    granted_immediately: bool = False
    error: Optional[BillingCheckError] = None


class UserCountsResponse(BaseModel):
    """System-wide user counters."""
    success: bool = True
    total_users: int
    active_users: int
    updated_at: Optional[datetime] = None
