"""
Quota policy evaluation.

Pure functions that decide whether a user may start another metered AI
message, given their ledger, the latest billing facts, and the free tier
size. Display code and enforcement share these functions so counters
shown to users always match what is enforced.
"""

from typing import Optional

from .exceptions import (
    REASON_BILLING_CHECK_FAILED,
    REASON_BILLING_NOT_CONFIGURED,
    REASON_FREE_LIMIT_EXHAUSTED,
    REASON_UPGRADE_REQUIRED,
)
from .schemas import (
    BillingStatus,
    LedgerRecord,
    QuotaDecision,
    ReservationMode,
    SubscriptionStatus,
)


def calculate_usage_metrics(messages_used: int, pending_messages: int, free_limit: int) -> dict:
    """
    Derive the free tier counters from raw ledger values.

    Args:
        messages_used: Committed messages
        pending_messages: In-flight reservations
        free_limit: Size of the free tier

    Returns:
        Dict with total_consumed, free_messages_remaining and
        is_free_tier_exhausted.
    """
    total_consumed = messages_used + pending_messages
    return {
        "total_consumed": total_consumed,
        "free_messages_remaining": max(0, free_limit - total_consumed),
        "is_free_tier_exhausted": total_consumed >= free_limit,
    }


def has_paid_allowance(billing: Optional[BillingStatus]) -> bool:
    """True when billing facts admit usage beyond the free tier."""
    if billing is None:
        return False
    if billing.is_unlimited:
        return True
    return billing.credit_balance is not None and billing.credit_balance > 0


def evaluate_quota(
    ledger: Optional[LedgerRecord],
    billing: Optional[BillingStatus],
    free_limit: int,
) -> QuotaDecision:
    """
    Evaluate the quota policy.

    A missing ledger counts as zero usage and missing billing facts count
    as no credits and not unlimited. Generation is blocked only when the
    free tier has nothing left and billing grants no paid allowance.

    Args:
        ledger: Current ledger, or None if the user has never reserved
        billing: Latest billing facts, or None if not consulted
        free_limit: Size of the free tier

    Returns:
        QuotaDecision
    """
    messages_used = ledger.messages_used if ledger else 0
    pending_messages = ledger.pending_messages if ledger else 0
    metrics = calculate_usage_metrics(messages_used, pending_messages, free_limit)

    free_remaining = metrics["free_messages_remaining"]
    blocked = free_remaining == 0 and not has_paid_allowance(billing)
    mode = ReservationMode.PAID if free_remaining == 0 else ReservationMode.FREE

    return QuotaDecision(
        free_limit=free_limit,
        messages_used=messages_used,
        pending_messages=pending_messages,
        total_consumed=metrics["total_consumed"],
        free_messages_remaining=free_remaining,
        is_free_tier_exhausted=metrics["is_free_tier_exhausted"],
        generation_blocked=blocked,
        mode=mode,
    )


def denial_reason(billing: Optional[BillingStatus]) -> str:
    """
    Classify why a blocked reservation was denied.

    Args:
        billing: Billing facts consulted for the paid attempt, if any

    Returns:
        One of the REASON_* constants
    """
    if billing is None:
        return REASON_FREE_LIMIT_EXHAUSTED
    if not billing.configured or billing.status == SubscriptionStatus.NOT_CONFIGURED:
        return REASON_BILLING_NOT_CONFIGURED
    if billing.last_check_error is not None:
        return REASON_BILLING_CHECK_FAILED
    return REASON_UPGRADE_REQUIRED
