"""
Usage accounting and quota enforcement module.

Provides the AI message ledger schemas, the quota policy, and the billing
provider integration. Components that need a store (ReservationManager,
AggregateCounterMaintainer, UsageStatusMonitor, UsageAccountingService)
are imported from their own modules.
"""

from .config import UsageConfig, get_usage_config, reset_usage_config
from .exceptions import (
    BillingProviderError,
    LedgerNotFoundError,
    QuotaExceededException,
    UsageTrackingError,
)
from .schemas import (
    AggregateStats,
    BillingCheckError,
    BillingResult,
    BillingStatus,
    CompletionMetadata,
    CompletionResult,
    CurrentUsage,
    LedgerRecord,
    QuotaDecision,
    ReleaseResult,
    ReservationMode,
    ReservationResult,
    SubscriptionStatus,
    UsageSnapshot,
    UsageStatus,
)
from .quota_policy import calculate_usage_metrics, evaluate_quota, has_paid_allowance
from .billing_client import BillingProviderClient
from .billing_reconciler import BillingStatusReconciler

__all__ = [
    # Config
    "UsageConfig",
    "get_usage_config",
    "reset_usage_config",
    # Exceptions
    "UsageTrackingError",
    "QuotaExceededException",
    "BillingProviderError",
    "LedgerNotFoundError",
    # Schemas
    "AggregateStats",
    "BillingCheckError",
    "BillingResult",
    "BillingStatus",
    "CompletionMetadata",
    "CompletionResult",
    "CurrentUsage",
    "LedgerRecord",
    "QuotaDecision",
    "ReleaseResult",
    "ReservationMode",
    "ReservationResult",
    "SubscriptionStatus",
    "UsageSnapshot",
    "UsageStatus",
    # Policy
    "calculate_usage_metrics",
    "evaluate_quota",
    "has_paid_allowance",
    # Billing
    "BillingProviderClient",
    "BillingStatusReconciler",
]
