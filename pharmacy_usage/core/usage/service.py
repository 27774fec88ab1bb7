"""
UsageAccountingService - Facade for usage accounting and quota enforcement.

This service is the single entry point used by the API layer and scripts.
It wires together the focused components:
- ReservationManager: reserve / commit / release of AI messages
- BillingStatusReconciler: live billing status from the provider
- AggregateCounterMaintainer: system-wide user counts
"""

import logging
from datetime import datetime
from typing import Optional

from pharmacy_usage.storage.base import LedgerStore, StatsStore

from .aggregate_counter import AggregateCounterMaintainer
from .billing_client import BillingProviderClient
from .billing_reconciler import BillingStatusReconciler
from .config import UsageConfig, get_usage_config
from .reservation_manager import ReservationManager
from .schemas import (
    AggregateStats,
    BillingResult,
    CompletionMetadata,
    CompletionResult,
    CurrentUsage,
    ReleaseResult,
    ReservationMode,
    ReservationResult,
    UsageConstants,
    UsageSnapshot,
    UsageStatus,
)
from .status_monitor import UsageStatusMonitor

logger = logging.getLogger(__name__)


class UsageAccountingService:
    """
    Facade for usage accounting and quota enforcement.

    Coordinates:
    - Per-user AI message ledger and reservations
    - Billing provider status and paid-usage tracking
    - Aggregate user counters for dashboards
    """

    def __init__(
        self,
        config: UsageConfig,
        ledger_store: LedgerStore,
        stats_store: StatsStore,
        billing_client: BillingProviderClient,
    ):
        self.config = config
        self.ledger_store = ledger_store
        self.stats_store = stats_store
        self.billing_client = billing_client
        self.reconciler = BillingStatusReconciler(
            client=billing_client,
            feature_id=config.feature_id,
            free_limit=config.free_message_limit,
        )
        self.reservations = ReservationManager(
            store=ledger_store,
            reconciler=self.reconciler,
            free_limit=config.free_message_limit,
        )
        self.aggregates = AggregateCounterMaintainer(store=stats_store, key=config.stats_key)
        logger.info(
            f"UsageAccountingService initialized: free_limit={config.free_message_limit}, "
            f"billing_configured={billing_client.configured}"
        )

    @property
    def free_limit(self) -> int:
        return self.config.free_message_limit

    # =========================================================================
    # Usage reads
    # =========================================================================

    async def get_current_user_usage(self, user_id: str) -> Optional[CurrentUsage]:
        """Get usage counters, or None if the user has no ledger yet."""
        ledger = await self.ledger_store.get_ledger(user_id)
        if ledger is None:
            return None
        snapshot = UsageSnapshot.from_record(ledger, self.free_limit, user_id)
        return CurrentUsage(**snapshot.model_dump(exclude={"user_id"}))

    async def get_usage_status(self, user_id: str) -> UsageStatus:
        """
        Get usage counters merged with live billing status.

        Billing failures are reported inside the subscription block and
        never prevent the usage counters from being returned.
        """
        ledger = await self.ledger_store.get_ledger(user_id)
        snapshot = UsageSnapshot.from_record(ledger, self.free_limit, user_id)
        subscription = await self.reconciler.fetch_status(user_id, ledger)
        return UsageStatus(
            usage=CurrentUsage(**snapshot.model_dump(exclude={"user_id"})),
            subscription=subscription,
        )

    def create_status_monitor(self, user_id: str) -> UsageStatusMonitor:
        """Create a monitor that tracks one user's usage status."""
        return UsageStatusMonitor(
            user_id=user_id,
            store=self.ledger_store,
            reconciler=self.reconciler,
            free_limit=self.free_limit,
        )

    def usage_constants(self) -> UsageConstants:
        return UsageConstants(
            free_message_limit=self.free_limit,
            feature_id=self.config.feature_id,
        )

    # =========================================================================
    # Reservations
    # =========================================================================

    async def reserve(self, user_id: str) -> ReservationResult:
        """
        Reserve one AI message.

        Raises:
            QuotaExceededException: If the reservation is denied
        """
        return await self.reservations.reserve(user_id)

    async def complete(
        self,
        user_id: str,
        mode: ReservationMode,
        metadata: Optional[CompletionMetadata] = None,
    ) -> CompletionResult:
        """
        Commit a reservation and, for paid usage, report it to billing.

        A tracking failure is returned as track_error; the commit stands.

        Args:
            user_id: Opaque user identifier
            mode: Mode reported by the matching reserve call
            metadata: Optional provider/model/token details for billing

        Returns:
            CompletionResult
        """
        settlement = await self.reservations.commit(user_id)
        result = CompletionResult(mode=mode, **settlement.model_dump())

        if not settlement.settled or mode != ReservationMode.PAID:
            return result

        track = await self.billing_client.track(
            user_id,
            self.config.feature_id,
            value=1,
            properties=metadata.to_properties() if metadata else None,
        )
        if track.ok:
            result.tracked = True
        else:
            logger.warning(
                f"Paid usage not tracked for user={user_id}: "
                f"[{track.error.code}] {track.error.message}"
            )
            result.track_error = track.error
        return result

    async def release(self, user_id: str) -> ReleaseResult:
        """Release a reservation without charging it."""
        settlement = await self.reservations.release(user_id)
        return ReleaseResult(**settlement.model_dump())

    async def release_stale_reservations(self, user_id: str, older_than: datetime) -> int:
        """
        Release a user's pending reservations while they are still stale.

        The ledger is re-read before every release, so reservations that were
        settled or refreshed after ``older_than`` are left alone.

        Args:
            user_id: Opaque user identifier
            older_than: Reservations last made before this instant are stale

        Returns:
            Number of reservations released
        """
        released = 0
        while True:
            ledger = await self.ledger_store.get_ledger(user_id)
            if (
                ledger is None
                or ledger.pending_messages <= 0
                or ledger.last_reserved_at is None
                or ledger.last_reserved_at >= older_than
            ):
                break
            settlement = await self.reservations.release(user_id)
            if not settlement.settled:
                break
            released += 1
        if released:
            logger.info(f"Released {released} stale reservation(s) for user={user_id}")
        return released

    # =========================================================================
    # Aggregate counters
    # =========================================================================

    async def adjust_user_counts(
        self, total_delta: int, active_delta: Optional[int] = None
    ) -> AggregateStats:
        return await self.aggregates.adjust_counts(total_delta, active_delta)

    async def recompute_user_counts(self) -> AggregateStats:
        return await self.aggregates.recompute_counts()

    async def get_user_counts(self) -> AggregateStats:
        return await self.aggregates.get_counts()

    # =========================================================================
    # Billing passthrough
    # =========================================================================

    async def checkout(
        self, user_id: str, product_id: str, success_url: Optional[str] = None
    ) -> BillingResult:
        """Start a provider checkout; returns the tagged provider result."""
        return await self.billing_client.checkout(user_id, product_id, success_url)

    async def close(self) -> None:
        await self.billing_client.aclose()


def build_usage_service(
    config: Optional[UsageConfig] = None,
    ledger_store: Optional[LedgerStore] = None,
    stats_store: Optional[StatsStore] = None,
    billing_client: Optional[BillingProviderClient] = None,
) -> UsageAccountingService:
    """
    Build a service from config, using the configured stores by default.

    Args:
        config: Usage config (defaults to the environment singleton)
        ledger_store: Ledger store override
        stats_store: Stats store override
        billing_client: Billing client override

    Returns:
        UsageAccountingService
    """
    from pharmacy_usage.storage.config import get_ledger_store, get_stats_store

    config = config or get_usage_config()
    if billing_client is None:
        billing_client = BillingProviderClient(
            secret_key=config.billing_secret_key,
            base_url=config.billing_base_url,
            timeout_seconds=config.billing_timeout_seconds,
            max_attempts=config.billing_max_attempts,
            retry_wait_seconds=config.billing_retry_wait_seconds,
        )
    return UsageAccountingService(
        config=config,
        ledger_store=ledger_store or get_ledger_store(),
        stats_store=stats_store or get_stats_store(),
        billing_client=billing_client,
    )


# Singleton service instance
_service: Optional[UsageAccountingService] = None


def get_usage_service() -> UsageAccountingService:
    """Get the usage service singleton."""
    global _service
    if _service is None:
        _service = build_usage_service()
    return _service


def reset_usage_service() -> None:
    """Reset the service singleton (for testing)."""
    global _service
    _service = None


__all__ = [
    "UsageAccountingService",
    "build_usage_service",
    "get_usage_service",
    "reset_usage_service",
]
