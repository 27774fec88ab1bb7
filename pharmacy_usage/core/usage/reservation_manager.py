"""
Reservation manager for metered AI messages.

A message is reserved before the AI call starts and then either committed
(the call produced a reply) or released (it failed). Reservations count
against the free tier while in flight so concurrent requests cannot
overshoot it.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pharmacy_usage.storage.base import LedgerStore
from pharmacy_usage.utils.time_utils import utc_now

from .billing_reconciler import BillingStatusReconciler
from .exceptions import (
    QuotaExceededException,
    REASON_BILLING_NOT_CONFIGURED,
)
from .quota_policy import denial_reason
from .schemas import (
    BillingStatus,
    LedgerMutation,
    ReservationMode,
    ReservationResult,
    SettlementResult,
    UsageSnapshot,
)

logger = logging.getLogger(__name__)

NO_PENDING_RESERVATION = "no_pending_reservation"


class ReservationManager:
    """Reserve, commit and release AI message usage for a user."""

    def __init__(
        self,
        store: LedgerStore,
        reconciler: BillingStatusReconciler,
        free_limit: int,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.reconciler = reconciler
        self.free_limit = free_limit
        self.clock = clock

    def _snapshot(self, mutation: LedgerMutation, user_id: str) -> UsageSnapshot:
        return UsageSnapshot.from_record(mutation.record, self.free_limit, user_id)

    def _deny(
        self,
        user_id: str,
        mutation: LedgerMutation,
        reason: str,
        billing: Optional[BillingStatus] = None,
    ) -> QuotaExceededException:
        snapshot = self._snapshot(mutation, user_id)
        error = billing.last_check_error if billing else None
        logger.info(
            f"Reservation denied for user={user_id}: reason={reason} "
            f"used={snapshot.messages_used} pending={snapshot.pending_messages}"
        )
        return QuotaExceededException(
            user_id=user_id,
            reason=reason,
            messages_used=snapshot.messages_used,
            pending_messages=snapshot.pending_messages,
            free_limit=self.free_limit,
            billing_error=error.model_dump() if error else None,
        )

    async def reserve(self, user_id: str) -> ReservationResult:
        """
        Reserve one AI message.

        Tries the free tier first without contacting billing. Once the free
        tier is spent, billing status is fetched outside the store's atomic
        section and the reservation is retried as a paid one; the policy is
        re-evaluated against the ledger at that point.

        Args:
            user_id: Opaque user identifier

        Returns:
            ReservationResult with the admitting mode and usage snapshot

        Raises:
            QuotaExceededException: If the policy blocks the reservation
        """
        mutation = await self.store.reserve(user_id, self.free_limit, None, self.clock())
        if mutation.applied:
            return ReservationResult(mode=ReservationMode.FREE, usage=self._snapshot(mutation, user_id))

        if not self.reconciler.configured:
            raise self._deny(user_id, mutation, REASON_BILLING_NOT_CONFIGURED)

        billing = await self.reconciler.fetch_status(user_id, mutation.record)
        paid = await self.store.reserve(user_id, self.free_limit, billing, self.clock())
        if paid.applied:
            mode = paid.decision.mode if paid.decision else ReservationMode.PAID
            return ReservationResult(mode=mode, usage=self._snapshot(paid, user_id))

        raise self._deny(user_id, paid, denial_reason(billing), billing)

    async def commit(self, user_id: str) -> SettlementResult:
        """
        Commit one pending reservation as a used message.

        Duplicate or unmatched calls leave the ledger untouched and are
        reported with settled=False.
        """
        mutation = await self.store.commit(user_id, self.clock())
        if not mutation.applied:
            logger.debug(f"Commit ignored for user={user_id}: {NO_PENDING_RESERVATION}")
            return SettlementResult(
                settled=False,
                reason=NO_PENDING_RESERVATION,
                usage=self._snapshot(mutation, user_id),
            )
        return SettlementResult(settled=True, usage=self._snapshot(mutation, user_id))

    async def release(self, user_id: str) -> SettlementResult:
        """
        Release one pending reservation without charging it.

        Duplicate or unmatched calls leave the ledger untouched and are
        reported with settled=False.
        """
        mutation = await self.store.release(user_id, self.clock())
        if not mutation.applied:
            logger.debug(f"Release ignored for user={user_id}: {NO_PENDING_RESERVATION}")
            return SettlementResult(
                settled=False,
                reason=NO_PENDING_RESERVATION,
                usage=self._snapshot(mutation, user_id),
            )
        return SettlementResult(settled=True, usage=self._snapshot(mutation, user_id))


__all__ = ["ReservationManager", "NO_PENDING_RESERVATION"]
