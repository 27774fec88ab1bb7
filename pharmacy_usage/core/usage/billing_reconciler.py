"""
Billing status reconciliation.

Turns raw provider replies into a BillingStatus that usage code can act
on. Provider trouble degrades to "unknown" (or "needs_upgrade" once the
free tier is spent) rather than failing the caller.
"""

import logging
from typing import Optional

from .billing_client import BillingProviderClient
from .quota_policy import calculate_usage_metrics
from .schemas import BillingStatus, LedgerRecord, SubscriptionStatus

logger = logging.getLogger(__name__)


class BillingStatusReconciler:
    """Fetches and classifies a user's live billing status."""

    def __init__(self, client: BillingProviderClient, feature_id: str, free_limit: int):
        self.client = client
        self.feature_id = feature_id
        self.free_limit = free_limit

    @property
    def configured(self) -> bool:
        return self.client.configured

    def _free_tier_exhausted(self, ledger: Optional[LedgerRecord]) -> bool:
        if ledger is None:
            return self.free_limit <= 0
        metrics = calculate_usage_metrics(
            ledger.messages_used, ledger.pending_messages, self.free_limit
        )
        return metrics["is_free_tier_exhausted"]

    async def fetch_status(
        self, user_id: str, ledger: Optional[LedgerRecord] = None
    ) -> BillingStatus:
        """
        Fetch and classify billing status. Never raises.

        Args:
            user_id: Opaque user identifier
            ledger: The user's ledger, used to decide whether a failed or
                negative check means the user must upgrade

        Returns:
            BillingStatus
        """
        if not self.configured:
            return BillingStatus(status=SubscriptionStatus.NOT_CONFIGURED, configured=False)

        exhausted = self._free_tier_exhausted(ledger)
        result = await self.client.check_usage_status(user_id, self.feature_id)

        if not result.ok:
            error = result.error
            logger.warning(
                f"Billing check failed for user={user_id}: [{error.code}] {error.message}"
            )
            # A provider outage says nothing about the user's plan
            status = (
                SubscriptionStatus.NEEDS_UPGRADE
                if exhausted and not error.transient
                else SubscriptionStatus.UNKNOWN
            )
            return BillingStatus(status=status, last_check_error=error)

        data = result.data
        if data.allowed:
            return BillingStatus(
                status=SubscriptionStatus.SUBSCRIBED,
                credit_balance=data.balance,
                is_unlimited=data.unlimited,
            )

        if exhausted:
            return BillingStatus(status=SubscriptionStatus.NEEDS_UPGRADE)
        return BillingStatus(status=SubscriptionStatus.UNKNOWN)

