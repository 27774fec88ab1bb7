"""
Live usage status for one user.

Holds two independent snapshots, the ledger and the billing status, and
merges them only when read. Billing is re-fetched on initial load, when
the ledger changes, and on an explicit refresh; there is no time-based
billing cache.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from pharmacy_usage.storage.base import LedgerStore

from .billing_reconciler import BillingStatusReconciler
from .schemas import BillingStatus, CurrentUsage, LedgerRecord, UsageSnapshot, UsageStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[UsageStatus], None]


def _ledger_fingerprint(ledger: Optional[LedgerRecord]) -> tuple:
    if ledger is None:
        return ()
    return (
        ledger.messages_used,
        ledger.pending_messages,
        ledger.last_reserved_at,
        ledger.last_completed_at,
    )


class UsageStatusMonitor:
    """Tracks a user's ledger and billing status and notifies listeners on change."""

    def __init__(
        self,
        user_id: str,
        store: LedgerStore,
        reconciler: BillingStatusReconciler,
        free_limit: int,
    ):
        self.user_id = user_id
        self.store = store
        self.reconciler = reconciler
        self.free_limit = free_limit

        self._ledger: Optional[LedgerRecord] = None
        self._billing: Optional[BillingStatus] = None
        self._loaded = False
        self._listeners: List[StatusListener] = []

    @property
    def loaded(self) -> bool:
        return self._loaded

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """
        Register a listener called with the merged status after each change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        status = self.current()
        if status is None:
            return
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Usage status listener failed for user={self.user_id}: {e}")

    async def _fetch_billing(self) -> None:
        self._billing = await self.reconciler.fetch_status(self.user_id, self._ledger)

    async def load(self) -> UsageStatus:
        """Initial load of both snapshots."""
        self._ledger = await self.store.get_ledger(self.user_id)
        await self._fetch_billing()
        self._loaded = True
        self._notify()
        return self.current()

    async def refresh(self) -> UsageStatus:
        """Manually re-fetch both snapshots."""
        return await self.load()

    async def poll(self) -> bool:
        """
        Re-read the ledger and re-fetch billing if it changed.

        Returns:
            True if the ledger changed since the last read
        """
        if not self._loaded:
            await self.load()
            return True

        ledger = await self.store.get_ledger(self.user_id)
        if _ledger_fingerprint(ledger) == _ledger_fingerprint(self._ledger):
            return False

        self._ledger = ledger
        await self._fetch_billing()
        self._notify()
        return True

    async def run(self, interval_seconds: float, stop: Optional[asyncio.Event] = None) -> None:
        """Poll until ``stop`` is set or the task is cancelled."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.poll()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue

    def current(self) -> Optional[UsageStatus]:
        """Merged view of the latest snapshots, or None before the first load."""
        if not self._loaded:
            return None
        snapshot = UsageSnapshot.from_record(self._ledger, self.free_limit, self.user_id)
        return UsageStatus(
            usage=CurrentUsage(**snapshot.model_dump(exclude={"user_id"})),
            subscription=self._billing or BillingStatus(),
        )
