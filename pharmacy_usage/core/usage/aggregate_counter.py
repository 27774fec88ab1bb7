"""
System-wide user count aggregate.

The host application calls adjust_counts on every user create/delete.
The counters live in one keyed row so dashboards read a single record
instead of scanning profiles; recompute_counts rebuilds it when it drifts.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pharmacy_usage.storage.base import StatsStore
from pharmacy_usage.utils.time_utils import utc_now

from .schemas import AggregateStats

logger = logging.getLogger(__name__)


class AggregateCounterMaintainer:
    """Maintains the user count aggregate by deltas with full recompute."""

    def __init__(
        self,
        store: StatsStore,
        key: str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.key = key
        self.clock = clock

    async def adjust_counts(
        self, total_delta: int, active_delta: Optional[int] = None
    ) -> AggregateStats:
        """
        Apply a user lifecycle delta.

        Args:
            total_delta: Change in total users
            active_delta: Change in active users; defaults to total_delta

        Returns:
            Counters after the update. If the aggregate did not exist it is
            bootstrapped from the profile count and the delta is not applied.
        """
        if active_delta is None:
            active_delta = total_delta
        stats = await self.store.adjust(self.key, total_delta, active_delta, self.clock())
        logger.debug(
            f"Adjusted user counts by total={total_delta:+d} active={active_delta:+d}: "
            f"total_users={stats.total_users} active_users={stats.active_users}"
        )
        return stats

    async def recompute_counts(self) -> AggregateStats:
        """Rebuild the aggregate from a full profile count. Idempotent."""
        return await self.store.recompute(self.key, self.clock())

    async def get_counts(self) -> AggregateStats:
        """
        Read the aggregate for dashboards.

        Returns zero counters without creating the row when it has not
        been bootstrapped yet.
        """
        stats = await self.store.get_stats(self.key)
        if stats is None:
            return AggregateStats(key=self.key)
        return stats
