"""
In-memory ledger and stats stores.

Used for local development without PostgreSQL and in tests. Each key has
its own asyncio.Lock so operations for one user are serialized while
different users never contend. Locks are evicted once idle. Records are
copied on the way in and out so callers cannot mutate stored state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set

from pharmacy_usage.core.usage.quota_policy import evaluate_quota
from pharmacy_usage.core.usage.schemas import (
    AggregateStats,
    BillingStatus,
    LedgerMutation,
    LedgerRecord,
)

from .base import LedgerStore, StatsStore

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    One asyncio.Lock per key, dropped again once no task holds or awaits it.

    The holder count is updated without awaiting, so it stays exact on a
    single event loop.
    """

    def __init__(self):
        self._entries: Dict[str, List] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.setdefault(key, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]


class MemoryLedgerStore(LedgerStore):
    """Dictionary-backed usage ledger."""

    def __init__(self):
        self._ledgers: Dict[str, LedgerRecord] = {}
        self._locks = KeyedLocks()

    async def get_ledger(self, user_id: str) -> Optional[LedgerRecord]:
        record = self._ledgers.get(user_id)
        return record.model_copy() if record else None

    async def reserve(
        self,
        user_id: str,
        free_limit: int,
        billing: Optional[BillingStatus],
        now: datetime,
    ) -> LedgerMutation:
        async with self._locks.hold(user_id):
            current = self._ledgers.get(user_id)
            decision = evaluate_quota(current, billing, free_limit)
            if decision.generation_blocked:
                return LedgerMutation(
                    applied=False,
                    record=current.model_copy() if current else None,
                    decision=decision,
                )

            if current is None:
                current = LedgerRecord(user_id=user_id, created_at=now, updated_at=now)
                logger.info(f"Created usage ledger for user={user_id}")

            updated = current.model_copy(
                update={
                    "pending_messages": current.pending_messages + 1,
                    "last_reserved_at": now,
                    "updated_at": now,
                }
            )
            self._ledgers[user_id] = updated
            return LedgerMutation(applied=True, record=updated.model_copy(), decision=decision)

    async def _settle(self, user_id: str, now: datetime, commit: bool) -> LedgerMutation:
        async with self._locks.hold(user_id):
            current = self._ledgers.get(user_id)
            if current is None or current.pending_messages <= 0:
                return LedgerMutation(
                    applied=False,
                    record=current.model_copy() if current else None,
                )

            changes = {
                "pending_messages": max(0, current.pending_messages - 1),
                "updated_at": now,
            }
            if commit:
                changes["messages_used"] = current.messages_used + 1
                changes["last_completed_at"] = now

            updated = current.model_copy(update=changes)
            self._ledgers[user_id] = updated
            return LedgerMutation(applied=True, record=updated.model_copy())

    async def commit(self, user_id: str, now: datetime) -> LedgerMutation:
        return await self._settle(user_id, now, commit=True)

    async def release(self, user_id: str, now: datetime) -> LedgerMutation:
        return await self._settle(user_id, now, commit=False)

    async def list_stale_reservations(
        self, older_than: datetime, limit: int = 100
    ) -> List[LedgerRecord]:
        stale = [
            record
            for record in self._ledgers.values()
            if record.pending_messages > 0
            and record.last_reserved_at is not None
            and record.last_reserved_at < older_than
        ]
        stale.sort(key=lambda record: record.last_reserved_at)
        return [record.model_copy() for record in stale[:limit]]


class MemoryStatsStore(StatsStore):
    """Dictionary-backed aggregate counters with an in-memory profile set."""

    def __init__(self, profiles: Optional[Iterable[str]] = None):
        self._stats: Dict[str, AggregateStats] = {}
        self._profiles: Set[str] = set(profiles or [])
        self._locks = KeyedLocks()

    def add_profile(self, user_id: str) -> None:
        """Register a user profile (stands in for the host application's table)."""
        self._profiles.add(user_id)

    def remove_profile(self, user_id: str) -> None:
        self._profiles.discard(user_id)

    async def count_profiles(self) -> int:
        return len(self._profiles)

    async def get_stats(self, key: str) -> Optional[AggregateStats]:
        stats = self._stats.get(key)
        return stats.model_copy() if stats else None

    async def adjust(
        self, key: str, total_delta: int, active_delta: int, now: datetime
    ) -> AggregateStats:
        async with self._locks.hold(key):
            current = self._stats.get(key)
            if current is None:
                total = len(self._profiles)
                stats = AggregateStats(key=key, total_users=total, active_users=total, updated_at=now)
                logger.info(f"Bootstrapped dashboard stats '{key}' from profiles: total={total}")
            else:
                stats = current.model_copy(
                    update={
                        "total_users": max(0, current.total_users + total_delta),
                        "active_users": max(0, current.active_users + active_delta),
                        "updated_at": now,
                    }
                )
            self._stats[key] = stats
            return stats.model_copy()

    async def recompute(self, key: str, now: datetime) -> AggregateStats:
        async with self._locks.hold(key):
            total = len(self._profiles)
            stats = AggregateStats(key=key, total_users=total, active_users=total, updated_at=now)
            self._stats[key] = stats
            logger.info(f"Recomputed dashboard stats '{key}': total={total}")
            return stats.model_copy()
