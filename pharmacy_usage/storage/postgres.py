"""PostgreSQL-backed stores delegating to the repository layer."""

from datetime import datetime
from typing import List, Optional

from pharmacy_usage.core.usage.schemas import (
    AggregateStats,
    BillingStatus,
    LedgerMutation,
    LedgerRecord,
)
from pharmacy_usage.db.repositories import ledger_repository, stats_repository

from .base import LedgerStore, StatsStore


class PostgresLedgerStore(LedgerStore):
    """Usage ledger stored in the ai_message_usage table."""

    async def get_ledger(self, user_id: str) -> Optional[LedgerRecord]:
        return await ledger_repository.get_ledger(user_id)

    async def reserve(
        self,
        user_id: str,
        free_limit: int,
        billing: Optional[BillingStatus],
        now: datetime,
    ) -> LedgerMutation:
        return await ledger_repository.reserve_usage(user_id, free_limit, billing, now)

    async def commit(self, user_id: str, now: datetime) -> LedgerMutation:
        return await ledger_repository.commit_usage(user_id, now)

    async def release(self, user_id: str, now: datetime) -> LedgerMutation:
        return await ledger_repository.release_usage(user_id, now)

    async def list_stale_reservations(
        self, older_than: datetime, limit: int = 100
    ) -> List[LedgerRecord]:
        return await ledger_repository.list_stale_reservations(older_than, limit)


class PostgresStatsStore(StatsStore):
    """Aggregate counters stored in the dashboard_stats table."""

    async def get_stats(self, key: str) -> Optional[AggregateStats]:
        return await stats_repository.get_stats(key)

    async def adjust(
        self, key: str, total_delta: int, active_delta: int, now: datetime
    ) -> AggregateStats:
        return await stats_repository.adjust_stats(key, total_delta, active_delta, now)

    async def recompute(self, key: str, now: datetime) -> AggregateStats:
        return await stats_repository.recompute_stats(key, now)

    async def count_profiles(self) -> int:
        return await stats_repository.count_profiles()
