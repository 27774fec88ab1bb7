"""Aggregate stats repository - keyed dashboard counters.

The singleton row is locked with SELECT ... FOR UPDATE for incremental
adjustments. A missing row is bootstrapped from the user_profiles count
rather than from zero.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pharmacy_usage.core.usage.exceptions import UsageTrackingError
from pharmacy_usage.core.usage.schemas import AggregateStats

from ..connection import db
from ..models import DashboardStatsModel, UserProfileModel
from ..utils import with_db_retry

logger = logging.getLogger(__name__)


def _require_session(session: Optional[AsyncSession]) -> AsyncSession:
    if session is None:
        raise UsageTrackingError(
            "Database is disabled; use the memory store backend instead",
            details={"table": DashboardStatsModel.__tablename__},
        )
    return session


async def _count_profiles(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(UserProfileModel))
    return int(result.scalar_one() or 0)


@with_db_retry
async def count_profiles() -> int:
    """Count rows in user_profiles."""
    async with db.session() as session:
        session = _require_session(session)
        return await _count_profiles(session)


@with_db_retry
async def get_stats(key: str) -> Optional[AggregateStats]:
    """
    Read aggregate counters.

    Args:
        key: Stats row key

    Returns:
        AggregateStats or None if the row has not been bootstrapped yet
    """
    async with db.session() as session:
        session = _require_session(session)
        result = await session.execute(
            select(DashboardStatsModel).where(DashboardStatsModel.key == key)
        )
        row = result.scalar_one_or_none()
        return AggregateStats.model_validate(row) if row else None


@with_db_retry
async def adjust_stats(
    key: str,
    total_delta: int,
    active_delta: int,
    now: datetime,
) -> AggregateStats:
    """
    Apply deltas to the aggregate counters, clamping at zero.

    When the row does not exist it is bootstrapped from the profile count
    and the deltas are not applied on top, since the count already
    reflects the change that triggered the call. If another writer creates
    the row first, the deltas are applied to that row instead.

    Args:
        key: Stats row key
        total_delta: Change to total_users
        active_delta: Change to active_users
        now: Update timestamp

    Returns:
        Counters after the update
    """
    async with db.session() as session:
        session = _require_session(session)

        lock_stmt = (
            select(DashboardStatsModel)
            .where(DashboardStatsModel.key == key)
            .with_for_update()
        )
        row = (await session.execute(lock_stmt)).scalar_one_or_none()

        if row is None:
            total = await _count_profiles(session)
            insert_stmt = (
                pg_insert(DashboardStatsModel)
                .values(key=key, total_users=total, active_users=total, updated_at=now)
                .on_conflict_do_nothing(index_elements=[DashboardStatsModel.key])
            )
            created = await session.execute(insert_stmt)
            if created.rowcount:
                logger.info(f"Bootstrapped dashboard stats '{key}' from profiles: total={total}")
                return AggregateStats(key=key, total_users=total, active_users=total, updated_at=now)

            row = (await session.execute(lock_stmt)).scalar_one()

        row.total_users = max(0, row.total_users + total_delta)
        row.active_users = max(0, row.active_users + active_delta)
        row.updated_at = now
        await session.flush()

        return AggregateStats.model_validate(row)


@with_db_retry
async def recompute_stats(key: str, now: datetime) -> AggregateStats:
    """
    Overwrite the aggregate counters from a full profile count.

    Args:
        key: Stats row key
        now: Update timestamp

    Returns:
        Recomputed counters
    """
    async with db.session() as session:
        session = _require_session(session)

        total = await _count_profiles(session)
        stmt = pg_insert(DashboardStatsModel).values(
            key=key, total_users=total, active_users=total, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DashboardStatsModel.key],
            set_={
                "total_users": stmt.excluded.total_users,
                "active_users": stmt.excluded.active_users,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await session.execute(stmt)

        logger.info(f"Recomputed dashboard stats '{key}': total={total}")
        return AggregateStats(key=key, total_users=total, active_users=total, updated_at=now)
