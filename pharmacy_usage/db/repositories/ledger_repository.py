"""Usage ledger repository - atomic reserve/commit/release on ai_message_usage.

Every mutation runs in a single transaction. Rows are created lazily with
INSERT ... ON CONFLICT DO NOTHING and locked with SELECT ... FOR UPDATE, so
concurrent calls for the same user serialize on the row while different
users never contend.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pharmacy_usage.core.usage.exceptions import UsageTrackingError
from pharmacy_usage.core.usage.quota_policy import evaluate_quota
from pharmacy_usage.core.usage.schemas import BillingStatus, LedgerMutation, LedgerRecord

from ..connection import db
from ..models import UsageLedgerModel
from ..utils import with_db_retry

logger = logging.getLogger(__name__)


def _require_session(session: Optional[AsyncSession]) -> AsyncSession:
    if session is None:
        raise UsageTrackingError(
            "Database is disabled; use the memory store backend instead",
            details={"table": UsageLedgerModel.__tablename__},
        )
    return session


async def _lock_ledger(session: AsyncSession, user_id: str) -> Optional[UsageLedgerModel]:
    stmt = (
        select(UsageLedgerModel)
        .where(UsageLedgerModel.user_id == user_id)
        .with_for_update()
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# =============================================================================
# READS
# =============================================================================


@with_db_retry
async def get_ledger(user_id: str) -> Optional[LedgerRecord]:
    """
    Get the usage ledger for a user.

    Args:
        user_id: Opaque user identifier

    Returns:
        LedgerRecord or None if the user has never reserved
    """
    async with db.session() as session:
        session = _require_session(session)
        stmt = select(UsageLedgerModel).where(UsageLedgerModel.user_id == user_id)
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        return LedgerRecord.model_validate(row) if row else None


@with_db_retry
async def list_stale_reservations(older_than: datetime, limit: int = 100) -> List[LedgerRecord]:
    """
    List ledgers holding reservations last made before a cutoff.

    Args:
        older_than: Reservations made before this instant are stale
        limit: Maximum rows to return

    Returns:
        Ledgers with pending_messages > 0, oldest reservation first
    """
    async with db.session() as session:
        session = _require_session(session)
        stmt = (
            select(UsageLedgerModel)
            .where(
                UsageLedgerModel.pending_messages > 0,
                UsageLedgerModel.last_reserved_at < older_than,
            )
            .order_by(UsageLedgerModel.last_reserved_at)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [LedgerRecord.model_validate(row) for row in result.scalars().all()]


# =============================================================================
# MUTATIONS
# =============================================================================


@with_db_retry
async def reserve_usage(
    user_id: str,
    free_limit: int,
    billing: Optional[BillingStatus],
    now: datetime,
) -> LedgerMutation:
    """
    Reserve one AI message if the quota policy allows it.

    The policy is evaluated while the ledger row is locked. A denied
    reservation leaves the database untouched, including not creating a
    row for a first-time user.

    Args:
        user_id: Opaque user identifier
        free_limit: Size of the free tier
        billing: Billing facts for a paid attempt, or None for a free attempt
        now: Reservation timestamp

    Returns:
        LedgerMutation with applied=False and the decision when blocked
    """
    async with db.session() as session:
        session = _require_session(session)

        row = await _lock_ledger(session, user_id)
        if row is None:
            decision = evaluate_quota(None, billing, free_limit)
            if decision.generation_blocked:
                return LedgerMutation(applied=False, decision=decision)

            insert_stmt = (
                pg_insert(UsageLedgerModel)
                .values(user_id=user_id, messages_used=0, pending_messages=0, created_at=now, updated_at=now)
                .on_conflict_do_nothing(index_elements=[UsageLedgerModel.user_id])
            )
            created = await session.execute(insert_stmt)
            if created.rowcount:
                logger.info(f"Created usage ledger for user={user_id}")

            row = await _lock_ledger(session, user_id)

        record = LedgerRecord.model_validate(row)
        decision = evaluate_quota(record, billing, free_limit)
        if decision.generation_blocked:
            return LedgerMutation(applied=False, record=record, decision=decision)

        row.pending_messages = row.pending_messages + 1
        row.last_reserved_at = now
        row.updated_at = now
        await session.flush()

        return LedgerMutation(applied=True, record=LedgerRecord.model_validate(row), decision=decision)


async def _settle(user_id: str, now: datetime, commit: bool) -> LedgerMutation:
    async with db.session() as session:
        session = _require_session(session)

        values = {
            "pending_messages": func.greatest(UsageLedgerModel.pending_messages - 1, 0),
            "updated_at": now,
        }
        if commit:
            values["messages_used"] = UsageLedgerModel.messages_used + 1
            values["last_completed_at"] = now

        stmt = (
            update(UsageLedgerModel)
            .where(
                UsageLedgerModel.user_id == user_id,
                UsageLedgerModel.pending_messages > 0,
            )
            .values(**values)
            .returning(UsageLedgerModel)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            return LedgerMutation(applied=True, record=LedgerRecord.model_validate(row))

        current = await session.execute(
            select(UsageLedgerModel).where(UsageLedgerModel.user_id == user_id)
        )
        existing = current.scalar_one_or_none()
        return LedgerMutation(
            applied=False,
            record=LedgerRecord.model_validate(existing) if existing else None,
        )


@with_db_retry
async def commit_usage(user_id: str, now: datetime) -> LedgerMutation:
    """
    Convert one pending reservation into a committed message.

    A ledger with nothing pending is left untouched and reported with
    applied=False.

    Args:
        user_id: Opaque user identifier
        now: Completion timestamp

    Returns:
        LedgerMutation
    """
    return await _settle(user_id, now, commit=True)


@with_db_retry
async def release_usage(user_id: str, now: datetime) -> LedgerMutation:
    """
    Drop one pending reservation without counting it as used.

    Args:
        user_id: Opaque user identifier
        now: Release timestamp

    Returns:
        LedgerMutation
    """
    return await _settle(user_id, now, commit=False)
