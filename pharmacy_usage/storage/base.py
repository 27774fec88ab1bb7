"""Abstract base classes for ledger and aggregate stores."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pharmacy_usage.core.usage.schemas import (
    AggregateStats,
    BillingStatus,
    LedgerMutation,
    LedgerRecord,
)


class LedgerStore(ABC):
    """Per-user usage ledger with atomic read-modify-write per user."""

    @abstractmethod
    async def get_ledger(self, user_id: str) -> Optional[LedgerRecord]:
        """
        Read a user's ledger.

        Args:
            user_id: Opaque user identifier

        Returns:
            LedgerRecord, or None if the user has never reserved
        """
        pass

    @abstractmethod
    async def reserve(
        self,
        user_id: str,
        free_limit: int,
        billing: Optional[BillingStatus],
        now: datetime,
    ) -> LedgerMutation:
        """
        Atomically evaluate the quota policy and reserve one message.

        The ledger is created with zero counters on first use. When the
        policy blocks, nothing is written and the mutation is returned with
        applied=False and the decision that blocked it.

        Args:
            user_id: Opaque user identifier
            free_limit: Size of the free tier
            billing: Billing facts for a paid attempt, or None for a free attempt
            now: Reservation timestamp

        Returns:
            LedgerMutation
        """
        pass

    @abstractmethod
    async def commit(self, user_id: str, now: datetime) -> LedgerMutation:
        """
        Atomically move one pending reservation to messages_used.

        Returns applied=False without writing when nothing is pending.
        """
        pass

    @abstractmethod
    async def release(self, user_id: str, now: datetime) -> LedgerMutation:
        """
        Atomically drop one pending reservation.

        Returns applied=False without writing when nothing is pending.
        """
        pass

    @abstractmethod
    async def list_stale_reservations(
        self, older_than: datetime, limit: int = 100
    ) -> List[LedgerRecord]:
        """
        List ledgers with pending reservations last made before a cutoff.

        Args:
            older_than: Cutoff timestamp
            limit: Maximum number of ledgers

        Returns:
            Ledgers ordered by oldest reservation first
        """
        pass


class StatsStore(ABC):
    """Keyed aggregate counters derived from user profiles."""

    @abstractmethod
    async def get_stats(self, key: str) -> Optional[AggregateStats]:
        """Read counters, or None if the row has not been bootstrapped."""
        pass

    @abstractmethod
    async def adjust(
        self, key: str, total_delta: int, active_delta: int, now: datetime
    ) -> AggregateStats:
        """
        Apply deltas with clamping at zero.

        A missing row is bootstrapped from the profile count instead.
        """
        pass

    @abstractmethod
    async def recompute(self, key: str, now: datetime) -> AggregateStats:
        """Overwrite counters from a full profile count."""
        pass

    @abstractmethod
    async def count_profiles(self) -> int:
        """Count user profiles."""
        pass
