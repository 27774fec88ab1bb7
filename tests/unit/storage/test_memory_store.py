"""Unit tests for the in-memory stores."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from pharmacy_usage.core.usage.schemas import BillingStatus, SubscriptionStatus
from pharmacy_usage.storage.memory import KeyedLocks, MemoryLedgerStore, MemoryStatsStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestMemoryLedgerStore:
    """Tests for MemoryLedgerStore."""

    @pytest.mark.asyncio
    async def test_reserve_applies_within_free_tier(self):
        store = MemoryLedgerStore()

        mutation = await store.reserve("u1", 2, None, NOW)

        assert mutation.applied is True
        assert mutation.record.pending_messages == 1
        assert mutation.record.created_at == NOW
        assert mutation.decision.free_messages_remaining == 2

    @pytest.mark.asyncio
    async def test_reserve_blocked_without_billing(self):
        store = MemoryLedgerStore()
        await store.reserve("u1", 1, None, NOW)

        mutation = await store.reserve("u1", 1, None, NOW)

        assert mutation.applied is False
        assert mutation.decision.generation_blocked is True
        assert mutation.record.pending_messages == 1

    @pytest.mark.asyncio
    async def test_reserve_with_credits_past_free_tier(self):
        store = MemoryLedgerStore()
        await store.reserve("u1", 1, None, NOW)
        billing = BillingStatus(status=SubscriptionStatus.SUBSCRIBED, credit_balance=5)

        mutation = await store.reserve("u1", 1, billing, NOW)

        assert mutation.applied is True
        assert mutation.record.pending_messages == 2

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        store = MemoryLedgerStore()
        await store.reserve("u1", 5, None, NOW)

        record = await store.get_ledger("u1")
        record.pending_messages = 99

        assert (await store.get_ledger("u1")).pending_messages == 1

    @pytest.mark.asyncio
    async def test_settle_without_pending_not_applied(self):
        store = MemoryLedgerStore()

        assert (await store.commit("u1", NOW)).applied is False
        assert (await store.release("u1", NOW)).applied is False
        assert await store.get_ledger("u1") is None

    @pytest.mark.asyncio
    async def test_list_stale_reservations(self):
        store = MemoryLedgerStore()
        await store.reserve("old", 5, None, NOW - timedelta(hours=3))
        await store.reserve("older", 5, None, NOW - timedelta(hours=5))
        await store.reserve("fresh", 5, None, NOW)
        await store.reserve("settled", 5, None, NOW - timedelta(hours=4))
        await store.commit("settled", NOW)

        stale = await store.list_stale_reservations(NOW - timedelta(hours=1))

        assert [r.user_id for r in stale] == ["older", "old"]
        assert len(await store.list_stale_reservations(NOW - timedelta(hours=1), limit=1)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_reserves_serialize_and_free_locks(self):
        store = MemoryLedgerStore()

        await asyncio.gather(
            *(store.reserve(f"u{i % 5}", 10, None, NOW) for i in range(25))
        )

        for i in range(5):
            assert (await store.get_ledger(f"u{i}")).pending_messages == 5
        assert len(store._locks) == 0

    @pytest.mark.asyncio
    async def test_many_users_leave_no_locks_behind(self):
        store = MemoryLedgerStore()

        for i in range(50):
            await store.reserve(f"user-{i}", 10, None, NOW)
            await store.release(f"user-{i}", NOW)

        assert len(store._locks) == 0


class TestMemoryStatsStore:
    """Tests for MemoryStatsStore."""

    @pytest.mark.asyncio
    async def test_profiles(self):
        store = MemoryStatsStore(profiles=["a"])
        store.add_profile("b")
        store.add_profile("b")
        store.remove_profile("a")
        store.remove_profile("missing")

        assert await store.count_profiles() == 1

    @pytest.mark.asyncio
    async def test_adjust_bootstraps_then_applies(self):
        store = MemoryStatsStore(profiles=["a", "b"])

        first = await store.adjust("global", 1, 1, NOW)
        second = await store.adjust("global", 1, 0, NOW)

        assert (first.total_users, first.active_users) == (2, 2)
        assert (second.total_users, second.active_users) == (3, 2)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        store = MemoryStatsStore(profiles=["a"])
        await store.recompute("global", NOW)

        assert await store.get_stats("other") is None


class TestKeyedLocks:
    """Tests for per-key lock bookkeeping."""

    @pytest.mark.asyncio
    async def test_lock_kept_while_waiters_remain(self):
        locks = KeyedLocks()
        order = []
        entered = asyncio.Event()
        finish = asyncio.Event()

        async def first():
            async with locks.hold("u1"):
                entered.set()
                await finish.wait()
                order.append("first")

        async def second():
            async with locks.hold("u1"):
                order.append("second")

        first_task = asyncio.create_task(first())
        await entered.wait()
        second_task = asyncio.create_task(second())
        await asyncio.sleep(0)

        assert len(locks) == 1
        assert order == []

        finish.set()
        await asyncio.gather(first_task, second_task)

        assert order == ["first", "second"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_when_body_raises(self):
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("u1"):
                raise RuntimeError("boom")

        assert len(locks) == 0
