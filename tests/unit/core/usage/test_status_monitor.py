"""Unit tests for UsageStatusMonitor."""

import asyncio

import pytest

from pharmacy_usage.core.usage.schemas import SubscriptionStatus

from conftest import allowed_check, consume, network_error

USER = "user-1"


class TestLoadAndRefresh:
    """Tests for load, refresh and current."""

    @pytest.mark.asyncio
    async def test_current_is_none_before_load(self, service):
        monitor = service.create_status_monitor(USER)

        assert monitor.current() is None
        assert monitor.loaded is False

    @pytest.mark.asyncio
    async def test_load_merges_snapshots(self, service, billing_client):
        await consume(service, USER, 4)
        monitor = service.create_status_monitor(USER)

        status = await monitor.load()

        assert status.usage.messages_used == 4
        assert status.usage.free_messages_remaining == 6
        assert status.subscription.status == SubscriptionStatus.UNKNOWN
        assert len(billing_client.check_calls) == 1

    @pytest.mark.asyncio
    async def test_refresh_always_refetches_billing(self, service, billing_client):
        monitor = service.create_status_monitor(USER)
        await monitor.load()
        billing_client.check_result = allowed_check(balance=50)

        status = await monitor.refresh()

        assert status.subscription.status == SubscriptionStatus.SUBSCRIBED
        assert status.subscription.credit_balance == 50
        assert len(billing_client.check_calls) == 2

    @pytest.mark.asyncio
    async def test_billing_error_keeps_usage_visible(self, service, billing_client):
        billing_client.check_result = network_error()
        await consume(service, USER, 2)
        monitor = service.create_status_monitor(USER)

        status = await monitor.load()

        assert status.usage.messages_used == 2
        assert status.subscription.last_check_error.code == "BILLING_NETWORK_ERROR"


class TestPoll:
    """Tests for change-driven polling."""

    @pytest.mark.asyncio
    async def test_poll_without_change_skips_billing(self, service, billing_client):
        monitor = service.create_status_monitor(USER)
        await monitor.load()

        changed = await monitor.poll()

        assert changed is False
        assert len(billing_client.check_calls) == 1

    @pytest.mark.asyncio
    async def test_poll_after_ledger_change_refetches(self, service, billing_client):
        monitor = service.create_status_monitor(USER)
        await monitor.load()
        await service.reserve(USER)

        changed = await monitor.poll()

        assert changed is True
        assert monitor.current().usage.pending_messages == 1
        assert len(billing_client.check_calls) == 2

    @pytest.mark.asyncio
    async def test_poll_before_load_loads(self, service):
        monitor = service.create_status_monitor(USER)

        assert await monitor.poll() is True
        assert monitor.loaded is True


class TestListeners:
    """Tests for subscribe and notifications."""

    @pytest.mark.asyncio
    async def test_listener_receives_updates_until_unsubscribed(self, service):
        monitor = service.create_status_monitor(USER)
        received = []
        unsubscribe = monitor.subscribe(received.append)

        await monitor.load()
        await service.reserve(USER)
        await monitor.poll()
        unsubscribe()
        await service.release(USER)
        await monitor.poll()

        assert [s.usage.pending_messages for s in received] == [0, 1]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_others(self, service):
        monitor = service.create_status_monitor(USER)
        received = []

        def broken(status):
            raise RuntimeError("listener bug")

        monitor.subscribe(broken)
        monitor.subscribe(received.append)

        await monitor.load()

        assert len(received) == 1


class TestRun:
    """Tests for the polling loop."""

    @pytest.mark.asyncio
    async def test_run_stops_when_event_set(self, service):
        monitor = service.create_status_monitor(USER)
        stop = asyncio.Event()

        task = asyncio.create_task(monitor.run(interval_seconds=0.01, stop=stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert monitor.loaded is True
