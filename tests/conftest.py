"""Shared test fixtures and configuration."""

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from pharmacy_usage.core.usage.config import UsageConfig, reset_usage_config
from pharmacy_usage.core.usage.schemas import (
    BillingResult,
    CheckoutData,
    TrackData,
    UsageCheckData,
)
from pharmacy_usage.core.usage.service import UsageAccountingService, reset_usage_service
from pharmacy_usage.storage.config import reset_stores
from pharmacy_usage.storage.memory import MemoryLedgerStore, MemoryStatsStore


# =============================================================================
# Singleton Reset
# =============================================================================

@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset config, store and service singletons before and after each test."""
    reset_usage_config()
    reset_stores()
    reset_usage_service()
    yield
    reset_usage_config()
    reset_stores()
    reset_usage_service()


@pytest.fixture
def clean_env(monkeypatch):
    """Clear environment variables that change usage behaviour."""
    for key in list(os.environ):
        if key.startswith("USAGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("AUTUMN_SECRET_KEY", raising=False)
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)


# =============================================================================
# Billing Fakes
# =============================================================================

class FakeBillingClient:
    """Stand-in for BillingProviderClient that records calls."""

    def __init__(
        self,
        configured: bool = True,
        check_result: Optional[BillingResult] = None,
        track_result: Optional[BillingResult] = None,
        checkout_result: Optional[BillingResult] = None,
    ):
        self.configured = configured
        self.check_result = check_result or BillingResult.success(UsageCheckData(allowed=False))
        self.track_result = track_result or BillingResult.success(TrackData(id="evt_1"))
        self.checkout_result = checkout_result or BillingResult.success(
            CheckoutData(url="https://billing.example/checkout/1")
        )
        self.check_calls: List[Dict[str, Any]] = []
        self.track_calls: List[Dict[str, Any]] = []
        self.checkout_calls: List[Dict[str, Any]] = []
        self.closed = False

    async def check_usage_status(self, user_id: str, feature_id: str) -> BillingResult:
        self.check_calls.append({"user_id": user_id, "feature_id": feature_id})
        return self.check_result

    async def track(self, user_id, feature_id, value=1, properties=None) -> BillingResult:
        self.track_calls.append(
            {"user_id": user_id, "feature_id": feature_id, "value": value, "properties": properties}
        )
        return self.track_result

    async def checkout(self, user_id, product_id, success_url=None) -> BillingResult:
        self.checkout_calls.append(
            {"user_id": user_id, "product_id": product_id, "success_url": success_url}
        )
        return self.checkout_result

    async def aclose(self) -> None:
        self.closed = True


def allowed_check(balance: Optional[int] = None, unlimited: bool = False) -> BillingResult:
    return BillingResult.success(
        UsageCheckData(allowed=True, feature_id="messages", balance=balance, unlimited=unlimited)
    )


def denied_check() -> BillingResult:
    return BillingResult.success(UsageCheckData(allowed=False, feature_id="messages", balance=0))


def network_error() -> BillingResult:
    return BillingResult.failure(
        message="Could not reach billing provider: connection refused",
        code="BILLING_NETWORK_ERROR",
        transient=True,
    )


# =============================================================================
# Core Fixtures
# =============================================================================

class FixedClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def usage_config():
    """Config with the default free tier and the memory backend."""
    return UsageConfig(store_backend="memory", billing_secret_key="sk_test", admin_api_key=None)


@pytest.fixture
def ledger_store():
    return MemoryLedgerStore()


@pytest.fixture
def stats_store():
    return MemoryStatsStore()


@pytest.fixture
def billing_client():
    return FakeBillingClient()


@pytest.fixture
def service(usage_config, ledger_store, stats_store, billing_client):
    return UsageAccountingService(
        config=usage_config,
        ledger_store=ledger_store,
        stats_store=stats_store,
        billing_client=billing_client,
    )


async def consume(service: UsageAccountingService, user_id: str, count: int) -> None:
    """Reserve and complete ``count`` free messages."""
    for _ in range(count):
        result = await service.reserve(user_id)
        await service.complete(user_id, result.mode)


# =============================================================================
# Integration Test Markers
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION_TESTS is set."""
    if not os.getenv("RUN_INTEGRATION_TESTS"):
        skip_integration = pytest.mark.skip(
            reason="Set RUN_INTEGRATION_TESTS=1 to run integration tests"
        )
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)
