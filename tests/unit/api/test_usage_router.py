"""Unit tests for the usage API router."""

import pytest
from fastapi.testclient import TestClient

from pharmacy_usage.api.app import create_app
from pharmacy_usage.api.dependencies import get_service
from pharmacy_usage.core.usage.schemas import BillingResult

from conftest import allowed_check, consume, network_error

TEST_USER_ID = "user-123"
BASE = "/api/v1/usage"


@pytest.fixture
def client(service):
    """Test client wired to the in-memory usage service."""
    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-User-ID": TEST_USER_ID}


class TestAuthentication:
    """Tests for the X-User-ID requirement."""

    def test_missing_user_header(self, client):
        response = client.get(f"{BASE}/current")

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_blank_user_header(self, client):
        response = client.post(f"{BASE}/reserve", headers={"X-User-ID": "   "})

        assert response.status_code == 401


class TestReadEndpoints:
    """Tests for current, status and constants."""

    def test_current_before_first_reservation(self, client, headers):
        response = client.get(f"{BASE}/current", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "usage": None}

    def test_current_after_reserve(self, client, headers):
        client.post(f"{BASE}/reserve", headers=headers)

        data = client.get(f"{BASE}/current", headers=headers).json()

        assert data["usage"]["pending_messages"] == 1
        assert data["usage"]["free_messages_remaining"] == 9

    @pytest.mark.asyncio
    async def test_status_reports_billing_error(self, client, headers, service, billing_client):
        await consume(service, TEST_USER_ID, 10)
        billing_client.check_result = network_error()

        response = client.get(f"{BASE}/status", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["usage"]["messages_used"] == 10
        assert data["subscription"]["status"] == "unknown"
        assert data["subscription"]["last_check_error"]["code"] == "BILLING_NETWORK_ERROR"

    def test_constants(self, client):
        data = client.get(f"{BASE}/constants").json()

        assert data["free_message_limit"] == 10
        assert data["feature_id"] == "messages"


class TestReservationFlow:
    """Tests for reserve, complete and release."""

    def test_reserve_complete(self, client, headers):
        reserve = client.post(f"{BASE}/reserve", headers=headers)
        assert reserve.status_code == 200
        assert reserve.json()["mode"] == "free"

        complete = client.post(f"{BASE}/complete", headers=headers, json={"mode": "free"})

        assert complete.status_code == 200
        data = complete.json()
        assert data["settled"] is True
        assert data["tracked"] is False
        assert data["usage"]["messages_used"] == 1
        assert data["usage"]["pending_messages"] == 0

    def test_release(self, client, headers):
        client.post(f"{BASE}/reserve", headers=headers)

        data = client.post(f"{BASE}/release", headers=headers).json()

        assert data["released"] is True
        assert data["usage"]["messages_used"] == 0
        assert data["usage"]["pending_messages"] == 0

    def test_duplicate_release_is_reported(self, client, headers):
        data = client.post(f"{BASE}/release", headers=headers).json()

        assert data["released"] is False
        assert data["reason"] == "no_pending_reservation"

    def test_complete_rejects_unknown_mode(self, client, headers):
        response = client.post(f"{BASE}/complete", headers=headers, json={"mode": "trial"})

        assert response.status_code == 422
        assert response.json()["error"] == "Validation error"

    @pytest.mark.asyncio
    async def test_quota_exceeded_returns_402(self, client, headers, service):
        await consume(service, TEST_USER_ID, 10)

        response = client.post(f"{BASE}/reserve", headers=headers)

        assert response.status_code == 402
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "quota_exceeded"
        assert data["reason"] == "upgrade_required"
        assert data["requires_upgrade"] is True
        assert data["usage"]["messages_used"] == 10
        assert "upgrade" in data

    @pytest.mark.asyncio
    async def test_paid_flow_tracks_usage(self, client, headers, service, billing_client):
        await consume(service, TEST_USER_ID, 10)
        billing_client.check_result = allowed_check(balance=5)

        reserve = client.post(f"{BASE}/reserve", headers=headers).json()
        complete = client.post(
            f"{BASE}/complete",
            headers=headers,
            json={"mode": reserve["mode"], "metadata": {"model": "gpt-4o", "output_tokens": 40}},
        ).json()

        assert reserve["mode"] == "paid"
        assert complete["tracked"] is True
        assert billing_client.track_calls[0]["properties"] == {"model": "gpt-4o", "outputTokens": 40}


class TestCheckout:
    """Tests for POST /checkout."""

    def test_checkout_url(self, client, headers, billing_client):
        response = client.post(f"{BASE}/checkout", headers=headers, json={"product_id": "pro"})

        data = response.json()
        assert data["success"] is True
        assert data["url"] == "https://billing.example/checkout/1"
        assert billing_client.checkout_calls[0]["user_id"] == TEST_USER_ID

    def test_checkout_failure(self, client, headers, billing_client):
        billing_client.checkout_result = BillingResult.failure("Unknown product", "product_not_found")

        data = client.post(f"{BASE}/checkout", headers=headers, json={"product_id": "nope"}).json()

        assert data["success"] is False
        assert data["error"]["code"] == "product_not_found"


class TestErrorMapping:
    """Tests for usage error responses."""

    def test_store_failure_returns_503(self, headers):
        from unittest.mock import AsyncMock, MagicMock

        from pharmacy_usage.core.usage.exceptions import UsageTrackingError

        broken = MagicMock()
        broken.get_current_user_usage = AsyncMock(
            side_effect=UsageTrackingError("Database is disabled; use the memory store backend instead")
        )
        app = create_app()
        app.dependency_overrides[get_service] = lambda: broken

        response = TestClient(app).get(f"{BASE}/current", headers=headers)

        assert response.status_code == 503
        assert response.json()["success"] is False
