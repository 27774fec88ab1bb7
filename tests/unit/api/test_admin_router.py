"""Unit tests for the admin API router."""

import pytest
from fastapi.testclient import TestClient

from pharmacy_usage.api.app import create_app
from pharmacy_usage.api.dependencies import get_config, get_service
from pharmacy_usage.core.usage.config import UsageConfig

BASE = "/api/v1/admin"
ADMIN_KEY = "admin-secret"


@pytest.fixture
def app(service):
    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    return app


@pytest.fixture
def open_client(app):
    """Client for an app with no admin key configured."""
    app.dependency_overrides[get_config] = lambda: UsageConfig(store_backend="memory")
    return TestClient(app)


@pytest.fixture
def guarded_client(app):
    """Client for an app that requires X-Admin-Key."""
    app.dependency_overrides[get_config] = lambda: UsageConfig(
        store_backend="memory", admin_api_key=ADMIN_KEY
    )
    return TestClient(app)


class TestAdminGuard:
    """Tests for the admin key check."""

    def test_open_without_configured_key(self, open_client):
        assert open_client.get(f"{BASE}/stats").status_code == 200

    def test_missing_key(self, guarded_client):
        assert guarded_client.get(f"{BASE}/stats").status_code == 401

    def test_wrong_key(self, guarded_client):
        response = guarded_client.get(f"{BASE}/stats", headers={"X-Admin-Key": "nope"})

        assert response.status_code == 403

    def test_correct_key(self, guarded_client):
        response = guarded_client.get(f"{BASE}/stats", headers={"X-Admin-Key": ADMIN_KEY})

        assert response.status_code == 200


class TestUserCounts:
    """Tests for the aggregate endpoints."""

    def test_stats_before_bootstrap(self, open_client):
        data = open_client.get(f"{BASE}/stats").json()

        assert data["total_users"] == 0
        assert data["active_users"] == 0

    def test_adjust_bootstraps_then_applies(self, open_client, stats_store):
        for user_id in ("a", "b", "c"):
            stats_store.add_profile(user_id)

        first = open_client.post(f"{BASE}/stats/adjust", json={"total_delta": 1}).json()
        second = open_client.post(
            f"{BASE}/stats/adjust", json={"total_delta": -1, "active_delta": -2}
        ).json()

        assert first["total_users"] == 3
        assert second["total_users"] == 2
        assert second["active_users"] == 1

    def test_recompute(self, open_client, stats_store):
        stats_store.add_profile("a")
        open_client.post(f"{BASE}/stats/adjust", json={"total_delta": 0})
        open_client.post(f"{BASE}/stats/adjust", json={"total_delta": 50})

        data = open_client.post(f"{BASE}/stats/recompute").json()

        assert data["total_users"] == 1
        assert open_client.get(f"{BASE}/stats").json()["total_users"] == 1

    def test_adjust_requires_delta(self, open_client):
        response = open_client.post(f"{BASE}/stats/adjust", json={})

        assert response.status_code == 422
