"""Tests for the limit check API and the enforce_rate_limit dependency."""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from kvlimiter.adapters.rate_limit.base import RateLimitResult
from kvlimiter.adapters.rate_limit.distributed import DistributedRateLimiter
from kvlimiter.adapters.store.in_memory import InMemoryKeyValueStore
from kvlimiter.core import rate_limit
from kvlimiter.core.errors import LockAppError, StoreAppError
from kvlimiter.core.rate_limit import get_rate_limiter
from kvlimiter.main import app


@pytest.fixture
def limiter(fake_time) -> DistributedRateLimiter:
    return DistributedRateLimiter(
        InMemoryKeyValueStore(clock=fake_time.time),
        key_prefix="test",
        max_requests=5,
        period=8,
        clock=fake_time.time,
        sleep=fake_time.advance,
    )


@pytest.fixture
def client(limiter, monkeypatch) -> TestClient:
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    monkeypatch.setattr(rate_limit, "get_rate_limiter", lambda: limiter)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestCheckEndpoint:
    def test_admits_fresh_key(self, client: TestClient) -> None:
        response = client.post("/v1/limits/user-1/check")

        assert response.status_code == 200
        data = response.json()
        assert data["admitted"] is True
        assert data["wait_seconds"] is None
        assert data["unsatisfiable"] is False
        assert data["limit"] == 5
        assert data["period"] == 8

    def test_reports_wait_when_exhausted(self, client: TestClient) -> None:
        for _ in range(5):
            assert client.post("/v1/limits/user-1/check").json()["admitted"] is True

        data = client.post("/v1/limits/user-1/check").json()
        assert data["admitted"] is False
        assert data["wait_seconds"] == pytest.approx(1.6)

    def test_reports_unsatisfiable_cost(self, client: TestClient) -> None:
        data = client.post("/v1/limits/user-1/check", params={"cost": 6}).json()

        assert data["admitted"] is False
        assert data["unsatisfiable"] is True
        assert data["wait_seconds"] is None

    def test_zero_cost_always_admits(self, client: TestClient) -> None:
        for _ in range(10):
            data = client.post("/v1/limits/user-1/check", params={"cost": 0}).json()
            assert data["admitted"] is True

    def test_lock_failure_maps_to_503(self, client: TestClient) -> None:
        failing = Mock()
        failing.check.side_effect = LockAppError(
            code="rate_limit_lock_failed",
            message="Unable to lock key for update",
        )
        app.dependency_overrides[get_rate_limiter] = lambda: failing

        response = client.post("/v1/limits/user-1/check")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "rate_limit_lock_failed"
        assert response.headers["Retry-After"] == "1"

    def test_store_failure_maps_to_503(self, client: TestClient) -> None:
        failing = Mock()
        failing.check.side_effect = StoreAppError(
            code="store_unavailable",
            message="Redis set failed",
        )
        app.dependency_overrides[get_rate_limiter] = lambda: failing

        response = client.post("/v1/limits/user-1/check")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "store_unavailable"


class TestEnforceRateLimit:
    def test_allows_until_limit_then_429(self, client: TestClient) -> None:
        headers = {"X-API-Key": "key-abc"}
        for _ in range(5):
            assert client.get("/v1/limits/config", headers=headers).status_code == 200

        response = client.get("/v1/limits/config", headers=headers)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "2"
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Period"] == "8"

    def test_limits_are_per_api_key(self, client: TestClient) -> None:
        for _ in range(5):
            client.get("/v1/limits/config", headers={"X-API-Key": "key-abc"})

        assert client.get("/v1/limits/config", headers={"X-API-Key": "key-abc"}).status_code == 429
        assert client.get("/v1/limits/config", headers={"X-API-Key": "key-xyz"}).status_code == 200

    def test_falls_back_to_client_ip(self, client: TestClient, limiter) -> None:
        client.get("/v1/limits/config")

        assert limiter.exceeded("ip:testclient", 4) == 0.0
        assert limiter.exceeded("ip:testclient") > 0

    def test_disabled_rate_limit_skips_limiter(self, client: TestClient, monkeypatch) -> None:
        limiter = Mock()
        monkeypatch.setattr(rate_limit, "get_rate_limiter", lambda: limiter)
        monkeypatch.setattr(rate_limit.settings.app, "rate_limit_enabled", False)

        assert client.get("/v1/limits/config").status_code == 200
        limiter.check.assert_not_called()

    def test_unsatisfiable_cost_has_no_retry_after(self, client: TestClient, monkeypatch) -> None:
        limiter = Mock()
        limiter.check.return_value = RateLimitResult(
            allowed=False, limit=5, retry_after_seconds=None, unsatisfiable=True
        )
        monkeypatch.setattr(rate_limit, "get_rate_limiter", lambda: limiter)

        response = client.get("/v1/limits/config")

        assert response.status_code == 429
        assert "Retry-After" not in response.headers


def test_process_wide_limiter_is_cached() -> None:
    assert rate_limit.get_rate_limiter() is rate_limit.get_rate_limiter()
    assert rate_limit.get_store() is rate_limit.get_store()
