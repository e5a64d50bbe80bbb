"""HTTP rate limiting by origin address."""

import pytest
from fastapi.testclient import TestClient

from notification_server.main import create_app


@pytest.fixture
def limited_client(test_settings, session_factory):
    settings = test_settings.model_copy(update={"http_rate_limit_max": 2})
    with TestClient(create_app(settings, session_factory=session_factory)) as client:
        yield client


def test_requests_over_the_ceiling_get_429(limited_client: TestClient) -> None:
    assert limited_client.get("/api/v1/system/config").status_code == 200
    assert limited_client.get("/api/v1/system/config").status_code == 200

    response = limited_client.get("/api/v1/system/config")

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Too many requests, please try again later"
    assert 0 < body["retryAfter"] <= 15 * 60
    assert response.headers["Retry-After"] == str(body["retryAfter"])


def test_webhook_shares_the_origin_window(limited_client: TestClient) -> None:
    limited_client.get("/api/v1/system/config")
    limited_client.get("/api/v1/system/config")

    response = limited_client.post("/webhook/notify", json={})

    assert response.status_code == 429


def test_health_is_not_limited(limited_client: TestClient) -> None:
    for _ in range(5):
        assert limited_client.get("/health").status_code == 200
