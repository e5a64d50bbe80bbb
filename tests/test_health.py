"""Tests for the liveness endpoint."""

from datetime import datetime

from fastapi.testclient import TestClient


def test_health_reports_uptime(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["uptime"] >= 0
    assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None
