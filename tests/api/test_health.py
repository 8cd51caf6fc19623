from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from lms.context import AppContext


def test_health_reports_unconfigured_backends(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["environment"] == "test"
    assert data["checks"] == {"database": "not_configured", "redis": "not_configured"}


def test_ready_without_backends(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready"}


def test_ready_fails_when_database_is_down(
    client: TestClient, ctx: AppContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def _down() -> bool:
        return False

    monkeypatch.setattr(ctx, "check_database", _down)

    resp = client.get("/ready")
    assert resp.status_code == 503
    assert resp.json()["failing"] == ["database"]

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "degraded"
    assert health.json()["checks"]["database"] == "down"


def test_metrics_endpoint_exposes_prometheus_text(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "text/plain" in resp.headers["content-type"]
    assert "http_requests_total" in resp.text
    assert "payment_webhooks_total" in resp.text
