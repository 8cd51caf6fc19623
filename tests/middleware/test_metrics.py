"""MetricsMiddleware and the payment counters.

prometheus_client uses one global registry and counters never reset, so
every test asserts on the delta around the action.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from lms.context import AppContext
from lms.models.course import Course
from lms.models.user import User
from tests.conftest import bearer, sign


def _sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _sample("http_requests_total", labels)
    client.get("/health")
    assert _sample("http_requests_total", labels) - before == 1


def test_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _sample("http_request_duration_seconds_count", labels) - before == 1


def test_endpoint_label_uses_route_template(
    client: TestClient, course: Course
) -> None:
    labels = {"method": "GET", "endpoint": "/courses/{course_id}", "status_code": "200"}
    before = _sample("http_requests_total", labels)
    client.get(f"/courses/{course.id}")
    assert _sample("http_requests_total", labels) - before == 1


def test_unknown_paths_share_one_label(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "unmatched", "status_code": "404"}
    before = _sample("http_requests_total", labels)
    client.get("/no/such/page-1")
    client.get("/no/such/page-2")
    assert _sample("http_requests_total", labels) - before == 2


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    assert _sample("http_requests_total", labels) == before


def test_payment_counters(
    client: TestClient, ctx: AppContext, student: User, course: Course
) -> None:
    initiated = {"method": "mtn_momo", "provider": "mock-gateway"}
    before_init = _sample("payments_initiated_total", initiated)
    before_applied = _sample("payment_webhooks_total", {"result": "applied"})
    before_replay = _sample("payment_webhooks_total", {"result": "replay"})
    before_grants = _sample("enrollment_grants_total", {"source": "payment"})

    resp = client.post(
        "/payments/initiate",
        json={"courseId": str(course.id), "method": "momo"},
        headers=bearer(ctx, student),
    )
    payload = {"reference": resp.json()["reference"], "status": "success"}
    client.post("/payments/webhook", json=payload, headers=sign(payload))
    client.post("/payments/webhook", json=payload, headers=sign(payload))

    assert _sample("payments_initiated_total", initiated) - before_init == 1
    assert _sample("payment_webhooks_total", {"result": "applied"}) - before_applied == 1
    assert _sample("payment_webhooks_total", {"result": "replay"}) - before_replay == 1
    assert _sample("enrollment_grants_total", {"source": "payment"}) - before_grants == 1


def test_bad_signature_counter(client: TestClient) -> None:
    labels = {"result": "bad_signature"}
    before = _sample("payment_webhooks_total", labels)
    client.post(
        "/payments/webhook",
        json={"reference": "r", "status": "success"},
        headers={"X-Webhook-Signature": "0" * 64},
    )
    assert _sample("payment_webhooks_total", labels) - before == 1
