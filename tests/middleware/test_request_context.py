"""Request ids: generated, echoed, and attached to log records."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from lms.middleware.request_context import (
    RequestContextFilter,
    install_request_id_filter,
    request_id_var,
)


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "support-ticket-42"})
    assert resp.headers["x-request-id"] == "support-ticket-42"


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/auth/me")
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_request_id_present_on_domain_errors(client: TestClient) -> None:
    resp = client.get("/courses/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404
    assert resp.headers.get("x-request-id") is not None


def test_completion_line_is_logged(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="lms.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "trace-me"})
    records = [r for r in caplog.records if getattr(r, "path", None) == "/health"]
    assert records
    assert records[-1].request_id == "trace-me"  # type: ignore[attr-defined]
    assert records[-1].status_code == 200  # type: ignore[attr-defined]


def test_filter_copies_context_var_onto_record() -> None:
    record = logging.LogRecord("t", logging.INFO, "t.py", 1, "msg", (), None)
    token = request_id_var.set("req-123")
    try:
        assert RequestContextFilter().filter(record) is True
    finally:
        request_id_var.reset(token)
    assert record.request_id == "req-123"  # type: ignore[attr-defined]


def test_filter_installed_once() -> None:
    handler = logging.NullHandler()
    install_request_id_filter(handler)
    install_request_id_filter(handler)
    assert sum(isinstance(f, RequestContextFilter) for f in handler.filters) == 1
