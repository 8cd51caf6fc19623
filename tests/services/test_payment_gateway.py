from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from prometheus_client import REGISTRY

from lms.core.errors import InvalidSignature, UnsupportedMethod, ValidationError
from lms.services.payment_gateway import (
    FLUTTERWAVE_URL,
    PaymentGateway,
    canonical_json,
    map_webhook_status,
    normalize_method,
    require_method,
    sign_payload,
)

SECRET = "gateway-test-secret"


def _gateway(handler=None, *, live: bool = False) -> PaymentGateway:
    transport = httpx.MockTransport(handler or (lambda request: httpx.Response(500)))
    keys = {"flw_secret_key": "FLWSECK-test", "flw_public_key": "FLWPUBK-test"}
    return PaymentGateway(
        httpx.AsyncClient(transport=transport),
        webhook_secret=SECRET,
        return_url="https://lms.example.com/",
        **(keys if live else {}),
    )


def _session(gateway: PaymentGateway, method: str = "visa_card", **kw):
    return asyncio.run(
        gateway.create_session(
            amount=20.0, currency="USD", method=method, user_id="user-1", **kw
        )
    )


# ---- method normalization ----


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("momo", "mtn_momo"),
        ("MTN", "mtn_momo"),
        ("mtn_momo", "mtn_momo"),
        ("card", "visa_card"),
        (" Visa ", "visa_card"),
        ("mastercard", "visa_card"),
        ("paystack", "visa_card"),
        ("flutterwave", "visa_card"),
        ("bank", "bank_transfer"),
        ("transfer", "bank_transfer"),
        ("bitcoin", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_method(raw: str | None, expected: str | None) -> None:
    assert normalize_method(raw) == expected


def test_require_method_falls_back_to_provider() -> None:
    assert require_method(None, "paystack") == "visa_card"
    assert require_method("bank", "paystack") == "bank_transfer"


def test_require_method_rejects_unknown() -> None:
    with pytest.raises(UnsupportedMethod, match="mtn_momo, visa_card, bank_transfer"):
        require_method("cheque")


# ---- webhook vocabulary and signing ----


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("success", "completed"),
        ("SUCCESS", "completed"),
        ("failed", "failed"),
        ("pending_review", "under_review"),
        ("refunded", "refunded"),
    ],
)
def test_map_webhook_status(raw: str, expected: str) -> None:
    assert map_webhook_status(raw) == expected


@pytest.mark.parametrize("raw", ["completed-ish", 1, None, ["success"]])
def test_map_webhook_status_rejects_unknown(raw: object) -> None:
    with pytest.raises(ValidationError, match="Unknown webhook status"):
        map_webhook_status(raw)


def test_canonical_json_is_order_and_whitespace_free() -> None:
    a = canonical_json({"status": "success", "reference": "r-1", "amount": 20})
    b = canonical_json({"amount": 20, "reference": "r-1", "status": "success"})
    assert a == b == b'{"amount":20,"reference":"r-1","status":"success"}'


def test_canonical_json_keeps_unicode() -> None:
    assert canonical_json({"name": "Ama Owusu-Ansah é"}) == (
        '{"name":"Ama Owusu-Ansah é"}'.encode()
    )


def test_verify_signature_accepts_own_signature() -> None:
    gateway = _gateway()
    payload = {"reference": "r-1", "status": "success"}
    gateway.verify_signature(payload, sign_payload(payload, SECRET))
    gateway.verify_signature(payload, sign_payload(payload, SECRET).upper())


@pytest.mark.parametrize("signature", [None, "", "deadbeef"])
def test_verify_signature_rejects(signature: str | None) -> None:
    with pytest.raises(InvalidSignature):
        _gateway().verify_signature({"reference": "r-1"}, signature)


def test_signature_covers_every_field() -> None:
    payload = {"reference": "r-1", "status": "failed"}
    signature = sign_payload(payload, SECRET)
    with pytest.raises(InvalidSignature):
        _gateway().verify_signature({**payload, "status": "success"}, signature)


# ---- mock sessions ----


def test_mock_session_shape() -> None:
    session = _session(_gateway(), method="mtn_momo", metadata={"courseId": "c-1"})
    assert session.reference.startswith("mtn_momo-")
    assert session.provider == "mock-gateway"
    assert session.checkout_url.startswith(
        "https://lms.example.com/checkout.html?ref=mtn_momo-"
    )
    assert session.metadata == {"courseId": "c-1", "userId": "user-1"}


def test_mock_session_uses_requested_provider_name() -> None:
    assert _session(_gateway(), provider=" Paystack ").provider == "paystack"


def test_references_are_unique() -> None:
    gateway = _gateway()
    assert _session(gateway).reference != _session(gateway).reference


def test_session_rejects_non_canonical_method() -> None:
    with pytest.raises(UnsupportedMethod):
        _session(_gateway(), method="card")


# ---- live sessions ----


def test_live_session_uses_flutterwave_link() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"status": "success", "data": {"link": "https://checkout.flw/abc"}}
        )

    session = _session(_gateway(handler, live=True))
    assert session.provider == "flutterwave"
    assert session.checkout_url == "https://checkout.flw/abc"

    (request,) = seen
    assert str(request.url) == FLUTTERWAVE_URL
    assert request.headers["Authorization"] == "Bearer FLWSECK-test"
    body = json.loads(request.content)
    assert body["tx_ref"] == session.reference
    assert body["amount"] == 20.0


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(502, text="bad gateway"),
        lambda request: httpx.Response(200, json={"data": {}}),
        lambda request: httpx.Response(200, text="<html>"),
        lambda request: httpx.Response(200, json={"status": "error", "data": None}),
        lambda request: httpx.Response(200, json=[]),
        lambda request: httpx.Response(200, json={"data": {"link": 42}}),
    ],
    ids=[
        "http-error",
        "missing-link",
        "non-json",
        "null-data",
        "list-body",
        "non-str-link",
    ],
)
def test_live_session_falls_back_to_mock(handler) -> None:
    session = _session(_gateway(handler, live=True))
    assert session.provider == "mock-gateway"
    assert "/checkout.html?ref=" in session.checkout_url


def test_live_session_falls_back_on_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    before = REGISTRY.get_sample_value("payment_gateway_fallbacks_total") or 0.0
    session = _session(_gateway(handler, live=True))
    assert session.provider == "mock-gateway"
    assert REGISTRY.get_sample_value("payment_gateway_fallbacks_total") - before == 1
