"""Payment gateway adapter.

Three jobs:

  1. Normalize whatever the client sends as a payment method ("momo",
     "Visa", "paystack", ...) into one of the canonical rails.
  2. Create a checkout session.  With Flutterwave keys configured we ask
     Flutterwave v3 for a hosted checkout link; on ANY failure (timeout,
     non-2xx, missing link) we log, count the fallback and hand back the
     deterministic mock session, so checkout never hard-fails on the PSP.
  3. Sign and verify webhooks.  The signature is HMAC-SHA256 (hex) over
     the canonical JSON form of the payload:

         json.dumps(payload, sort_keys=True, separators=(",", ":"),
                    ensure_ascii=False).encode("utf-8")

     Key order and whitespace therefore never matter, whichever language
     produced the body.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from lms.core.config import Settings
from lms.core.errors import (
    InvalidSignature,
    UnsupportedMethod,
    UpstreamGatewayError,
    ValidationError,
)
from lms.core.metrics import GATEWAY_FALLBACKS
from lms.models.payment import COMPLETED, FAILED, REFUNDED, UNDER_REVIEW

logger = logging.getLogger(__name__)

MTN_MOMO = "mtn_momo"
VISA_CARD = "visa_card"
BANK_TRANSFER = "bank_transfer"
SUPPORTED_METHODS = (MTN_MOMO, VISA_CARD, BANK_TRANSFER)

METHOD_ALIASES = {
    "momo": MTN_MOMO,
    "mtn": MTN_MOMO,
    "mtnmomo": MTN_MOMO,
    "card": VISA_CARD,
    "visa": VISA_CARD,
    "mastercard": VISA_CARD,
    "flutterwave": VISA_CARD,
    "paystack": VISA_CARD,
    "bank": BANK_TRANSFER,
    "transfer": BANK_TRANSFER,
}

# Inbound webhook vocabulary -> payment status
WEBHOOK_STATUSES = {
    "success": COMPLETED,
    "failed": FAILED,
    "pending_review": UNDER_REVIEW,
    "refunded": REFUNDED,
}

SIGNATURE_HEADER = "X-Webhook-Signature"
MOCK_PROVIDER = "mock-gateway"
FLUTTERWAVE_URL = "https://api.flutterwave.com/v3/payments"

_FLW_PAYMENT_OPTIONS = {
    MTN_MOMO: "mobilemoneyghana",
    BANK_TRANSFER: "banktransfer",
    VISA_CARD: "card,mobilemoneyghana,banktransfer",
}


def normalize_method(raw: str | None) -> str | None:
    """Canonical method for ``raw``, or None when it is not recognised."""
    if not raw:
        return None
    value = str(raw).strip().lower()
    if value in SUPPORTED_METHODS:
        return value
    return METHOD_ALIASES.get(value)


def require_method(raw: str | None, fallback: str | None = None) -> str:
    method = normalize_method(raw) or normalize_method(fallback)
    if method is None:
        raise UnsupportedMethod(
            "Unsupported payment method. Use one of: " + ", ".join(SUPPORTED_METHODS)
        )
    return method


def canonical_json(payload: dict[str, Any]) -> bytes:
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def sign_payload(payload: dict[str, Any], secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), canonical_json(payload), hashlib.sha256)
    return digest.hexdigest()


def map_webhook_status(raw: object) -> str:
    status = None
    if isinstance(raw, str):
        status = WEBHOOK_STATUSES.get(raw.strip().lower())
    if status is None:
        raise ValidationError(f"Unknown webhook status: {raw!r}")
    return status


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    reference: str
    checkout_url: str
    provider: str
    method: str
    metadata: dict[str, Any] = field(default_factory=dict)


class PaymentGateway:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        webhook_secret: str,
        return_url: str,
        flw_secret_key: str | None = None,
        flw_public_key: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._http = http
        self._webhook_secret = webhook_secret
        self._return_base = return_url.rstrip("/")
        self._flw_secret_key = flw_secret_key
        self._flw_public_key = flw_public_key
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, http: httpx.AsyncClient) -> PaymentGateway:
        return cls(
            http,
            webhook_secret=settings.webhook_secret,
            return_url=settings.payment_return_url,
            flw_secret_key=settings.flw_secret_key,
            flw_public_key=settings.flw_public_key,
            timeout=settings.gateway_timeout_seconds,
        )

    @property
    def live(self) -> bool:
        return bool(self._flw_secret_key and self._flw_public_key)

    def _mock_checkout_url(self, reference: str) -> str:
        return f"{self._return_base}/checkout.html?ref={quote(reference, safe='')}"

    async def create_session(
        self,
        *,
        amount: float,
        currency: str,
        method: str,
        user_id: str,
        metadata: dict[str, Any] | None = None,
        provider: str | None = None,
    ) -> CheckoutSession:
        if method not in SUPPORTED_METHODS:
            raise UnsupportedMethod(f"Unsupported payment method: {method}")
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        reference = f"{method}-{uuid.uuid4()}"
        meta = {**(metadata or {}), "userId": user_id}

        if self.live:
            try:
                url = await self._flutterwave_checkout(
                    reference=reference,
                    amount=amount,
                    currency=currency,
                    method=method,
                    metadata=meta,
                )
                return CheckoutSession(reference, url, "flutterwave", method, meta)
            except UpstreamGatewayError as exc:
                GATEWAY_FALLBACKS.inc()
                logger.warning(
                    "Flutterwave init failed, falling back to mock  ref=%s: %s",
                    reference,
                    exc.message,
                    extra={"payment_reference": reference},
                )

        provider_name = provider.strip().lower() if provider else MOCK_PROVIDER
        return CheckoutSession(
            reference, self._mock_checkout_url(reference), provider_name, method, meta
        )

    async def _flutterwave_checkout(
        self,
        *,
        reference: str,
        amount: float,
        currency: str,
        method: str,
        metadata: dict[str, Any],
    ) -> str:
        body = {
            "tx_ref": reference,
            "amount": amount,
            "currency": currency,
            "redirect_url": f"{self._mock_checkout_url(reference)}&status=flutterwave",
            "payment_options": _FLW_PAYMENT_OPTIONS[method],
            "customer": {
                "email": metadata.get("email") or "user@example.com",
                "name": metadata.get("name") or "LMS User",
            },
            "meta": metadata,
            "customizations": {
                "title": "Course payment",
                "description": f"Payment for {metadata['plan']}"
                if metadata.get("plan")
                else "Payment",
            },
        }
        try:
            resp = await self._http.post(
                FLUTTERWAVE_URL,
                json=body,
                headers={"Authorization": f"Bearer {self._flw_secret_key}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamGatewayError(f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code >= 400:
            raise UpstreamGatewayError(
                f"Flutterwave returned {resp.status_code}: {resp.text[:300]}"
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamGatewayError("Flutterwave returned non-JSON body") from exc
        data = body.get("data") if isinstance(body, dict) else None
        link = data.get("link") if isinstance(data, dict) else None
        if not isinstance(link, str) or not link:
            raise UpstreamGatewayError("Missing checkout link from Flutterwave")
        return link

    # --- webhooks ---

    def sign(self, payload: dict[str, Any]) -> str:
        return sign_payload(payload, self._webhook_secret)

    def verify_signature(self, payload: dict[str, Any], signature: str | None) -> None:
        """Raise InvalidSignature unless ``signature`` matches the payload."""
        if not signature:
            raise InvalidSignature("Invalid webhook signature")
        expected = self.sign(payload)
        if not hmac.compare_digest(expected, signature.strip().lower()):
            raise InvalidSignature("Invalid webhook signature")
