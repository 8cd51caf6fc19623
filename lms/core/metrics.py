"""Application metrics using the Prometheus client library.

All metrics are defined here so there is a single inventory of what the
service measures.  Modules import the metric they own and increment it at
the point of action.

HTTP metrics are filled in by MetricsMiddleware.  The payment metrics
answer the questions an on-call engineer asks first during a payment
incident:

  - Are checkouts being started, and on which rails?   payments_initiated_total
  - Is the live gateway failing over to the mock?      payment_gateway_fallbacks_total
  - Are webhooks arriving, and are they valid?         payment_webhooks_total
  - Are completed payments turning into access?        enrollment_grants_total
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Payment and enrollment metrics
# ---------------------------------------------------------------------------

PAYMENTS_INITIATED = Counter(
    "payments_initiated_total",
    "Payment sessions created, by canonical method and provider",
    ["method", "provider"],
)

GATEWAY_FALLBACKS = Counter(
    "payment_gateway_fallbacks_total",
    "Live gateway session failures that fell back to the mock session",
)

WEBHOOK_EVENTS = Counter(
    "payment_webhooks_total",
    "Inbound payment webhooks by outcome",
    ["result"],  # applied|replay|ignored|bad_signature|malformed|unknown_reference
)

PAYMENT_TRANSITIONS = Counter(
    "payment_transitions_total",
    "Payment status transitions applied",
    ["from_status", "to_status"],
)

ENROLLMENT_GRANTS = Counter(
    "enrollment_grants_total",
    "Enrollments that gained access, by source",
    ["source"],  # payment|manual|free
)

TOKEN_BLACKLIST_CHECKS = Counter(
    "token_blacklist_checks_total",
    "Token blacklist lookups by result",
    ["result"],  # "revoked" or "valid"
)
