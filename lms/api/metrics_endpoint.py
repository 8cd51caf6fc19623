"""Prometheus scrape endpoint.

Serves every metric registered in ``lms.core.metrics`` in the text
exposition format, e.g.::

  payments_initiated_total{method="mtn_momo",provider="mock-gateway"} 12.0
  payment_webhooks_total{result="replay"} 3.0

Keep it off the public ingress in production: webhook and grant counts
reveal sales volume.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
