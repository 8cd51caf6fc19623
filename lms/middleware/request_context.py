"""Per-request id, timing and access log.

Each request gets an id (the caller's ``X-Request-ID`` or a fresh
UUID).  It is kept in a ContextVar so every log line emitted while the
request is in flight carries it, including lines from the payment
service and repositories that never see the Request object.  The id is
echoed back on the response so a student's support ticket can be
matched to server logs.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestContextFilter(logging.Filter):
    """Copies the current request id onto every LogRecord."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        return True


def install_request_id_filter(target: logging.Filterer) -> None:
    """Attach the filter to a logger or handler, once.

    Handler filters see records propagated from child loggers; logger
    filters only see records logged on that logger directly.
    """
    if not any(isinstance(f, RequestContextFilter) for f in target.filters):
        target.addFilter(RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(req_id)
        start = time.monotonic()
        try:
            response = await call_next(request)
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers[REQUEST_ID_HEADER] = req_id
            return response
        finally:
            request_id_var.reset(token)
