"""Domain exception taxonomy.

Services raise these; ``install_error_handlers`` turns them into JSON
responses of the form ``{"detail": "<message>"}``.  Each class carries
the HTTP status it maps to, so the mapping lives next to the type.

PersistenceError and anything unexpected are answered with an opaque 500
and logged with the traceback.  UpstreamGatewayError is raised inside the
payment gateway only; the gateway recovers from it with a mock session.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LmsError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(LmsError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnsupportedMethod(ValidationError):
    """Payment method unknown after alias normalization."""


class AuthenticationError(LmsError):
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidSignature(AuthenticationError):
    """Webhook HMAC did not match the header-supplied signature."""


class AuthorizationError(LmsError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(LmsError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LmsError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyEnrolled(ConflictError):
    """The (student, course) pair already holds a completed enrollment."""


class InvalidTransition(LmsError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition payment from {current} to {target}")


class InvalidOperation(LmsError):
    """Operation is well-formed but not allowed (e.g. admin demoting themselves)."""

    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamGatewayError(LmsError):
    status_code = status.HTTP_502_BAD_GATEWAY


class PersistenceError(LmsError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class DuplicateKeyError(Exception):
    """Raised by repositories when a unique constraint rejects a write."""


_OPAQUE_500 = {"detail": "Internal server error"}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LmsError)
    async def _handle_lms_error(request: Request, exc: LmsError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s on %s %s: %s",
                type(exc).__name__,
                request.method,
                request.url.path,
                exc.message,
            )
            return JSONResponse(status_code=exc.status_code, content=_OPAQUE_500)
        return JSONResponse(
            status_code=exc.status_code, content={"detail": exc.message}
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception on %s %s", request.method, request.url.path
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_OPAQUE_500
        )
