from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lms.api.admin import router as admin_router
from lms.api.auth import router as auth_router
from lms.api.courses import router as courses_router
from lms.api.enrollments import router as enrollments_router
from lms.api.health import router as health_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.api.payments import router as payments_router
from lms.api.users import router as users_router
from lms.context import AppContext, build_context
from lms.core.config import Settings, load_settings
from lms.core.errors import install_error_handlers
from lms.core.logging import setup_logging
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import (
    RequestContextMiddleware,
    install_request_id_filter,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None, context: AppContext | None = None
) -> FastAPI:
    """Build the ASGI app.

    The context is created up front and attached to ``app.state`` so it is
    usable even when the server never runs the lifespan (TestClient used
    without a ``with`` block).  Shutdown closes it.
    """
    settings = settings or (context.settings if context else load_settings())
    context = context or build_context(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "lms-service started  env=%s port=%d docs=%s",
            settings.app_env,
            settings.port,
            "on" if settings.is_dev else "off",
        )
        try:
            yield
        finally:
            await context.aclose()

    app = FastAPI(
        title="lms-service",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Last added runs first: RequestContext -> Metrics -> CORS -> route
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    install_error_handlers(app)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(courses_router)
    app.include_router(enrollments_router)
    app.include_router(payments_router)
    app.include_router(admin_router)
    return app


SETTINGS = load_settings()

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
for _handler in logging.getLogger().handlers:
    install_request_id_filter(_handler)

app = create_app(SETTINGS)
