"""Liveness and readiness probes.

/health answers "is the process up?" and always returns 200 while the
event loop can serve it.  The body lists dependency status so a human
can see at a glance whether Postgres or Redis is the problem.

/ready answers "should the load balancer send traffic here?" and
returns 503 when a configured dependency cannot be reached.  A
dependency that is not configured (in-memory storage during local
development or tests) never makes the instance unready.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from lms.api.dependencies import Ctx
from lms.context import AppContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _label(result: bool | None) -> str:
    if result is None:
        return "not_configured"
    return "ok" if result else "down"


async def _dependency_checks(ctx: AppContext) -> dict[str, bool | None]:
    return {
        "database": await ctx.check_database(),
        "redis": await ctx.check_redis(),
    }


@router.get("/health")
async def health(ctx: Ctx) -> dict:
    checks = await _dependency_checks(ctx)
    overall = "degraded" if any(r is False for r in checks.values()) else "ok"
    return {
        "status": overall,
        "environment": ctx.settings.app_env,
        "checks": {name: _label(r) for name, r in checks.items()},
    }


@router.get("/ready")
async def ready(ctx: Ctx) -> JSONResponse:
    checks = await _dependency_checks(ctx)
    failing = [name for name, r in checks.items() if r is False]
    if failing:
        logger.warning("Readiness check failed: %s", ", ".join(failing))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "failing": failing},
        )
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ready"})
