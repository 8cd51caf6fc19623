from __future__ import annotations

import logging
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms.context import AppContext
from lms.models.principal import Principal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_context(request: Request) -> AppContext:
    return request.app.state.context


Ctx = Annotated[AppContext, Depends(get_context)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _principal_from_token(ctx: AppContext, raw_token: str) -> Principal:
    try:
        claims = ctx.tokens.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    if await ctx.blacklist.is_revoked(claims["jti"]):
        logger.warning("Revoked token rejected  jti=%s", claims["jti"])
        raise _unauthorized("Token has been revoked")

    return Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )


async def require_user(
    ctx: Ctx,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Validate the bearer token (signature, expiry, blacklist).

    Used as a FastAPI dependency on any protected endpoint.
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    principal = await _principal_from_token(ctx, credentials.credentials)
    logger.debug(
        "Token validated for user=%s roles=%s", principal.user_id, principal.roles
    )
    return principal


async def optional_user(
    ctx: Ctx,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal | None:
    """Like require_user, but anonymous callers get None.

    A token that is present but bad is still a 401: silently treating it
    as anonymous would hide client bugs.
    """
    if credentials is None or not credentials.credentials:
        return None
    return await _principal_from_token(ctx, credentials.credentials)


CurrentUser = Annotated[Principal, Depends(require_user)]
MaybeUser = Annotated[Principal | None, Depends(optional_user)]


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    """

    def _guard(principal: CurrentUser) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s", principal.user_id, role
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
            )
        return principal

    return _guard


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "teacher"}))
    """

    def _guard(principal: CurrentUser) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden"
            )
        return principal

    return _guard


AdminUser = Annotated[Principal, Depends(require_role("admin"))]
TeacherOrAdmin = Annotated[Principal, Depends(require_any_role({"admin", "teacher"}))]
StudentUser = Annotated[Principal, Depends(require_role("student"))]


def pagination(page: int = 1, limit: int = 20) -> tuple[int, int]:
    """Query params ``page`` (1-based) and ``limit`` (1..100)."""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    return page, limit


Pagination = Annotated[tuple[int, int], Depends(pagination)]
