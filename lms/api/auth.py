"""JSON auth endpoints: /auth/register, /auth/login, /auth/refresh,
/auth/logout, /auth/me.

Register, login and refresh all return

    { accessToken, refreshToken, tokenType, user }

and also set the refresh token as an httpOnly cookie scoped to /auth, so
browser clients never have to touch it.  /auth/refresh accepts the token
from that cookie or from the JSON body.

REFRESH TOKEN ROTATION
----------------------
Each refresh token is single-use: /auth/refresh blacklists the one it
received before issuing a new pair.  A stolen refresh token that the
real client already used is rejected; if the thief uses it first, the
client's next refresh fails, which surfaces the breach.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

import jwt as pyjwt
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from lms.api.dependencies import Ctx, CurrentUser, bearer_scheme
from lms.api.schemas import AuthResponse, LoginIn, RefreshIn, RegisterIn, UserOut
from lms.context import AppContext
from lms.models.user import User
from lms.services import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE = "refresh_token"


def _issue(ctx: AppContext, user: User, response: Response) -> AuthResponse:
    access_token = ctx.tokens.create_access_token(sub=str(user.id), roles=list(user.roles))
    refresh_token = ctx.tokens.create_refresh_token(sub=str(user.id))
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=int(ctx.tokens.refresh_ttl.total_seconds()),
        httponly=True,
        secure=ctx.settings.is_prod,
        samesite="lax",
        path="/auth",
    )
    return AuthResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserOut.from_domain(user),
    )


async def _revoke(ctx: AppContext, claims: dict) -> None:
    jti, exp = claims.get("jti"), claims.get("exp")
    if jti and exp:
        await ctx.blacklist.revoke(jti, float(exp))


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(payload: RegisterIn, response: Response, ctx: Ctx) -> AuthResponse:
    user = await ctx.user_service.register(
        name=payload.name, email=payload.email, password=payload.password
    )
    return _issue(ctx, user, response)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginIn, response: Response, ctx: Ctx) -> AuthResponse:
    email = payload.email.lower().strip()
    user = await auth_service.authenticate_user(ctx.users, email, payload.password)
    if user is None:
        logger.warning("Login failed  email=%s", email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    logger.info("Login succeeded  user_id=%s", user.id)
    return _issue(ctx, user, response)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    response: Response,
    ctx: Ctx,
    payload: RefreshIn | None = None,
) -> AuthResponse:
    raw = (payload.refresh_token if payload else None) or request.cookies.get(
        REFRESH_COOKIE
    )
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token required"
        )

    try:
        claims = ctx.tokens.decode_refresh_token(raw)
    except pyjwt.ExpiredSignatureError:
        logger.warning("Expired refresh token presented")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token expired"
        ) from None
    except pyjwt.InvalidTokenError as e:
        logger.warning("Invalid refresh token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token"
        ) from None

    if await ctx.blacklist.is_revoked(claims["jti"]):
        # reuse of a rotated token: possible theft
        logger.warning(
            "Revoked refresh token reuse detected  jti=%s sub=%s",
            claims["jti"],
            claims["sub"],
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token has been revoked",
        )

    try:
        user = await ctx.users.get_by_id(UUID(claims["sub"]))
    except ValueError:
        user = None
    if user is None or not user.is_active:
        logger.warning("Refresh for unknown/inactive user  sub=%s", claims["sub"])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    await _revoke(ctx, claims)
    logger.info("Refresh token rotated  old_jti=%s user=%s", claims["jti"], user.id)
    return _issue(ctx, user, response)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    ctx: Ctx,
    _principal: CurrentUser,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    payload: RefreshIn | None = None,
) -> Response:
    """Revoke the access token and, when supplied, the refresh token."""
    if credentials is not None:
        await _revoke(ctx, ctx.tokens.decode_access_token(credentials.credentials))

    raw_refresh = (payload.refresh_token if payload else None) or request.cookies.get(
        REFRESH_COOKIE
    )
    if raw_refresh:
        try:
            await _revoke(ctx, ctx.tokens.decode_refresh_token(raw_refresh))
        except pyjwt.InvalidTokenError:
            logger.info("Logout carried an unusable refresh token; ignored")

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(REFRESH_COOKIE, path="/auth")
    return response


@router.get("/me", response_model=UserOut)
async def me(principal: CurrentUser, ctx: Ctx) -> UserOut:
    return UserOut.from_domain(await ctx.user_service.get(principal.uid))
