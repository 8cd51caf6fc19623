"""JWT creation and validation (HS256).

Access and refresh tokens are signed with different secrets AND carry
different audiences, so a refresh JWT is never accepted as an access
token even if one secret leaks.

Refresh tokens contain only identity (sub).  The refresh endpoint looks
up the user's current role when issuing the next access token, so a role
change by an admin takes effect on the next refresh rather than after
the refresh TTL.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt

from lms.core.config import Settings

ALGORITHM = "HS256"
ISSUER = "lms-service"
AUDIENCE = "lms-service"
REFRESH_AUDIENCE = "lms-service-refresh"


class TokenService:
    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl=timedelta(minutes=settings.jwt_access_ttl_minutes),
            refresh_ttl=timedelta(days=settings.jwt_refresh_ttl_days),
        )

    def create_access_token(self, *, sub: str, roles: list[str]) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": sub,
            "iss": ISSUER,
            "aud": AUDIENCE,
            "exp": now + self.access_ttl,
            "iat": now,
            "jti": str(uuid.uuid4()),
            "roles": roles,
        }
        return jwt.encode(payload, self._access_secret, algorithm=ALGORITHM)

    def decode_access_token(self, token: str) -> dict:
        """Verify signature and claims, return the payload.

        Pins the algorithm to prevent alg:none and alg-switching attacks.
        Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
        """
        return jwt.decode(
            token,
            self._access_secret,
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            audience=AUDIENCE,
            options={"require": ["sub", "exp", "iat", "jti"]},
        )

    def create_refresh_token(self, *, sub: str) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": sub,
            "iss": ISSUER,
            "aud": REFRESH_AUDIENCE,
            "exp": now + self.refresh_ttl,
            "iat": now,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self._refresh_secret, algorithm=ALGORITHM)

    def decode_refresh_token(self, token: str) -> dict:
        """Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure."""
        return jwt.decode(
            token,
            self._refresh_secret,
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            audience=REFRESH_AUDIENCE,
            options={"require": ["sub", "exp", "iat", "jti"]},
        )
