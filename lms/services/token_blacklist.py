"""Token blacklist for immediate JWT revocation.

JWTs are valid until they expire; the server keeps no list of issued
tokens.  Logout and refresh-token rotation need a token to stop working
NOW, so we keep a set of revoked token ids (the "jti" claim) and check it
on every authenticated request and every refresh.

Only REVOKED tokens are stored, and each entry lives exactly as long as
the token it blocks would have: an expired token fails signature checks
anyway.  Redis does this with SETEX; the in-memory version prunes on read.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

from lms.core.metrics import TOKEN_BLACKLIST_CHECKS


@runtime_checkable
class TokenBlacklist(Protocol):
    async def revoke(self, jti: str, expires_at: float) -> None:
        """Add a token's JTI to the blacklist until it would have expired."""
        ...

    async def is_revoked(self, jti: str) -> bool: ...


class InMemoryTokenBlacklist:
    """Per-process blacklist for tests and single-instance dev.

    With several API instances a logout on one would not be seen by the
    others; set REDIS_URL in that case.
    """

    def __init__(self) -> None:
        # jti -> expiry timestamp (Unix seconds)
        self._revoked: dict[str, float] = {}

    async def revoke(self, jti: str, expires_at: float) -> None:
        self._revoked[jti] = expires_at

    async def is_revoked(self, jti: str) -> bool:
        exp = self._revoked.get(jti)
        if exp is not None and exp < time.time():
            del self._revoked[jti]
            exp = None
        revoked = exp is not None
        TOKEN_BLACKLIST_CHECKS.labels(result="revoked" if revoked else "valid").inc()
        return revoked


class RedisTokenBlacklist:
    """Redis-backed blacklist shared across all API instances."""

    _PREFIX = "lms:blacklist:jti:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def revoke(self, jti: str, expires_at: float) -> None:
        ttl_seconds = int(expires_at - time.time())
        if ttl_seconds <= 0:
            return  # already expired
        # value and TTL in one command: no immortal keys after a crash
        await self._redis.setex(f"{self._PREFIX}{jti}", ttl_seconds, "1")

    async def is_revoked(self, jti: str) -> bool:
        revoked = bool(await self._redis.exists(f"{self._PREFIX}{jti}"))
        TOKEN_BLACKLIST_CHECKS.labels(result="revoked" if revoked else "valid").inc()
        return revoked
