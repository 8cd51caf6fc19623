from __future__ import annotations

import time

from lms.services.token_blacklist import (
    InMemoryTokenBlacklist,
    RedisTokenBlacklist,
    TokenBlacklist,
)
from tests.conftest import run


class _RecordingRedis:
    """Just enough of redis.asyncio.Redis for the blacklist."""

    def __init__(self) -> None:
        self.keys: dict[str, tuple[int, str]] = {}

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self.keys[key] = (ttl, value)

    async def exists(self, key: str) -> int:
        return int(key in self.keys)


def test_in_memory_satisfies_protocol() -> None:
    assert isinstance(InMemoryTokenBlacklist(), TokenBlacklist)
    assert isinstance(RedisTokenBlacklist(_RecordingRedis()), TokenBlacklist)


def test_in_memory_revocation() -> None:
    blacklist = InMemoryTokenBlacklist()
    assert run(blacklist.is_revoked("jti-1")) is False

    run(blacklist.revoke("jti-1", time.time() + 60))
    assert run(blacklist.is_revoked("jti-1")) is True
    assert run(blacklist.is_revoked("jti-2")) is False


def test_in_memory_prunes_expired_entries() -> None:
    blacklist = InMemoryTokenBlacklist()
    run(blacklist.revoke("jti-old", time.time() - 1))
    assert run(blacklist.is_revoked("jti-old")) is False
    assert "jti-old" not in blacklist._revoked


def test_redis_sets_ttl_to_remaining_lifetime() -> None:
    redis = _RecordingRedis()
    blacklist = RedisTokenBlacklist(redis)
    run(blacklist.revoke("jti-1", time.time() + 120))

    (key,) = redis.keys
    ttl, value = redis.keys[key]
    assert key.endswith("jti-1")
    assert 118 <= ttl <= 120
    assert value == "1"
    assert run(blacklist.is_revoked("jti-1")) is True


def test_redis_skips_already_expired_tokens() -> None:
    redis = _RecordingRedis()
    run(RedisTokenBlacklist(redis).revoke("jti-1", time.time() - 5))
    assert redis.keys == {}
