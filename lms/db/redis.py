"""Redis connection management.

Redis holds exactly one thing in this service: the revoked-token set
(see services/token_blacklist.py).  That check runs on every
authenticated request and the entries expire on their own, so an
in-memory store with built-in TTLs is the right home for it.

When REDIS_URL is None (local dev, tests) the application context uses
the in-memory blacklist instead and no Redis server is needed.  With
several API instances behind a load balancer that fallback is wrong:
a logout on one instance would not be seen by the others.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


def create_redis(redis_url: str) -> aioredis.Redis:  # type: ignore[type-arg]
    return aioredis.from_url(
        redis_url,
        decode_responses=True,  # str instead of bytes
        max_connections=20,
    )


async def ping_redis(client: aioredis.Redis) -> bool:  # type: ignore[type-arg]
    """Connectivity probe.  Logs and returns False instead of raising.

    Startup keeps going when Redis is down; /ready reports it.
    """
    try:
        await client.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except Exception:
        logger.exception("Redis ping failed")
        return False
    return True
