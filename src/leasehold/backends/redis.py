"""Redis client for leasehold.

Provides a shared async Redis client using redis-py connection pooling.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, cast

import redis.asyncio as redis

from leasehold.config import settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Module-level connection pool
_redis_client: Redis | None = None


async def get_redis(url: str | None = None) -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            url or settings.redis_url,
            encoding="utf-8",
            decode_responses=False,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


async def health_check(client: Redis) -> bool:
    """Check Redis connectivity."""
    try:
        await cast(Awaitable[bool], client.ping())
        return True
    except redis.RedisError:
        return False


def to_str(value: bytes | str) -> str:
    """Decode a Redis reply made with ``decode_responses=False``."""
    return value.decode() if isinstance(value, bytes) else value
