"""Shared Redis client used by the rate limiter."""

import redis.asyncio as redis

from cvbuilder.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None, client: redis.Redis | None = None) -> None:
    """Initialize the shared Redis client.

    ``client`` lets tests hand in a ``fakeredis.FakeAsyncRedis`` instead of
    connecting to a real server.
    """
    global _redis

    if _redis is not None:
        return

    if client is not None:
        _redis = client
        return

    settings = get_settings()
    _redis = redis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )

    # Verify connectivity
    await _redis.ping()


async def close_redis() -> None:
    """Close the Redis client and forget it."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Return the shared Redis client.

    Raises RuntimeError if init_redis() has not been called.
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
