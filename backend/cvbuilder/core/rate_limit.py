"""Fixed-window rate limiting backed by Redis.

Each (bucket, subject, window) gets a counter key that is INCR'd per request
and expires with its window. Redis being down never blocks a request: the
limiter logs and lets it through.
"""

import time

import structlog
from fastapi import Depends, HTTPException, Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from cvbuilder.core.auth import AuthUser, require_auth
from cvbuilder.core.config import get_settings
from cvbuilder.db.redis import get_redis

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Count hits per subject in fixed windows of ``window_seconds``."""

    def __init__(self, redis: Redis, bucket: str, limit: int, window_seconds: int = 60):
        self.redis = redis
        self.bucket = bucket
        self.limit = limit
        self.window_seconds = window_seconds

    def _key(self, subject: str, now: float) -> str:
        window = int(now // self.window_seconds)
        return f"ratelimit:{self.bucket}:{subject}:{window}"

    async def hit(self, subject: str, now: float | None = None) -> tuple[bool, int]:
        """Record one hit for ``subject``.

        Args:
            subject: User id or client IP
            now: Current epoch seconds (for deterministic testing)

        Returns:
            Tuple of (allowed, count_in_window)
        """
        now = time.time() if now is None else now
        key = self._key(subject, now)

        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, self.window_seconds)

        return count <= self.limit, count


async def _enforce(bucket: str, limit: int, subject: str) -> None:
    try:
        limiter = RateLimiter(get_redis(), bucket, limit)
        allowed, count = await limiter.hit(subject)
    except (RedisError, RuntimeError, OSError) as e:
        logger.warning("rate_limit_unavailable", bucket=bucket, error=str(e), error_type=type(e).__name__)
        return

    if not allowed:
        logger.info("rate_limit_exceeded", bucket=bucket, subject=subject, count=count, limit=limit)
        raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")


def _client_ip(request: Request) -> str:
    # Peer address only. Behind a proxy, uvicorn --proxy-headers with
    # --forwarded-allow-ips rewrites it from trusted hops.
    return request.client.host if request.client else "unknown"


async def rate_limit_auth(request: Request) -> None:
    """Dependency for unauthenticated auth endpoints; limited per client IP."""
    await _enforce("auth", get_settings().rate_limit_auth_per_minute, _client_ip(request))


async def rate_limit_ai(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """Dependency for AI endpoints; authenticates, then limits per user."""
    await _enforce("ai", get_settings().rate_limit_ai_per_minute, str(user.user_id))
    return user
