# backend/app/middleware/rate_limit.py
"""
Rate limiting with Redis
Sliding window per client IP and scope, applied as a route dependency
"""

import time
import uuid
from typing import Optional

import redis.asyncio as aioredis
from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logging import logger


class RateLimiter:
    """Sliding-window rate limiter backed by a Redis sorted set"""

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.redis = client or aioredis.from_url(settings.REDIS_URL, decode_responses=True)

    async def check_rate_limit(
        self,
        identifier: str,
        limit: int,
        window: int,
        scope: str = "global",
    ) -> bool:
        """
        Check rate limit using sliding window

        Args:
            identifier: Client IP address
            limit: Max requests allowed
            window: Time window in seconds
            scope: Bucket name, so sensitive routes count separately

        Raises:
            HTTPException: 429 when the window is full
        """
        key = f"ratelimit:{identifier}:{scope}"
        now = time.time()

        try:
            # Remove old entries
            await self.redis.zremrangebyscore(key, 0, now - window)

            # Count requests in window
            request_count = await self.redis.zcard(key)

            if request_count >= limit:
                oldest = await self.redis.zrange(key, 0, 0, withscores=True)
                reset_time = oldest[0][1] + window if oldest else now + window
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "Rate limit exceeded",
                        "code": "rate_limited",
                        "retry_after": max(1, int(reset_time - now)),
                    },
                )

            # Add current request
            await self.redis.zadd(key, {f"{now}:{uuid.uuid4().hex[:6]}": now})
            await self.redis.expire(key, window)
        except RedisError as e:
            # Fail open
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")

        return True


_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = RateLimiter()
    return _limiter


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit(request: Request) -> None:
    """Default limit for authenticated API routes"""
    if not settings.RATE_LIMIT_ENABLED:
        return
    await get_rate_limiter().check_rate_limit(
        client_identifier(request),
        limit=settings.RATE_LIMIT_MAX_REQUESTS,
        window=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


async def sensitive_rate_limit(request: Request) -> None:
    """Tighter limit for tenant lifecycle and billing routes"""
    if not settings.RATE_LIMIT_ENABLED:
        return
    await get_rate_limiter().check_rate_limit(
        client_identifier(request),
        limit=settings.RATE_LIMIT_SENSITIVE_MAX_REQUESTS,
        window=settings.RATE_LIMIT_WINDOW_SECONDS,
        scope="sensitive",
    )
