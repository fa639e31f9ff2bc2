"""
Tests for the Redis sliding-window rate limiter
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError

from app.middleware.rate_limit import RateLimiter, client_identifier


class FakeRedis:
    """In-memory stand-in for the sorted-set commands the limiter uses"""

    def __init__(self):
        self.sets = {}

    async def zremrangebyscore(self, key, low, high):
        entries = self.sets.get(key, {})
        self.sets[key] = {m: s for m, s in entries.items() if not (low <= s <= high)}

    async def zcard(self, key):
        return len(self.sets.get(key, {}))

    async def zrange(self, key, start, end, withscores=False):
        ordered = sorted(self.sets.get(key, {}).items(), key=lambda item: item[1])
        return ordered[start:end + 1]

    async def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)

    async def expire(self, key, seconds):
        return True


@pytest.mark.asyncio
class TestRateLimiter:

    async def test_blocks_after_limit(self):
        limiter = RateLimiter(client=FakeRedis())

        for _ in range(3):
            assert await limiter.check_rate_limit("1.2.3.4", limit=3, window=60)

        with pytest.raises(HTTPException) as exc_info:
            await limiter.check_rate_limit("1.2.3.4", limit=3, window=60)

        assert exc_info.value.status_code == 429
        assert exc_info.value.detail["code"] == "rate_limited"
        assert exc_info.value.detail["retry_after"] >= 1

    async def test_scopes_and_clients_are_independent(self):
        limiter = RateLimiter(client=FakeRedis())

        await limiter.check_rate_limit("1.2.3.4", limit=1, window=60)
        assert await limiter.check_rate_limit("1.2.3.4", limit=1, window=60, scope="sensitive")
        assert await limiter.check_rate_limit("5.6.7.8", limit=1, window=60)

    async def test_redis_outage_fails_open(self):
        broken = AsyncMock()
        broken.zremrangebyscore.side_effect = RedisConnectionError("connection refused")
        limiter = RateLimiter(client=broken)

        assert await limiter.check_rate_limit("1.2.3.4", limit=1, window=60)


class TestClientIdentifier:

    def test_prefers_forwarded_for(self):
        request = MagicMock()
        request.headers = {"x-forwarded-for": "10.0.0.1, 172.16.0.1"}
        assert client_identifier(request) == "10.0.0.1"

    def test_falls_back_to_client_host(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "192.168.1.9"
        assert client_identifier(request) == "192.168.1.9"
