import asyncio

import pytest

from storyhub import core
from storyhub.cache import check_rate_limit


class FakeRedis:
    """Minimal async Redis; every call yields to the loop so requests interleave."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    async def get(self, key):
        await asyncio.sleep(0)
        return self.values.get(key)

    async def setex(self, key, ttl, value):
        await asyncio.sleep(0)
        self.values[key] = value
        self.ttls[key] = ttl

    async def incrby(self, key, amount):
        await asyncio.sleep(0)
        self.values[key] = int(self.values.get(key, 0)) + amount
        return self.values[key]

    async def expire(self, key, ttl):
        await asyncio.sleep(0)
        self.ttls[key] = ttl
        return True


@pytest.fixture
def redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(core, 'REDIS', fake)
    return fake


@pytest.mark.asyncio
async def test_concurrent_requests_respect_the_limit(redis):
    allowed = await asyncio.gather(*[check_rate_limit(1, 'story_chunk', limit=3, window=60) for _ in range(6)])
    assert allowed.count(True) == 3
    assert redis.values['rate:rate_limit:1:story_chunk'] == 6
    assert redis.ttls['rate:rate_limit:1:story_chunk'] == 60


@pytest.mark.asyncio
async def test_limits_are_per_user_and_action(redis):
    assert await check_rate_limit(1, 'story_like', limit=1)
    assert not await check_rate_limit(1, 'story_like', limit=1)
    assert await check_rate_limit(2, 'story_like', limit=1)
    assert await check_rate_limit(1, 'story_comment', limit=1)


@pytest.mark.asyncio
async def test_without_redis_requests_are_allowed(monkeypatch):
    monkeypatch.setattr(core, 'REDIS', None)
    assert all([await check_rate_limit(1, 'story_chunk', limit=1) for _ in range(3)])
