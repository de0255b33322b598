"""
Redis-backed cache helpers and per-user rate limiting.

Every helper degrades to a no-op when Redis is not connected, so requests are
never refused because the cache is down.
"""
import json
from typing import Any, Optional
from . import core
import logging

logger = logging.getLogger(__name__)


class CacheManager:
    """Thin JSON cache over the shared Redis connection"""

    def __init__(self):
        self.default_ttl = 3600  # 1 hour default TTL

    def _make_key(self, key: str, prefix: str = "") -> str:
        if prefix:
            return f"{prefix}:{key}"
        return key

    async def set(self, key: str, value: Any, ttl: int = None, prefix: str = "") -> bool:
        """Set cache value with TTL"""
        if not core.REDIS:
            return False

        cache_key = self._make_key(key, prefix)
        ttl = ttl or self.default_ttl

        try:
            if not isinstance(value, (str, int, float, bytes)):
                value = json.dumps(value)
            await core.REDIS.setex(cache_key, ttl, value)
            return True
        except Exception as e:
            logger.error(f"Cache set failed for key {cache_key}: {str(e)}")
            return False

    async def get(self, key: str, prefix: str = "") -> Optional[Any]:
        """Get cache value"""
        if not core.REDIS:
            return None

        cache_key = self._make_key(key, prefix)

        try:
            value = await core.REDIS.get(cache_key)
            if value is None:
                return None
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value.decode() if isinstance(value, bytes) else value
        except Exception as e:
            logger.error(f"Cache get failed for key {cache_key}: {str(e)}")
            return None

    async def increment(self, key: str, amount: int = 1, prefix: str = "") -> Optional[int]:
        """Increment cache value atomically"""
        if not core.REDIS:
            return None

        cache_key = self._make_key(key, prefix)

        try:
            return await core.REDIS.incrby(cache_key, amount)
        except Exception as e:
            logger.error(f"Cache increment failed for key {cache_key}: {str(e)}")
            return None

    async def expire(self, key: str, ttl: int, prefix: str = "") -> bool:
        """Set a TTL on an existing key"""
        if not core.REDIS:
            return False

        cache_key = self._make_key(key, prefix)

        try:
            return bool(await core.REDIS.expire(cache_key, ttl))
        except Exception as e:
            logger.error(f"Cache expire failed for key {cache_key}: {str(e)}")
            return False


cache = CacheManager()


async def check_rate_limit(user_id: int, action: str, limit: int = 100, window: int = 3600) -> bool:
    """Check if user is within rate limit"""
    key = f"rate_limit:{user_id}:{action}"

    # one INCR per request; the first one opens the window
    current = await cache.increment(key, 1, "rate")
    if current is None:
        return True
    if current == 1:
        await cache.expire(key, window, "rate")
    return current <= limit
