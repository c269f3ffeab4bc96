"""
Redis cache management.
Provides the shared connection and keyed counters that must stay consistent
across every instance of the service.
"""
import logging
from typing import Optional
from redis import asyncio as aioredis
from redis.exceptions import RedisError
from portal.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis cache manager with connection pooling."""

    def __init__(self):
        """Initialize Redis connection pool."""
        self.redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if not settings.redis_url:
            logger.warning("No Redis URL provided - shared counters are disabled")
            self.redis = None
            return

        try:
            self.redis = aioredis.from_url(
                settings.redis_url,
                password=settings.redis_password if settings.redis_password else None,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            # Test the connection
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except Exception as e:
            logger.warning(f"Could not connect to Redis: {e}")
            self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()

    async def ping(self) -> bool:
        """Check the connection is alive."""
        if not self.redis:
            return False

        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def get(self, key: str) -> Optional[str]:
        """
        Get raw value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found or Redis is unreachable
        """
        if not self.redis:
            return None

        try:
            return await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Args:
            key: Cache key

        Returns:
            True if key was deleted
        """
        if not self.redis:
            return False

        try:
            return bool(await self.redis.delete(key))
        except RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def increment(self, key: str, amount: int = 1) -> int:
        """
        Increment counter in cache.

        Args:
            key: Cache key
            amount: Amount to increment by

        Returns:
            New value after increment, 0 when Redis is unreachable
        """
        if not self.redis:
            return 0

        try:
            return await self.redis.incrby(key, amount)
        except RedisError as e:
            logger.warning(f"Redis increment failed for {key}: {e}")
            return 0

    async def expire(self, key: str, ttl: int) -> bool:
        """
        Set expiration time for a key.

        Args:
            key: Cache key
            ttl: Time to live in seconds

        Returns:
            True if expiration was set
        """
        if not self.redis:
            return False

        try:
            return bool(await self.redis.expire(key, ttl))
        except RedisError as e:
            logger.warning(f"Redis expire failed for {key}: {e}")
            return False


# Global cache instance
cache = RedisCache()


class KeyedCounter:
    """
    Counter with a TTL window, keyed by an arbitrary string.

    Backed by the shared Redis cache so that every process sees the same
    count. The window starts at the first increment of a key.
    """

    def __init__(self, namespace: str, ttl: int, backend: RedisCache = cache):
        self.namespace = namespace
        self.ttl = ttl
        self.backend = backend

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def increment(self, key: str) -> int:
        """Increment the counter, starting the window on first use."""
        value = await self.backend.increment(self._key(key))
        if value == 1:
            await self.backend.expire(self._key(key), self.ttl)
        return value

    async def get(self, key: str) -> int:
        """Current count, 0 when absent or expired."""
        value = await self.backend.get(self._key(key))
        return int(value) if value is not None else 0

    async def clear(self, key: str) -> bool:
        """Reset the counter."""
        return await self.backend.delete(self._key(key))
