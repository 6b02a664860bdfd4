"""Redis client and link cache backends.

The cache is an optimization, never the source of truth. ``RedisLinkCache``
raises ``CacheUnavailable`` on any Redis failure or timeout and the resolver
degrades to the database; ``NullLinkCache`` is used when caching is disabled.
"""

import asyncio
from typing import Protocol

import redis.asyncio as redis
import structlog

from linkhop_api.core.config import get_settings
from linkhop_shared.exceptions import CacheUnavailable

settings = get_settings()
logger = structlog.get_logger()

# Global Redis client instance
_redis_client: redis.Redis | None = None

# Cache key prefix
LINK_CACHE_PREFIX = "link:"

# Stored under a code known to be absent (negative caching)
MISSING_SENTINEL = "\x00missing"


async def get_redis() -> redis.Redis:
    """Get the Redis client instance, creating it if necessary."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.cache_timeout_seconds,
            socket_connect_timeout=settings.cache_timeout_seconds,
        )
        logger.info("Redis client initialized", url=settings.redis_url)
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


def _link_cache_key(code: str) -> str:
    """Generate cache key for a link."""
    return f"{LINK_CACHE_PREFIX}{code}"


class LinkCache(Protocol):
    """Key-value cache of code -> long URL with TTL eviction."""

    async def get(self, code: str) -> str | None:
        """Return the cached long URL, MISSING_SENTINEL, or None on a miss."""
        ...

    async def set(self, code: str, long_url: str, ttl: int) -> None: ...

    async def set_missing(self, code: str, ttl: int) -> None: ...

    async def delete(self, code: str) -> None: ...


class RedisLinkCache:
    """Link cache backed by Redis string keys."""

    def __init__(self, client: redis.Redis, timeout: float = 0.5):
        self._client = client
        self._timeout = timeout

    async def get(self, code: str) -> str | None:
        value = await self._call("get", self._client.get(_link_cache_key(code)), code)
        logger.debug("Cache hit" if value is not None else "Cache miss", short_code=code)
        return value

    async def set(self, code: str, long_url: str, ttl: int) -> None:
        await self._call("set", self._client.setex(_link_cache_key(code), ttl, long_url), code)
        logger.debug("Link cached", short_code=code, ttl=ttl)

    async def set_missing(self, code: str, ttl: int) -> None:
        await self._call("set", self._client.setex(_link_cache_key(code), ttl, MISSING_SENTINEL), code)

    async def delete(self, code: str) -> None:
        await self._call("delete", self._client.delete(_link_cache_key(code)), code)
        logger.debug("Link cache invalidated", short_code=code)

    async def _call(self, operation: str, awaitable, code: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (redis.RedisError, asyncio.TimeoutError) as e:
            raise CacheUnavailable(f"Redis {operation} failed for {code}: {e!r}") from e


class NullLinkCache:
    """Pass-through cache: every lookup misses, writes are discarded."""

    async def get(self, code: str) -> str | None:
        return None

    async def set(self, code: str, long_url: str, ttl: int) -> None:
        return None

    async def set_missing(self, code: str, ttl: int) -> None:
        return None

    async def delete(self, code: str) -> None:
        return None
