"""Redis client and click stream for the analytics service."""

import redis.asyncio as redis
import structlog

from linkhop_analytics.core.config import get_settings
from linkhop_shared.streams import ClickStream

settings = get_settings()
logger = structlog.get_logger()

# Global Redis client instance
_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get the Redis client instance, creating it if necessary."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            # Blocking XREADGROUP must not trip the socket timeout
            socket_timeout=settings.consumer_block_ms / 1000 + 5,
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


async def get_click_stream() -> ClickStream:
    """Consumer-group view of the click stream."""
    return ClickStream(
        await get_redis(),
        settings.click_stream,
        group=settings.consumer_group,
        dead_letter_stream=settings.dead_letter_stream,
    )
