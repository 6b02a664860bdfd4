"""Dependency injection utilities for FastAPI routes."""

from typing import Annotated

from fastapi import Depends

from linkhop_api.core.config import get_settings
from linkhop_api.core.database import get_session_factory
from linkhop_api.core.redis import LinkCache, NullLinkCache, RedisLinkCache, get_redis
from linkhop_api.services.link import LinkService
from linkhop_api.services.publisher import ClickPublisher
from linkhop_api.services.store import SqlLinkStore
from linkhop_shared.streams import ClickStream

settings = get_settings()

# Global instances, shared by all requests
_publisher: ClickPublisher | None = None
_link_service: LinkService | None = None


async def get_click_publisher() -> ClickPublisher:
    """Get the global click publisher, creating it if necessary."""
    global _publisher
    if _publisher is None:
        stream = ClickStream(
            await get_redis(),
            settings.click_stream,
            maxlen=settings.click_stream_maxlen,
        )
        _publisher = ClickPublisher(
            stream,
            buffer_size=settings.publisher_buffer_size,
            publish_timeout=settings.publisher_timeout_seconds,
            max_attempts=settings.publisher_max_attempts,
            retry_backoff=settings.publisher_retry_backoff_seconds,
        )
    return _publisher


async def get_link_cache() -> LinkCache:
    """Select the cache backend from settings."""
    if not settings.cache_enabled:
        return NullLinkCache()
    return RedisLinkCache(await get_redis(), timeout=settings.cache_timeout_seconds)


async def get_link_service() -> LinkService:
    """Get the global link service instance."""
    global _link_service
    if _link_service is None:
        _link_service = LinkService(
            store=SqlLinkStore(get_session_factory(), timeout=settings.store_timeout_seconds),
            cache=await get_link_cache(),
            publisher=await get_click_publisher(),
            cache_ttl=settings.cache_ttl_seconds,
            negative_cache_ttl=settings.negative_cache_ttl_seconds,
            code_length=settings.short_code_length,
            max_attempts=settings.code_generation_attempts,
        )
    return _link_service


# Type alias for dependency injection
LinkServiceDep = Annotated[LinkService, Depends(get_link_service)]
