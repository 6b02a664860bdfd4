"""Link service: short code generation, create and cache-aside resolve."""

import secrets
import string
from typing import Callable, Protocol

import structlog
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from linkhop_api.core.observability import record_cache_result, record_link_operation
from linkhop_api.core.redis import MISSING_SENTINEL, LinkCache
from linkhop_api.models.link import ShortLink
from linkhop_api.services.store import CodeConflict, LinkStore
from linkhop_shared.exceptions import (
    CacheUnavailable,
    GenerationExhausted,
    InvalidInput,
    NotFound,
)
from linkhop_shared.schemas import ClickEvent

logger = structlog.get_logger()

# Characters for random short code generation (base62)
SHORT_CODE_CHARS = string.ascii_lowercase + string.ascii_uppercase + string.digits
SHORT_CODE_LENGTH = 7
MAX_URL_LENGTH = 2048

_http_url = TypeAdapter(AnyHttpUrl)


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    """Generate a random short code using base62 characters."""
    return "".join(secrets.choice(SHORT_CODE_CHARS) for _ in range(length))


def validate_long_url(long_url: str) -> str:
    """Check that ``long_url`` is an absolute http(s) URL.

    Returns the stripped input unchanged otherwise, so a resolve yields
    exactly what was submitted rather than a normalized form.
    """
    candidate = (long_url or "").strip()
    if not candidate:
        raise InvalidInput("URL must not be empty")
    if len(candidate) > MAX_URL_LENGTH:
        raise InvalidInput(f"URL must be at most {MAX_URL_LENGTH} characters")
    try:
        _http_url.validate_python(candidate)
    except ValidationError as e:
        raise InvalidInput(f"Not a valid absolute http(s) URL: {candidate!r}") from e
    return candidate


class ClickHandoff(Protocol):
    def publish(self, event: ClickEvent) -> bool: ...


class LinkService:
    """Shortener/resolver over the link store, with the cache as an optimization.

    Flow for ``resolve``:
    1. Check the cache; a hit returns without touching the store
    2. On a miss, query the store and populate the cache with a TTL
    3. Unknown codes raise NotFound (optionally cached as a negative entry)
    4. Successful resolves hand a click event to the publisher
    """

    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        publisher: ClickHandoff,
        cache_ttl: int = 3600,
        negative_cache_ttl: int = 0,
        code_length: int = SHORT_CODE_LENGTH,
        max_attempts: int = 5,
        code_factory: Callable[[int], str] = generate_short_code,
    ):
        self._store = store
        self._cache = cache
        self._publisher = publisher
        self._cache_ttl = cache_ttl
        self._negative_cache_ttl = negative_cache_ttl
        self._code_length = code_length
        self._max_attempts = max(1, max_attempts)
        self._code_factory = code_factory

    async def create(self, long_url: str) -> ShortLink:
        """Create a new short link for ``long_url``.

        Raises InvalidInput for malformed URLs and GenerationExhausted when
        every attempt collided with an existing code.
        """
        long_url = validate_long_url(long_url)

        for attempt in range(1, self._max_attempts + 1):
            code = self._code_factory(self._code_length)
            try:
                link = await self._store.insert(code, long_url)
            except CodeConflict:
                record_link_operation("code_collision")
                logger.info("Short code collision, regenerating", short_code=code, attempt=attempt)
                continue

            record_link_operation("create")
            # Write-through so the first redirect skips the cache miss
            await self._cache_set(code, long_url)
            logger.info("Link created", short_code=code)
            return link

        logger.error(
            "Short code generation exhausted",
            attempts=self._max_attempts,
            code_length=self._code_length,
        )
        raise GenerationExhausted(
            f"Unable to generate a unique short code after {self._max_attempts} attempts"
        )

    async def lookup(self, code: str) -> str:
        """Resolve ``code`` through the cache and store without recording a click."""
        cached = await self._cache_get(code)
        if cached == MISSING_SENTINEL:
            record_cache_result("negative_hit")
            raise NotFound(code)
        if cached is not None:
            record_cache_result("hit")
            return cached

        record_cache_result("miss")
        link = await self._store.get(code)
        if link is None:
            if self._negative_cache_ttl > 0:
                await self._cache_set_missing(code)
            raise NotFound(code)

        await self._cache_set(code, link.long_url)
        return link.long_url

    async def resolve(self, code: str) -> str:
        """Resolve ``code`` for a redirect and emit a click event."""
        long_url = await self.lookup(code)
        record_link_operation("resolve")
        self._emit_click(code)
        return long_url

    async def get_link(self, code: str) -> ShortLink:
        """Fetch the full link record from the store."""
        link = await self._store.get(code)
        if link is None:
            raise NotFound(code)
        return link

    def _emit_click(self, code: str) -> None:
        try:
            self._publisher.publish(ClickEvent(code=code))
        except Exception as e:
            # Analytics must never fail a redirect
            logger.warning("Failed to hand off click event", short_code=code, error=str(e))

    async def _cache_get(self, code: str) -> str | None:
        try:
            return await self._cache.get(code)
        except CacheUnavailable as e:
            record_cache_result("error")
            logger.warning("Cache unavailable, falling back to store", short_code=code, error=str(e))
            return None

    async def _cache_set(self, code: str, long_url: str) -> None:
        try:
            await self._cache.set(code, long_url, self._cache_ttl)
        except CacheUnavailable as e:
            logger.warning("Cache write failed", short_code=code, error=str(e))

    async def _cache_set_missing(self, code: str) -> None:
        try:
            await self._cache.set_missing(code, self._negative_cache_ttl)
        except CacheUnavailable as e:
            logger.warning("Negative cache write failed", short_code=code, error=str(e))
