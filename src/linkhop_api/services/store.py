"""Link store: durable create/lookup of short links in PostgreSQL."""

import asyncio
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkhop_api.core.observability import record_store_lookup
from linkhop_api.models.link import ShortLink
from linkhop_shared.exceptions import LinkhopError, StoreUnavailable

logger = structlog.get_logger()


class CodeConflict(LinkhopError):
    """Raised when an insert collides with an existing short code."""

    error_code = "link:code_conflict"


class LinkStore(Protocol):
    """Authoritative storage for short links."""

    async def insert(self, code: str, long_url: str) -> ShortLink:
        """Insert a new link, raising CodeConflict if the code is taken."""
        ...

    async def get(self, code: str) -> ShortLink | None: ...


class SqlLinkStore:
    """LinkStore backed by SQLAlchemy async sessions.

    Each call opens its own session, so the store can be shared by all
    concurrent requests. Every call is bounded by ``timeout`` seconds.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 2.0):
        self._session_factory = session_factory
        self._timeout = timeout

    async def insert(self, code: str, long_url: str) -> ShortLink:
        try:
            return await asyncio.wait_for(self._insert(code, long_url), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Insert of {code} timed out after {self._timeout}s") from e

    async def get(self, code: str) -> ShortLink | None:
        record_store_lookup()
        try:
            return await asyncio.wait_for(self._get(code), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Lookup of {code} timed out after {self._timeout}s") from e

    async def _insert(self, code: str, long_url: str) -> ShortLink:
        async with self._session_factory() as session:
            link = ShortLink(code=code, long_url=long_url)
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise CodeConflict(f"Short code '{code}' is already taken") from e
            except (SQLAlchemyError, OSError) as e:
                logger.error("Failed to store link", short_code=code, error=str(e))
                raise StoreUnavailable(str(e)) from e
            return link

    async def _get(self, code: str) -> ShortLink | None:
        async with self._session_factory() as session:
            try:
                result = await session.execute(select(ShortLink).where(ShortLink.code == code))
            except (SQLAlchemyError, OSError) as e:
                logger.error("Failed to look up link", short_code=code, error=str(e))
                raise StoreUnavailable(str(e)) from e
            return result.scalar_one_or_none()
