"""Click storage service for persisting click events to the database."""

import asyncio
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkhop_analytics.core.config import get_settings
from linkhop_analytics.core.database import get_session_factory
from linkhop_analytics.core.observability import record_click_stored
from linkhop_analytics.models.click import ClickRecord
from linkhop_shared.exceptions import PersistFailed, StoreUnavailable
from linkhop_shared.schemas import ClickEvent, as_utc

logger = structlog.get_logger()


class ClickStorageService:
    """Service for storing click events in the database.

    Each event is written and committed on its own, so the consumer can
    acknowledge a message as soon as its write is durable. ``event_id`` is
    unique in the clicks table: storing the same event twice is a no-op.

    Usage:
        service = ClickStorageService()
        inserted = await service.store_click(event)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        timeout: float = 5.0,
    ):
        """Initialize the click storage service.

        Args:
            session_factory: Session factory. Defaults to the service database.
            timeout: Seconds allowed for one write before it counts as failed.
        """
        self._session_factory = session_factory
        self._timeout = timeout
        self._clicks_stored = 0
        self._duplicates = 0

    async def store_click(self, event: ClickEvent) -> bool:
        """Persist one click event.

        Returns True when a row was inserted and False when the event was
        already stored. Raises PersistFailed on database errors or timeout.
        """
        try:
            inserted = await asyncio.wait_for(self._insert(event), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise PersistFailed(f"Click insert timed out after {self._timeout}s") from e

        record_click_stored(duplicate=not inserted)
        if inserted:
            self._clicks_stored += 1
        else:
            self._duplicates += 1
        return inserted

    async def _insert(self, event: ClickEvent) -> bool:
        async with self._new_session() as session:
            session.add(
                ClickRecord(
                    event_id=event.event_id,
                    code=event.code,
                    clicked_at=event.occurred_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(
                    "Duplicate click event ignored",
                    event_id=str(event.event_id),
                    short_code=event.code,
                )
                return False
            except (SQLAlchemyError, OSError) as e:
                logger.error(
                    "Failed to store click",
                    event_id=str(event.event_id),
                    short_code=event.code,
                    error=str(e),
                )
                raise PersistFailed(str(e)) from e

        logger.debug("Click stored", event_id=str(event.event_id), short_code=event.code)
        return True

    async def count_clicks(
        self,
        code: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> int:
        """Count stored clicks for ``code`` in the half-open window [since, until).

        Raises StoreUnavailable on database errors or timeout.
        """
        query = select(func.count(ClickRecord.id)).where(ClickRecord.code == code)
        if since is not None:
            query = query.where(ClickRecord.clicked_at >= as_utc(since))
        if until is not None:
            query = query.where(ClickRecord.clicked_at < as_utc(until))

        try:
            return await asyncio.wait_for(self._count(query), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Click count timed out after {self._timeout}s") from e
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailable(str(e)) from e

    async def _count(self, query) -> int:
        async with self._new_session() as session:
            result = await session.execute(query)
            return int(result.scalar() or 0)

    def _new_session(self) -> AsyncSession:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory()

    @property
    def stats(self) -> dict:
        """Get storage statistics."""
        return {
            "clicks_stored": self._clicks_stored,
            "duplicates": self._duplicates,
        }


# Global service instance
_storage_service: ClickStorageService | None = None


def get_storage_service() -> ClickStorageService:
    """Get the global storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = ClickStorageService(timeout=get_settings().store_timeout_seconds)
    return _storage_service
