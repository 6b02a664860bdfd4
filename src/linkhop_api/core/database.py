"""Database configuration with SQLAlchemy 2.0 async support for short links."""

from functools import lru_cache

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from linkhop_api.core.config import get_settings

settings = get_settings()

# Naming convention for constraints (helps with migrations)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models of the API service."""

    metadata = MetaData(naming_convention=convention)


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the async engine with connection pooling on first use."""
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,  # Log SQL statements in debug mode
        pool_size=10,  # Number of connections to keep in the pool
        max_overflow=20,  # Additional connections beyond pool_size
        pool_timeout=settings.store_timeout_seconds,  # Seconds to wait for a connection
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,  # Verify connections before use
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for creating database sessions."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def close_db() -> None:
    """Close database connections."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
