"""FastAPI application entry point for Analytics service."""

from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator

import structlog
from fastapi import Depends, FastAPI

from linkhop_analytics.api import analytics_router
from linkhop_analytics.consumers import get_consumer, start_consumer, stop_consumer
from linkhop_analytics.core.config import get_settings
from linkhop_analytics.core.database import close_db
from linkhop_analytics.core.observability import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    setup_observability,
)
from linkhop_analytics.core.redis import close_redis, get_click_stream
from linkhop_analytics.services import get_storage_service
from linkhop_shared.exceptions import BrokerUnavailable
from linkhop_shared.streams import ClickStream

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting Linkhop Analytics", version=settings.app_version)

    await start_consumer()
    logger.info("Click event consumer started")

    yield

    # Shutdown
    logger.info("Shutting down Linkhop Analytics")

    # Let the in-flight batch settle before connections go away
    await stop_consumer()
    logger.info("Click event consumer stopped")

    await close_redis()
    await close_db()
    logger.info("Connections closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Analytics service for short link click tracking",
    lifespan=lifespan,
)

# Set up observability (logging, tracing, metrics, error tracking)
setup_observability(app)

# Add request middleware (order matters: RequestID first, then logging)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

# Include routers
app.include_router(analytics_router)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    consumer = get_consumer()
    running = consumer is not None and consumer.is_running
    return {
        "status": "healthy" if running else "degraded",
        "service": "analytics",
        "consumer_running": running,
    }


@app.get("/stats")
async def service_stats(stream: Annotated[ClickStream, Depends(get_click_stream)]) -> dict:
    """Get service statistics."""
    consumer = get_consumer()
    storage = get_storage_service()

    try:
        pending = await stream.pending_count()
    except BrokerUnavailable as e:
        logger.warning("Failed to read pending count", error=str(e))
        pending = None

    return {
        "service": "analytics",
        "version": settings.app_version,
        "consumer": consumer.stats if consumer is not None else None,
        "storage": storage.stats,
        "pending_messages": pending,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Welcome to Linkhop Analytics", "version": settings.app_version}
