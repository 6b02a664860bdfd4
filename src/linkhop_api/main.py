"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from linkhop_api.api.redirect import router as redirect_router
from linkhop_api.api.v1.router import router as v1_router
from linkhop_api.core.config import get_settings
from linkhop_api.core.database import close_db
from linkhop_api.core.deps import get_click_publisher
from linkhop_api.core.observability import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    setup_observability,
)
from linkhop_api.core.rate_limit import limiter
from linkhop_api.core.redis import close_redis

settings = get_settings()

# Get logger (will be configured by setup_observability)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting Linkhop API", version=settings.app_version)
    publisher = await get_click_publisher()
    await publisher.start()

    yield

    logger.info("Shutting down Linkhop API")
    await publisher.stop(drain_timeout=settings.publisher_drain_timeout_seconds)
    await close_redis()
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="URL shortener with asynchronous click tracking",
    lifespan=lifespan,
)

# Set up observability (logging, tracing, metrics, Sentry)
setup_observability(app)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Middleware stack (first added = outermost = runs last on request, first on response)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.include_router(v1_router)

# Redirect router - must be after v1_router so /api/v1/* routes take precedence
app.include_router(redirect_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Welcome to Linkhop API", "version": settings.app_version}
