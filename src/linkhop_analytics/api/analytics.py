"""Analytics API endpoints."""

from datetime import datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from linkhop_analytics.core.redis import get_click_stream
from linkhop_analytics.schemas import ClickCountResponse, DeadLetterEntry, DeadLettersResponse
from linkhop_analytics.services.click_storage import ClickStorageService, get_storage_service
from linkhop_shared.exceptions import BrokerUnavailable, StoreUnavailable
from linkhop_shared.schemas import as_utc
from linkhop_shared.streams import ClickStream

logger = structlog.get_logger()

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dead-letters", response_model=DeadLettersResponse)
async def list_dead_letters(
    stream: Annotated[ClickStream, Depends(get_click_stream)],
    limit: int = Query(default=50, ge=1, le=500),
) -> DeadLettersResponse:
    """List the newest dead-lettered click messages."""
    try:
        entries = await stream.dead_letters(count=limit)
    except BrokerUnavailable as e:
        logger.error("Failed to read dead-letter stream", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Broker unavailable",
        ) from e

    return DeadLettersResponse(
        count=len(entries),
        entries=[DeadLetterEntry.model_validate(entry) for entry in entries],
    )


@router.get("/{code}/clicks", response_model=ClickCountResponse)
async def get_click_count(
    code: str,
    storage: Annotated[ClickStorageService, Depends(get_storage_service)],
    since: datetime | None = Query(default=None, description="Inclusive window start"),
    until: datetime | None = Query(default=None, description="Exclusive window end"),
) -> ClickCountResponse:
    """Count stored clicks for a short code, optionally within [since, until)."""
    if since is not None and until is not None and as_utc(since) >= as_utc(until):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="'since' must be earlier than 'until'",
        )

    try:
        clicks = await storage.count_clicks(code, since=since, until=until)
    except StoreUnavailable as e:
        logger.error("Failed to count clicks", short_code=code, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e

    logger.debug("Click count fetched", short_code=code, clicks=clicks)

    return ClickCountResponse(code=code, clicks=clicks, since=since, until=until)
