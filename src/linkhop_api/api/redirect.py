"""Redirect endpoint for short links."""

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from linkhop_api.core.deps import LinkServiceDep
from linkhop_api.core.observability import record_redirect
from linkhop_api.core.rate_limit import RATE_LIMIT_REDIRECT, limiter
from linkhop_shared.exceptions import NotFound, StoreUnavailable

logger = structlog.get_logger()

router = APIRouter(tags=["redirect"])


@router.get("/{short_code}")
@limiter.limit(RATE_LIMIT_REDIRECT)
async def redirect_to_original(
    request: Request,
    short_code: str,
    service: LinkServiceDep,
) -> RedirectResponse:
    """Redirect a short code to its original URL.

    The service checks the cache, falls back to the database, and hands a
    click event to the publisher without waiting for the broker.
    """
    try:
        long_url = await service.resolve(short_code)
    except NotFound:
        logger.info("Redirect failed - link not found", short_code=short_code)
        record_redirect(404)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Link not found",
        )
    except StoreUnavailable as e:
        # Distinct from 404: the code may exist, we just can't tell right now
        logger.warning("Redirect failed - store unavailable", short_code=short_code, error=str(e))
        record_redirect(503)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
        )

    logger.info("Redirect", short_code=short_code)
    record_redirect(307)

    return RedirectResponse(
        url=long_url,
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
