"""Link endpoints."""

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from linkhop_api.core.config import get_settings
from linkhop_api.core.deps import LinkServiceDep
from linkhop_api.core.rate_limit import RATE_LIMIT_CREATE_LINK, limiter
from linkhop_api.schemas.link import LinkCreate, LinkResponse
from linkhop_shared.exceptions import (
    GenerationExhausted,
    InvalidInput,
    NotFound,
    StoreUnavailable,
)

settings = get_settings()
logger = structlog.get_logger()

router = APIRouter(prefix="/links", tags=["links"])


@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_CREATE_LINK)
async def create_link(
    request: Request,
    link_data: LinkCreate,
    service: LinkServiceDep,
) -> LinkResponse:
    """Create a new shortened link with a generated short code."""
    try:
        link = await service.create(link_data.long_url)
    except InvalidInput as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except StoreUnavailable as e:
        logger.warning("Link creation failed - store unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
        )
    except GenerationExhausted:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to allocate a short code",
        )

    return LinkResponse.from_link(link, settings.base_url)


@router.get("/{code}", response_model=LinkResponse)
async def get_link(
    code: str,
    service: LinkServiceDep,
) -> LinkResponse:
    """Get a link by its short code without recording a click."""
    try:
        link = await service.get_link(code)
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Link not found",
        )
    except StoreUnavailable as e:
        logger.warning("Link lookup failed - store unavailable", short_code=code, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
        )
    return LinkResponse.from_link(link, settings.base_url)
