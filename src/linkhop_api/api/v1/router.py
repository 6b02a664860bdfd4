"""API v1 router - aggregates all v1 endpoints."""

from fastapi import APIRouter

from linkhop_api.api.v1.links import router as links_router

router = APIRouter(prefix="/api/v1")

router.include_router(links_router)


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
