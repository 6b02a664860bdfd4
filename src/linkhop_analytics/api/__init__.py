"""API routers for the analytics service."""

from linkhop_analytics.api.analytics import router as analytics_router

__all__ = ["analytics_router"]
