"""Analytics business logic services."""

from linkhop_analytics.services.click_storage import (
    ClickStorageService,
    get_storage_service,
)

__all__ = [
    "ClickStorageService",
    "get_storage_service",
]
