"""Pydantic schemas for analytics."""

from linkhop_analytics.schemas.analytics import (
    ClickCountResponse,
    DeadLetterEntry,
    DeadLettersResponse,
)

__all__ = [
    "ClickCountResponse",
    "DeadLetterEntry",
    "DeadLettersResponse",
]
