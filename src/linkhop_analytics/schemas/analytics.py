"""Pydantic schemas for analytics API responses."""

from datetime import datetime

from pydantic import BaseModel, Field


class ClickCountResponse(BaseModel):
    """Stored clicks for a short code within a time window."""

    code: str
    clicks: int = Field(description="Number of stored click records")
    since: datetime | None = Field(default=None, description="Inclusive window start")
    until: datetime | None = Field(default=None, description="Exclusive window end")


class DeadLetterEntry(BaseModel):
    """A click message that exhausted its delivery attempts."""

    id: str = Field(description="Entry ID in the dead-letter stream")
    source_id: str | None = Field(default=None, description="Entry ID in the click stream")
    reason: str | None = None
    deliveries: int | None = None
    dead_lettered_at: datetime | None = None
    payload: str | None = Field(default=None, description="Original message payload")


class DeadLettersResponse(BaseModel):
    """Newest dead-lettered messages, newest first."""

    count: int
    entries: list[DeadLetterEntry]
