"""Shared Pydantic schemas for inter-service communication."""

from datetime import datetime, timezone
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from linkhop_shared.exceptions import ValidationFailed

CLICK_EVENT_SCHEMA_VERSION = 1

# Fields a broker payload must carry; defaults only apply when publishing
REQUIRED_MESSAGE_FIELDS = frozenset({"event_id", "code", "occurred_at"})


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert to UTC, treating naive datetimes as already UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClickEvent(BaseModel):
    """Click event published from the API service to the Analytics service.

    Serialized as JSON into the ``payload`` field of a Redis Stream entry.
    ``event_id`` is generated once per redirect and survives redelivery, so
    the consumer uses it as the idempotency key for persisted clicks.
    """

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={"example": {
            "schema_version": 1,
            "event_id": "550e8400-e29b-41d4-a716-446655440000",
            "code": "Ab12Cd",
            "occurred_at": "2024-01-15T10:30:00Z",
        }},
    )

    schema_version: Literal[1] = Field(
        default=CLICK_EVENT_SCHEMA_VERSION,
        description="Version of the message layout",
    )
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique identifier of the click, stable across redeliveries",
    )
    code: str = Field(min_length=1, max_length=32, description="The short code that was accessed")
    occurred_at: datetime = Field(
        default_factory=utcnow,
        description="Timestamp when the redirect happened",
    )

    @field_validator("occurred_at")
    @classmethod
    def normalize_occurred_at(cls, v: datetime) -> datetime:
        return as_utc(v)

    def to_message(self) -> str:
        """Serialize the event for the broker."""
        return self.model_dump_json()

    @classmethod
    def from_message(cls, payload: str | bytes | None) -> "ClickEvent":
        """Parse a broker payload, raising ValidationFailed when malformed."""
        if not payload:
            raise ValidationFailed("Empty click payload")
        try:
            event = cls.model_validate_json(payload)
        except ValidationError as e:
            raise ValidationFailed(str(e)) from e

        missing = REQUIRED_MESSAGE_FIELDS - event.model_fields_set
        if missing:
            raise ValidationFailed(f"Click payload missing fields: {sorted(missing)}")
        return event
