"""Link Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from linkhop_api.services.link import MAX_URL_LENGTH, validate_long_url
from linkhop_shared.exceptions import InvalidInput


class LinkCreate(BaseModel):
    """Schema for creating a new link."""

    long_url: str = Field(max_length=MAX_URL_LENGTH, description="The URL to shorten")

    @field_validator("long_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject empty and non-absolute URLs."""
        try:
            return validate_long_url(v)
        except InvalidInput as e:
            raise ValueError(str(e)) from e


class LinkResponse(BaseModel):
    """Schema for link response."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    short_url: str
    long_url: str
    created_at: datetime

    @classmethod
    def from_link(cls, link, base_url: str) -> "LinkResponse":
        """Build the response, deriving the full short URL from ``base_url``."""
        return cls(
            code=link.code,
            short_url=f"{base_url.rstrip('/')}/{link.code}",
            long_url=link.long_url,
            created_at=link.created_at,
        )
