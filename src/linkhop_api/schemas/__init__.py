"""Pydantic schemas."""

from linkhop_api.schemas.link import LinkCreate, LinkResponse

__all__ = [
    "LinkCreate",
    "LinkResponse",
]
