"""Linkhop Shared - Common schemas, errors and broker access for Linkhop services."""

from linkhop_shared.schemas import ClickEvent
from linkhop_shared.streams import ClickStream, StreamMessage

__all__ = ["ClickEvent", "ClickStream", "StreamMessage"]
