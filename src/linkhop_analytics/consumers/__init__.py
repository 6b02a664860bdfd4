"""Redis Streams consumers for click events."""

from linkhop_analytics.consumers.click_consumer import (
    ClickEventConsumer,
    ClickEventProcessor,
    Outcome,
    ProcessingResult,
    get_consumer,
    start_consumer,
    stop_consumer,
)

__all__ = [
    "ClickEventConsumer",
    "ClickEventProcessor",
    "Outcome",
    "ProcessingResult",
    "get_consumer",
    "start_consumer",
    "stop_consumer",
]
