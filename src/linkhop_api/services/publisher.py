"""Fire-and-forget click event publisher.

Request handlers call :meth:`ClickPublisher.publish`, which only enqueues the
event into a bounded in-process buffer and returns. A single background task
drains the buffer and appends events to the Redis Stream, retrying with
exponential backoff while the broker is unreachable. Events that cannot be
delivered are dropped and counted: a lost click degrades analytics, never a
redirect.

Usage:
    publisher = ClickPublisher(stream, buffer_size=1000)
    await publisher.start()
    publisher.publish(ClickEvent(code="Ab12Cd"))  # never blocks, never raises
    await publisher.stop()
"""

import asyncio
from typing import Protocol

import structlog

from linkhop_api.core.observability import (
    record_click_dropped,
    record_click_published,
    set_publisher_buffered,
)
from linkhop_shared.exceptions import BrokerUnavailable
from linkhop_shared.schemas import ClickEvent

logger = structlog.get_logger()


class ClickSink(Protocol):
    """Anything that can deliver a click event to the broker."""

    async def publish(self, event: ClickEvent) -> str: ...


class ClickPublisher:
    """Bounded buffer plus background delivery task for click events."""

    def __init__(
        self,
        sink: ClickSink,
        buffer_size: int = 1000,
        publish_timeout: float = 1.0,
        max_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        """Initialize the publisher.

        Args:
            sink: Broker adapter used for delivery.
            buffer_size: Maximum number of events waiting for delivery.
            publish_timeout: Seconds allowed for one delivery attempt.
            max_attempts: Delivery attempts per event before it is dropped.
            retry_backoff: Base delay in seconds, doubled after each failure.
        """
        self._sink = sink
        self._queue: asyncio.Queue[ClickEvent] = asyncio.Queue(maxsize=buffer_size)
        self._publish_timeout = publish_timeout
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff = retry_backoff
        self._task: asyncio.Task | None = None
        self._running = False
        self._published = 0
        self._dropped = 0

    def publish(self, event: ClickEvent) -> bool:
        """Hand an event to the background task without waiting.

        Returns False when the buffer is full and the event was dropped.
        """
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            record_click_dropped("buffer_full")
            logger.warning("Click buffer full, dropping event", short_code=event.code)
            return False
        set_publisher_buffered(self._queue.qsize())
        return True

    async def start(self) -> None:
        """Start the background delivery task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._drain_loop())
        logger.info(
            "Click publisher started",
            buffer_size=self._queue.maxsize,
            max_attempts=self._max_attempts,
        )

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Flush buffered events for up to ``drain_timeout`` seconds, then stop."""
        if not self._running:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Click publisher drain timed out", buffered=self._queue.qsize())

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        remaining = self._discard_buffered()
        if remaining:
            record_click_dropped("shutdown", remaining)

        logger.info(
            "Click publisher stopped",
            published=self._published,
            dropped=self._dropped,
        )

    async def _drain_loop(self) -> None:
        """Deliver buffered events one at a time."""
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            except asyncio.CancelledError:
                self._dropped += 1
                record_click_dropped("shutdown")
                logger.warning("Click event abandoned on shutdown", short_code=event.code)
                raise
            except Exception as e:
                self._dropped += 1
                record_click_dropped("unexpected_error")
                logger.error("Unexpected error publishing click event", short_code=event.code, error=str(e))
            finally:
                self._queue.task_done()
                set_publisher_buffered(self._queue.qsize())

    async def _deliver(self, event: ClickEvent) -> bool:
        """Send one event, retrying with exponential backoff."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                await asyncio.wait_for(self._sink.publish(event), timeout=self._publish_timeout)
            except (BrokerUnavailable, asyncio.TimeoutError) as e:
                logger.warning(
                    "Click event publish failed",
                    short_code=event.code,
                    attempt=attempt,
                    error=repr(e),
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_backoff * 2 ** (attempt - 1))
                continue

            self._published += 1
            record_click_published()
            logger.debug("Click event published", short_code=event.code, event_id=str(event.event_id))
            return True

        self._dropped += 1
        record_click_dropped("broker_unavailable")
        logger.error(
            "Dropping click event after retries",
            short_code=event.code,
            event_id=str(event.event_id),
            attempts=self._max_attempts,
        )
        return False

    def _discard_buffered(self) -> int:
        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            discarded += 1
        self._dropped += discarded
        set_publisher_buffered(0)
        return discarded

    @property
    def is_running(self) -> bool:
        """Check if the delivery task is running."""
        return self._running

    @property
    def stats(self) -> dict:
        """Get publisher statistics."""
        return {
            "running": self._running,
            "buffered": self._queue.qsize(),
            "published": self._published,
            "dropped": self._dropped,
        }
