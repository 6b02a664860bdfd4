"""Redis Streams consumer for click events.

Per-message lifecycle::

    Delivered -> Validated -> Persisted -> Acked
                           -> ValidationFailed -> Acked (dropped)
                           -> PersistFailed -> left pending -> redelivered
                                            -> ... -> DeadLettered

A message is acknowledged only after its click record is committed. A
message that fails to persist stays in the consumer group's pending list
and is claimed again once it has been idle for ``redelivery_idle_ms``;
after ``max_deliveries`` attempts it is moved to the dead-letter stream.
"""

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import structlog

from linkhop_analytics.core.config import get_settings
from linkhop_analytics.core.observability import (
    record_click_dead_lettered,
    record_click_outcome,
    record_click_processing_time,
    record_click_received,
    set_consumer_running,
)
from linkhop_analytics.core.redis import get_click_stream
from linkhop_analytics.services.click_storage import get_storage_service
from linkhop_shared.exceptions import BrokerUnavailable, PersistFailed, ValidationFailed
from linkhop_shared.schemas import ClickEvent
from linkhop_shared.streams import StreamMessage

logger = structlog.get_logger()

# Persists one event; returns False for an already-stored duplicate
ClickEventHandler = Callable[[ClickEvent], Awaitable[bool]]


class Outcome(str, enum.Enum):
    PERSISTED = "persisted"
    DROPPED = "dropped"
    REQUEUE = "requeue"


@dataclass(frozen=True)
class ProcessingResult:
    """Tagged result of processing one click message."""

    outcome: Outcome
    reason: str = ""
    duplicate: bool = False

    @property
    def should_ack(self) -> bool:
        return self.outcome is not Outcome.REQUEUE


class ClickEventProcessor:
    """Turn a stream message into a processing result.

    Expected failures are reported through the result, never raised:
    malformed messages are DROPPED, transient storage failures REQUEUE.
    """

    def __init__(self, handler: ClickEventHandler):
        self._handler = handler

    async def process(self, message: StreamMessage) -> ProcessingResult:
        try:
            event = ClickEvent.from_message(message.payload)
        except ValidationFailed as e:
            logger.warning(
                "Invalid click message dropped",
                message_id=message.message_id,
                error=str(e),
                data=(message.payload or "")[:100],  # Truncate for logging
            )
            return ProcessingResult(Outcome.DROPPED, reason="validation_failed")

        try:
            inserted = await self._handler(event)
        except PersistFailed as e:
            logger.warning(
                "Click persistence failed, leaving message for redelivery",
                message_id=message.message_id,
                short_code=event.code,
                deliveries=message.deliveries,
                error=str(e),
            )
            return ProcessingResult(Outcome.REQUEUE, reason="persist_failed")

        return ProcessingResult(Outcome.PERSISTED, duplicate=not inserted)


class MessageSource(Protocol):
    """The subset of ClickStream the consumer relies on."""

    async def ensure_group(self) -> None: ...

    async def read_new(self, consumer: str, count: int, block_ms: int | None = None) -> list[StreamMessage]: ...

    async def claim_stale(self, consumer: str, min_idle_ms: int, count: int) -> list[StreamMessage]: ...

    async def ack(self, message_id: str) -> None: ...

    async def dead_letter(self, message: StreamMessage, reason: str) -> str: ...


class ClickEventConsumer:
    """Consumer-group worker that persists click events.

    Each iteration claims stale pending messages first, then reads new ones,
    up to ``prefetch`` messages in total, and processes the batch
    concurrently. In-flight work is therefore bounded by ``prefetch``.

    Usage:
        consumer = ClickEventConsumer(stream, store_click, consumer_name="worker-1")
        await consumer.start()
        # ... later ...
        await consumer.stop()
    """

    def __init__(
        self,
        source: MessageSource,
        handler: ClickEventHandler,
        consumer_name: str,
        prefetch: int = 32,
        block_ms: int = 1000,
        redelivery_idle_ms: int = 30_000,
        max_deliveries: int = 5,
        shutdown_timeout: float = 10.0,
        error_backoff: float = 1.0,
    ):
        """Initialize the consumer.

        Args:
            source: Consumer-group view of the click stream.
            handler: Coroutine that persists one event.
            consumer_name: Name of this consumer inside the group.
            prefetch: Maximum messages fetched and processed per iteration.
            block_ms: How long a read waits for new messages.
            redelivery_idle_ms: Idle time after which an unacked message is redelivered.
            max_deliveries: Delivery attempts before a message is dead-lettered.
            shutdown_timeout: Seconds stop() waits for the in-flight batch.
            error_backoff: Seconds to sleep after a broker error in the loop.
        """
        self._source = source
        self._processor = ClickEventProcessor(handler)
        self.consumer_name = consumer_name
        self._prefetch = max(1, prefetch)
        self._block_ms = block_ms
        self._redelivery_idle_ms = redelivery_idle_ms
        self._max_deliveries = max(1, max_deliveries)
        self._shutdown_timeout = shutdown_timeout
        self._error_backoff = error_backoff
        self._task: asyncio.Task | None = None
        self._running = False
        self._counts = {
            "received": 0,
            "persisted": 0,
            "duplicates": 0,
            "dropped": 0,
            "requeued": 0,
            "dead_lettered": 0,
        }

    async def start(self) -> None:
        """Create the consumer group if needed and start the consume loop."""
        if self._running:
            logger.warning("Consumer already running")
            return

        logger.info("Starting click event consumer", consumer=self.consumer_name)
        await self._source.ensure_group()

        self._running = True
        set_consumer_running(True)
        self._task = asyncio.create_task(self._consume_loop())

        logger.info("Click event consumer started", consumer=self.consumer_name)

    async def stop(self) -> None:
        """Stop pulling messages and let the in-flight batch finish.

        If the batch does not finish within the shutdown timeout it is
        cancelled; its messages stay unacknowledged and get redelivered.
        """
        if not self._running:
            return

        logger.info("Stopping click event consumer", **self._counts)
        self._running = False
        set_consumer_running(False)

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self._shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("In-flight click messages abandoned for redelivery")
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Click event consumer stopped")

    async def _consume_loop(self) -> None:
        """Main consumer loop."""
        logger.debug("Consumer loop started")
        while self._running:
            try:
                await self.poll_once()
            except BrokerUnavailable as e:
                logger.error("Broker error in consumer loop", error=str(e))
                await asyncio.sleep(self._error_backoff)
            except Exception as e:
                logger.error("Unexpected error in consumer loop", error=str(e))
                await asyncio.sleep(self._error_backoff)

    async def poll_once(self) -> int:
        """Fetch and process one batch. Returns the number of messages handled."""
        messages = await self._source.claim_stale(
            self.consumer_name,
            min_idle_ms=self._redelivery_idle_ms,
            count=self._prefetch,
        )
        for _ in messages:
            record_click_received("redelivered")

        free = self._prefetch - len(messages)
        if free > 0:
            # Don't block on new messages while redeliveries are waiting
            block_ms = None if messages else self._block_ms
            fresh = await self._source.read_new(self.consumer_name, count=free, block_ms=block_ms)
            for _ in fresh:
                record_click_received("new")
            messages.extend(fresh)

        if messages:
            await asyncio.gather(*(self._handle(message) for message in messages))
        return len(messages)

    async def _handle(self, message: StreamMessage) -> ProcessingResult:
        """Process one message and settle it with the broker."""
        self._counts["received"] += 1
        start_time = time.perf_counter()

        if message.deliveries > self._max_deliveries:
            # Crashed every consumer that touched it; don't try again
            await self._dead_letter(message, "delivery_limit_exceeded")
            return ProcessingResult(Outcome.DROPPED, reason="delivery_limit_exceeded")

        result = await self._processor.process(message)
        record_click_outcome(result.outcome.value, result.reason)

        if result.outcome is Outcome.PERSISTED:
            self._counts["duplicates" if result.duplicate else "persisted"] += 1
        elif result.outcome is Outcome.DROPPED:
            self._counts["dropped"] += 1

        if result.should_ack:
            await self._ack(message)
        elif message.deliveries >= self._max_deliveries:
            await self._dead_letter(message, result.reason)
        else:
            self._counts["requeued"] += 1

        duration = time.perf_counter() - start_time
        record_click_processing_time(duration)
        logger.debug(
            "Click message handled",
            message_id=message.message_id,
            outcome=result.outcome.value,
            deliveries=message.deliveries,
            duration_ms=round(duration * 1000, 2),
        )
        return result

    async def _ack(self, message: StreamMessage) -> None:
        try:
            await self._source.ack(message.message_id)
        except BrokerUnavailable as e:
            # Redelivery is harmless: storage ignores duplicate event IDs
            logger.warning("Failed to ack click message", message_id=message.message_id, error=str(e))

    async def _dead_letter(self, message: StreamMessage, reason: str) -> None:
        try:
            await self._source.dead_letter(message, reason)
        except BrokerUnavailable as e:
            logger.error("Failed to dead-letter click message", message_id=message.message_id, error=str(e))
            return
        self._counts["dead_lettered"] += 1
        record_click_dead_lettered(reason)

    @property
    def is_running(self) -> bool:
        """Check if the consumer is running."""
        return self._running

    @property
    def stats(self) -> dict:
        """Get consumer statistics."""
        return {
            "running": self._running,
            "consumer": self.consumer_name,
            **self._counts,
        }


# Global consumer instance
_consumer: ClickEventConsumer | None = None


def get_consumer() -> ClickEventConsumer | None:
    """Get the global consumer instance, if one was started."""
    return _consumer


async def start_consumer() -> ClickEventConsumer:
    """Build the global consumer from settings and start it."""
    global _consumer
    if _consumer is None:
        settings = get_settings()
        _consumer = ClickEventConsumer(
            await get_click_stream(),
            get_storage_service().store_click,
            consumer_name=settings.consumer_name,
            prefetch=settings.consumer_prefetch,
            block_ms=settings.consumer_block_ms,
            redelivery_idle_ms=settings.redelivery_idle_ms,
            max_deliveries=settings.max_deliveries,
            shutdown_timeout=settings.shutdown_timeout_seconds,
        )
    await _consumer.start()
    return _consumer


async def stop_consumer() -> None:
    """Stop the global consumer."""
    if _consumer is not None:
        await _consumer.stop()
