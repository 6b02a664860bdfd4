"""Redis Streams adapter for the click event broker.

The stream is consumed through a consumer group, which gives at-least-once
delivery: an entry read with ``XREADGROUP`` stays in the group's pending list
until it is acknowledged with ``XACK``. Entries that sit unacknowledged for
longer than the redelivery interval are taken over with ``XCLAIM``, and the
group tracks how many times each entry has been delivered.

Usage:
    stream = ClickStream(client, "linkhop:clicks", group="analytics")
    await stream.publish(ClickEvent(code="Ab12Cd"))

    await stream.ensure_group()
    for message in await stream.read_new("worker-1", count=10, block_ms=1000):
        ...
        await stream.ack(message.message_id)
"""

from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
import structlog

from linkhop_shared.exceptions import BrokerUnavailable
from linkhop_shared.schemas import ClickEvent, utcnow

logger = structlog.get_logger()

PAYLOAD_FIELD = "payload"


@dataclass(frozen=True)
class StreamMessage:
    """One stream entry handed to a consumer."""

    message_id: str
    payload: str | None
    deliveries: int = 1


def _entries(response: Any) -> list[tuple[str, dict | None]]:
    """Flatten an XREADGROUP reply (RESP2 list or RESP3 dict) into entries."""
    if not response:
        return []
    if isinstance(response, dict):
        # RESP3: {stream: [[entry, ...]]}
        streams = [(name, batches[0] if batches else []) for name, batches in response.items()]
    else:
        streams = response
    entries: list[tuple[str, dict | None]] = []
    for _, messages in streams:
        entries.extend(messages)
    return entries


class ClickStream:
    """Publish and consume click events on a Redis Stream."""

    def __init__(
        self,
        client: redis.Redis,
        stream: str,
        group: str | None = None,
        dead_letter_stream: str | None = None,
        maxlen: int | None = None,
    ):
        self._client = client
        self.stream = stream
        self.group = group
        self.dead_letter_stream = dead_letter_stream or f"{stream}:dead"
        self._maxlen = maxlen

    async def publish(self, event: ClickEvent) -> str:
        """Append a click event to the stream and return its entry ID."""
        try:
            return await self._client.xadd(
                self.stream,
                {PAYLOAD_FIELD: event.to_message()},
                maxlen=self._maxlen,
                approximate=True,
            )
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XADD to {self.stream} failed: {e}") from e

    async def ensure_group(self) -> None:
        """Create the consumer group (and the stream) if missing."""
        try:
            await self._client.xgroup_create(self.stream, self._require_group(), id="0", mkstream=True)
            logger.info("Consumer group created", stream=self.stream, group=self.group)
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise BrokerUnavailable(f"XGROUP CREATE failed: {e}") from e
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XGROUP CREATE failed: {e}") from e

    async def read_new(self, consumer: str, count: int, block_ms: int | None = None) -> list[StreamMessage]:
        """Read entries never delivered to this group before."""
        try:
            response = await self._client.xreadgroup(
                groupname=self._require_group(),
                consumername=consumer,
                streams={self.stream: ">"},
                count=count,
                block=block_ms,
            )
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XREADGROUP on {self.stream} failed: {e}") from e

        return [
            StreamMessage(message_id=message_id, payload=(fields or {}).get(PAYLOAD_FIELD))
            for message_id, fields in _entries(response)
        ]

    async def claim_stale(self, consumer: str, min_idle_ms: int, count: int) -> list[StreamMessage]:
        """Take over entries left unacknowledged for at least ``min_idle_ms``.

        The returned delivery count includes this claim.
        """
        group = self._require_group()
        try:
            pending = await self._client.xpending_range(
                self.stream,
                group,
                min="-",
                max="+",
                count=count,
                idle=min_idle_ms,
            )
            if not pending:
                return []

            deliveries = {entry["message_id"]: int(entry["times_delivered"]) for entry in pending}
            claimed = await self._client.xclaim(
                self.stream,
                group,
                consumer,
                min_idle_time=min_idle_ms,
                message_ids=list(deliveries),
            )
        except redis.RedisError as e:
            raise BrokerUnavailable(f"Claiming stale entries on {self.stream} failed: {e}") from e

        messages = []
        for message_id, fields in claimed:
            messages.append(
                StreamMessage(
                    message_id=message_id,
                    payload=(fields or {}).get(PAYLOAD_FIELD),
                    deliveries=deliveries.get(message_id, 0) + 1,
                )
            )
        if messages:
            logger.info("Claimed stale click messages", count=len(messages), consumer=consumer)
        return messages

    async def ack(self, message_id: str) -> None:
        """Acknowledge an entry so it leaves the pending list."""
        try:
            await self._client.xack(self.stream, self._require_group(), message_id)
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XACK {message_id} failed: {e}") from e

    async def dead_letter(self, message: StreamMessage, reason: str) -> str:
        """Move an entry to the dead-letter stream and acknowledge it."""
        try:
            dead_id = await self._client.xadd(
                self.dead_letter_stream,
                {
                    PAYLOAD_FIELD: message.payload or "",
                    "reason": reason,
                    "source_id": message.message_id,
                    "deliveries": str(message.deliveries),
                    "dead_lettered_at": utcnow().isoformat(),
                },
            )
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XADD to {self.dead_letter_stream} failed: {e}") from e

        await self.ack(message.message_id)
        logger.warning(
            "Click message dead-lettered",
            message_id=message.message_id,
            deliveries=message.deliveries,
            reason=reason,
        )
        return dead_id

    async def dead_letters(self, count: int = 50) -> list[dict[str, str]]:
        """Return the newest dead-lettered entries."""
        try:
            entries = await self._client.xrevrange(self.dead_letter_stream, count=count)
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XREVRANGE on {self.dead_letter_stream} failed: {e}") from e
        return [{"id": entry_id, **(fields or {})} for entry_id, fields in entries]

    async def pending_count(self) -> int:
        """Number of delivered but unacknowledged entries in the group."""
        try:
            summary = await self._client.xpending(self.stream, self._require_group())
        except redis.ResponseError as e:
            if "NOGROUP" in str(e):
                return 0
            raise BrokerUnavailable(f"XPENDING on {self.stream} failed: {e}") from e
        except redis.RedisError as e:
            raise BrokerUnavailable(f"XPENDING on {self.stream} failed: {e}") from e
        return int(summary.get("pending", 0))

    def _require_group(self) -> str:
        if not self.group:
            raise ValueError("ClickStream was created without a consumer group")
        return self.group
