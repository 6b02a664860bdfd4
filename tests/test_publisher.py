"""Fire-and-forget click publisher tests."""

import asyncio

import pytest

from conftest import FakeSink
from linkhop_api.services.publisher import ClickPublisher
from linkhop_shared.schemas import ClickEvent


@pytest.mark.asyncio
async def test_publish_returns_without_awaiting_broker() -> None:
    sink = FakeSink(hang=True)
    publisher = ClickPublisher(sink)
    await publisher.start()

    assert publisher.publish(ClickEvent(code="abc")) is True
    # Hand-off only: the sink has not been called yet
    assert sink.calls == 0

    await publisher.stop(drain_timeout=0.05)


@pytest.mark.asyncio
async def test_publish_drops_when_buffer_full() -> None:
    publisher = ClickPublisher(FakeSink(), buffer_size=2)

    assert publisher.publish(ClickEvent(code="a")) is True
    assert publisher.publish(ClickEvent(code="b")) is True
    assert publisher.publish(ClickEvent(code="c")) is False

    assert publisher.stats["buffered"] == 2
    assert publisher.stats["dropped"] == 1


@pytest.mark.asyncio
async def test_buffered_events_are_delivered() -> None:
    sink = FakeSink()
    publisher = ClickPublisher(sink)
    await publisher.start()

    events = [ClickEvent(code=f"code{i}") for i in range(5)]
    for event in events:
        publisher.publish(event)
    await publisher.stop(drain_timeout=1.0)

    assert [e.event_id for e in sink.events] == [e.event_id for e in events]
    assert publisher.stats["published"] == 5
    assert publisher.stats["dropped"] == 0
    assert not publisher.is_running


@pytest.mark.asyncio
async def test_publish_retries_transient_broker_errors() -> None:
    sink = FakeSink(failures=2)
    publisher = ClickPublisher(sink, max_attempts=3, retry_backoff=0)
    await publisher.start()

    publisher.publish(ClickEvent(code="retry"))
    await publisher.stop(drain_timeout=1.0)

    assert sink.calls == 3
    assert len(sink.events) == 1
    assert publisher.stats["published"] == 1


@pytest.mark.asyncio
async def test_event_dropped_after_max_attempts() -> None:
    sink = FakeSink(failures=10)
    publisher = ClickPublisher(sink, max_attempts=2, retry_backoff=0)
    await publisher.start()

    publisher.publish(ClickEvent(code="lost"))
    await publisher.stop(drain_timeout=1.0)

    assert sink.calls == 2
    assert sink.events == []
    assert publisher.stats["dropped"] == 1


@pytest.mark.asyncio
async def test_slow_broker_times_out_and_drops() -> None:
    sink = FakeSink(hang=True)
    publisher = ClickPublisher(sink, publish_timeout=0.01, max_attempts=1)
    await publisher.start()

    publisher.publish(ClickEvent(code="slow"))
    await publisher.stop(drain_timeout=1.0)

    assert publisher.stats["dropped"] == 1
    assert publisher.stats["published"] == 0


@pytest.mark.asyncio
async def test_stop_discards_undelivered_events_after_timeout() -> None:
    sink = FakeSink(hang=True)
    publisher = ClickPublisher(sink, publish_timeout=10)
    await publisher.start()

    publisher.publish(ClickEvent(code="in-flight"))
    publisher.publish(ClickEvent(code="queued"))
    await publisher.stop(drain_timeout=0.05)

    assert not publisher.is_running
    assert publisher.stats["buffered"] == 0
    assert publisher.stats["dropped"] == 2
    assert publisher.stats["published"] == 0


@pytest.mark.asyncio
async def test_publisher_keeps_running_after_broker_outage() -> None:
    sink = FakeSink(failures=1)
    publisher = ClickPublisher(sink, max_attempts=1, retry_backoff=0)
    await publisher.start()

    publisher.publish(ClickEvent(code="first"))
    await asyncio.sleep(0.01)
    publisher.publish(ClickEvent(code="second"))
    await publisher.stop(drain_timeout=1.0)

    assert [e.code for e in sink.events] == ["second"]
