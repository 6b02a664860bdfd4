"""Shared pytest fixtures and in-memory doubles for the store, cache and broker."""

import asyncio
import os
from typing import AsyncGenerator

# Settings are cached on first import, so configure the test environment first
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BASE_URL", "http://test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from linkhop_api.core.redis import MISSING_SENTINEL  # noqa: E402
from linkhop_api.models.link import ShortLink  # noqa: E402
from linkhop_api.services.link import LinkService  # noqa: E402
from linkhop_api.services.store import CodeConflict  # noqa: E402
from linkhop_shared.exceptions import (  # noqa: E402
    BrokerUnavailable,
    CacheUnavailable,
    StoreUnavailable,
)
from linkhop_shared.schemas import ClickEvent, utcnow  # noqa: E402
from linkhop_shared.streams import PAYLOAD_FIELD, StreamMessage  # noqa: E402


class InMemoryLinkStore:
    """LinkStore double that counts lookups."""

    def __init__(self) -> None:
        self.links: dict[str, ShortLink] = {}
        self.get_calls = 0
        self.available = True

    def add(self, code: str, long_url: str) -> ShortLink:
        link = ShortLink(code=code, long_url=long_url, created_at=utcnow())
        self.links[code] = link
        return link

    async def insert(self, code: str, long_url: str) -> ShortLink:
        if not self.available:
            raise StoreUnavailable("store is down")
        # Yield so concurrent creates interleave
        await asyncio.sleep(0)
        if code in self.links:
            raise CodeConflict(code)
        return self.add(code, long_url)

    async def get(self, code: str) -> ShortLink | None:
        self.get_calls += 1
        if not self.available:
            raise StoreUnavailable("store is down")
        return self.links.get(code)


class InMemoryCache:
    """LinkCache double backed by a dict (TTLs are recorded, not enforced)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, code: str) -> str | None:
        return self.data.get(code)

    async def set(self, code: str, long_url: str, ttl: int) -> None:
        self.data[code] = long_url
        self.ttls[code] = ttl

    async def set_missing(self, code: str, ttl: int) -> None:
        self.data[code] = MISSING_SENTINEL
        self.ttls[code] = ttl

    async def delete(self, code: str) -> None:
        self.data.pop(code, None)
        self.ttls.pop(code, None)


class FailingCache:
    """LinkCache double for a Redis outage."""

    async def get(self, code: str) -> str | None:
        raise CacheUnavailable("cache is down")

    async def set(self, code: str, long_url: str, ttl: int) -> None:
        raise CacheUnavailable("cache is down")

    async def set_missing(self, code: str, ttl: int) -> None:
        raise CacheUnavailable("cache is down")

    async def delete(self, code: str) -> None:
        raise CacheUnavailable("cache is down")


class RecordingPublisher:
    """Click hand-off double that keeps every event."""

    def __init__(self) -> None:
        self.events: list[ClickEvent] = []

    def publish(self, event: ClickEvent) -> bool:
        self.events.append(event)
        return True


class ExplodingPublisher:
    def publish(self, event: ClickEvent) -> bool:
        raise RuntimeError("publisher is broken")


class FakeSink:
    """Broker sink double that can fail a number of times or hang."""

    def __init__(self, failures: int = 0, hang: bool = False) -> None:
        self.events: list[ClickEvent] = []
        self.failures = failures
        self.hang = hang
        self.calls = 0

    async def publish(self, event: ClickEvent) -> str:
        self.calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.failures > 0:
            self.failures -= 1
            raise BrokerUnavailable("broker is down")
        self.events.append(event)
        return f"{len(self.events)}-0"


class FakeClickStream:
    """In-memory consumer-group stream.

    Models the pending list of one group: read entries stay pending with a
    delivery count until acked, and ``claim_stale`` redelivers entries idle
    for at least ``min_idle_ms`` on a manual clock (see ``advance``).
    """

    def __init__(self) -> None:
        self.entries: dict[str, str | None] = {}
        self.undelivered: list[str] = []
        self.pending: dict[str, dict] = {}
        self.acked: list[str] = []
        self.dead: list[dict[str, str]] = []
        self.group_created = False
        self.fail_acks = False
        self.now_ms = 0
        self._seq = 0

    def advance(self, ms: int) -> None:
        self.now_ms += ms

    def add_raw(self, payload: str | None) -> str:
        self._seq += 1
        message_id = f"{self._seq}-0"
        self.entries[message_id] = payload
        self.undelivered.append(message_id)
        return message_id

    async def publish(self, event: ClickEvent) -> str:
        return self.add_raw(event.to_message())

    async def ensure_group(self) -> None:
        self.group_created = True

    async def read_new(self, consumer: str, count: int, block_ms: int | None = None) -> list[StreamMessage]:
        if not self.undelivered and block_ms:
            await asyncio.sleep(min(block_ms, 50) / 1000)
        batch, self.undelivered = self.undelivered[:count], self.undelivered[count:]
        for message_id in batch:
            self.pending[message_id] = {"consumer": consumer, "deliveries": 1, "delivered_at": self.now_ms}
        return [StreamMessage(message_id, self.entries[message_id], 1) for message_id in batch]

    async def claim_stale(self, consumer: str, min_idle_ms: int, count: int) -> list[StreamMessage]:
        claimed = []
        for message_id, info in self.pending.items():
            if len(claimed) >= count:
                break
            if self.now_ms - info["delivered_at"] >= min_idle_ms:
                info.update(consumer=consumer, deliveries=info["deliveries"] + 1, delivered_at=self.now_ms)
                claimed.append(StreamMessage(message_id, self.entries[message_id], info["deliveries"]))
        return claimed

    async def ack(self, message_id: str) -> None:
        if self.fail_acks:
            raise BrokerUnavailable("ack lost")
        if self.pending.pop(message_id, None) is not None:
            self.acked.append(message_id)

    async def dead_letter(self, message: StreamMessage, reason: str) -> str:
        self.dead.insert(0, {
            "id": f"{len(self.dead) + 1}-0",
            PAYLOAD_FIELD: message.payload or "",
            "reason": reason,
            "source_id": message.message_id,
            "deliveries": str(message.deliveries),
            "dead_lettered_at": utcnow().isoformat(),
        })
        self.pending.pop(message.message_id, None)
        return self.dead[0]["id"]

    async def dead_letters(self, count: int = 50) -> list[dict[str, str]]:
        return self.dead[:count]

    async def pending_count(self) -> int:
        return len(self.pending)


class InMemoryClickHandler:
    """Idempotent click persistence double keyed by event_id."""

    def __init__(self) -> None:
        self.records: dict = {}
        self.calls = 0

    async def __call__(self, event: ClickEvent) -> bool:
        self.calls += 1
        if event.event_id in self.records:
            return False
        self.records[event.event_id] = event
        return True


@pytest.fixture
def store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def link_service(store: InMemoryLinkStore, cache: InMemoryCache, publisher: RecordingPublisher) -> LinkService:
    return LinkService(store=store, cache=cache, publisher=publisher)


@pytest.fixture
def click_stream() -> FakeClickStream:
    return FakeClickStream()


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator:
    # One shared in-memory connection so every session sees the same tables
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest.fixture
def sqlite_sessions(sqlite_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
