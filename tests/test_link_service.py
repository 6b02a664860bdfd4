"""LinkService behavior: create, cache-aside resolve and degradation."""

import asyncio
import itertools

import pytest

from conftest import ExplodingPublisher, FailingCache, InMemoryCache, InMemoryLinkStore, RecordingPublisher
from linkhop_api.core.redis import MISSING_SENTINEL
from linkhop_api.services.link import SHORT_CODE_CHARS, LinkService, generate_short_code
from linkhop_shared.exceptions import GenerationExhausted, InvalidInput, NotFound, StoreUnavailable


def test_generate_short_code_uses_base62() -> None:
    code = generate_short_code(12)
    assert len(code) == 12
    assert set(code) <= set(SHORT_CODE_CHARS)


@pytest.mark.asyncio
async def test_create_then_resolve_returns_submitted_url(link_service: LinkService) -> None:
    long_url = "https://Example.com/path?q=1&b=two#frag"
    link = await link_service.create(long_url)

    assert link.long_url == long_url
    assert await link_service.resolve(link.code) == long_url


@pytest.mark.asyncio
async def test_create_writes_through_to_cache(
    link_service: LinkService, cache: InMemoryCache, store: InMemoryLinkStore
) -> None:
    link = await link_service.create("https://example.com/a")

    assert cache.data[link.code] == "https://example.com/a"
    await link_service.resolve(link.code)
    assert store.get_calls == 0


@pytest.mark.asyncio
async def test_cold_resolve_hits_store_once(
    link_service: LinkService, cache: InMemoryCache, store: InMemoryLinkStore
) -> None:
    store.add("cold123", "https://example.com/cold")

    assert await link_service.resolve("cold123") == "https://example.com/cold"
    assert await link_service.resolve("cold123") == "https://example.com/cold"

    assert store.get_calls == 1
    assert cache.ttls["cold123"] == 3600


@pytest.mark.asyncio
async def test_resolve_unknown_code_raises_not_found(
    link_service: LinkService, publisher: RecordingPublisher
) -> None:
    with pytest.raises(NotFound):
        await link_service.resolve("nope")
    assert publisher.events == []


@pytest.mark.asyncio
async def test_resolve_emits_one_click_event(link_service: LinkService, publisher: RecordingPublisher) -> None:
    link = await link_service.create("https://example.com/clicked")

    await link_service.resolve(link.code)

    assert len(publisher.events) == 1
    assert publisher.events[0].code == link.code


@pytest.mark.asyncio
async def test_lookup_does_not_emit_click(link_service: LinkService, publisher: RecordingPublisher) -> None:
    link = await link_service.create("https://example.com/quiet")

    assert await link_service.lookup(link.code) == "https://example.com/quiet"
    assert publisher.events == []


@pytest.mark.asyncio
async def test_concurrent_creates_get_distinct_codes(link_service: LinkService) -> None:
    urls = [f"https://example.com/{i}" for i in range(50)]

    links = await asyncio.gather(*(link_service.create(url) for url in urls))

    assert len({link.code for link in links}) == 50
    for link, url in zip(links, urls):
        assert await link_service.resolve(link.code) == url


@pytest.mark.asyncio
async def test_create_retries_on_code_collision(
    store: InMemoryLinkStore, cache: InMemoryCache, publisher: RecordingPublisher
) -> None:
    store.add("taken", "https://example.com/first")
    codes = iter(["taken", "taken", "fresh"])
    service = LinkService(store, cache, publisher, code_factory=lambda _: next(codes))

    link = await service.create("https://example.com/second")

    assert link.code == "fresh"
    assert store.links["taken"].long_url == "https://example.com/first"


@pytest.mark.asyncio
async def test_create_gives_up_after_max_attempts(
    store: InMemoryLinkStore, cache: InMemoryCache, publisher: RecordingPublisher
) -> None:
    store.add("taken", "https://example.com/first")
    service = LinkService(
        store, cache, publisher, max_attempts=3, code_factory=lambda _: "taken"
    )

    with pytest.raises(GenerationExhausted):
        await service.create("https://example.com/second")


@pytest.mark.asyncio
async def test_code_length_is_configurable(
    store: InMemoryLinkStore, cache: InMemoryCache, publisher: RecordingPublisher
) -> None:
    service = LinkService(store, cache, publisher, code_length=10)

    link = await service.create("https://example.com/long-code")

    assert len(link.code) == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("long_url", ["", "   ", "not a url", "ftp://example.com/file", "/relative/path"])
async def test_create_rejects_invalid_urls(link_service: LinkService, long_url: str) -> None:
    with pytest.raises(InvalidInput):
        await link_service.create(long_url)


@pytest.mark.asyncio
async def test_create_rejects_overlong_url(link_service: LinkService) -> None:
    with pytest.raises(InvalidInput):
        await link_service.create("https://example.com/" + "a" * 3000)


@pytest.mark.asyncio
async def test_cache_outage_degrades_to_store(store: InMemoryLinkStore, publisher: RecordingPublisher) -> None:
    service = LinkService(store, FailingCache(), publisher)

    link = await service.create("https://example.com/no-cache")

    assert await service.resolve(link.code) == "https://example.com/no-cache"
    assert store.get_calls == 1
    assert len(publisher.events) == 1


@pytest.mark.asyncio
async def test_store_outage_surfaces_as_store_unavailable(
    link_service: LinkService, store: InMemoryLinkStore
) -> None:
    store.available = False

    with pytest.raises(StoreUnavailable):
        await link_service.resolve("whatever")
    with pytest.raises(StoreUnavailable):
        await link_service.create("https://example.com/down")


@pytest.mark.asyncio
async def test_publisher_failure_does_not_fail_resolve(store: InMemoryLinkStore, cache: InMemoryCache) -> None:
    service = LinkService(store, cache, ExplodingPublisher())
    store.add("abc1234", "https://example.com/ok")

    assert await service.resolve("abc1234") == "https://example.com/ok"


@pytest.mark.asyncio
async def test_negative_cache_avoids_repeated_store_misses(
    store: InMemoryLinkStore, cache: InMemoryCache, publisher: RecordingPublisher
) -> None:
    service = LinkService(store, cache, publisher, negative_cache_ttl=30)

    for _ in range(3):
        with pytest.raises(NotFound):
            await service.resolve("ghost")

    assert store.get_calls == 1
    assert cache.data["ghost"] == MISSING_SENTINEL
    assert cache.ttls["ghost"] == 30


@pytest.mark.asyncio
async def test_negative_cache_disabled_by_default(
    link_service: LinkService, store: InMemoryLinkStore, cache: InMemoryCache
) -> None:
    for _ in range(2):
        with pytest.raises(NotFound):
            await link_service.resolve("ghost")

    assert store.get_calls == 2
    assert "ghost" not in cache.data


@pytest.mark.asyncio
async def test_get_link_reads_store(link_service: LinkService, store: InMemoryLinkStore) -> None:
    store.add("info123", "https://example.com/info")

    link = await link_service.get_link("info123")

    assert link.long_url == "https://example.com/info"
    with pytest.raises(NotFound):
        await link_service.get_link("missing")


@pytest.mark.asyncio
async def test_resolve_sees_link_immediately_after_create(link_service: LinkService) -> None:
    counter = itertools.count()
    for _ in range(5):
        url = f"https://example.com/fresh/{next(counter)}"
        link = await link_service.create(url)
        assert await link_service.resolve(link.code) == url


@pytest.mark.asyncio
async def test_create_replaces_negative_cache_entry(
    store: InMemoryLinkStore, cache: InMemoryCache, publisher: RecordingPublisher
) -> None:
    service = LinkService(store, cache, publisher, negative_cache_ttl=30, code_factory=lambda _: "fresh01")
    with pytest.raises(NotFound):
        await service.resolve("fresh01")

    await service.create("https://example.com/fresh")

    assert await service.resolve("fresh01") == "https://example.com/fresh"


@pytest.mark.asyncio
async def test_cache_delete_forces_store_read(
    link_service: LinkService, store: InMemoryLinkStore, cache: InMemoryCache
) -> None:
    store.add("evict01", "https://example.com/evict")
    await link_service.resolve("evict01")

    await cache.delete("evict01")

    assert "evict01" not in cache.data
    assert await link_service.resolve("evict01") == "https://example.com/evict"
    assert store.get_calls == 2
