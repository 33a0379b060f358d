"""Tests for the local LRU tier, the redis tier wrapper and the composite cache."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from iptv_catalog.services.cache_service import LocalCache, RedisCache, TwoTierCache
from iptv_catalog.services.fetch_types import CacheEntry, CatalogItem, ProgramEntry

from tests.conftest import FakeClock


def make_entry(refreshed_at: float = 1_700_000_000.0) -> CacheEntry:
    start = datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)
    stop = datetime(2025, 1, 1, 11, 0, tzinfo=timezone.utc)
    return CacheEntry(
        channels=[CatalogItem(id="iptv_1", type="tv", name="Euro News", url="http://s/1",
                              category="News", epg_channel_id="news.uk")],
        movies=[CatalogItem(id="iptv_2", type="movie", name="Dune (2021)", url="http://s/2",
                            year=2021, imdb_id="tt1160419")],
        series=[CatalogItem(id="iptv_series_3", type="series", name="Breaking Bad", series_id="3")],
        schedule={"news.uk": [ProgramEntry("news.uk", start, stop, "Morning Briefing", "Headlines")]},
        last_refreshed_at=refreshed_at,
    )


# =============================================================================
# LOCAL TIER
# =============================================================================


class TestLocalCache:

    def test_get_after_ttl_is_absent(self):
        clock = FakeClock()
        cache = LocalCache(5, 60, clock=clock)
        cache.set("k", "v")

        clock.advance(59)
        assert cache.get("k") == "v"
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = LocalCache(5, 60, clock=clock)
        cache.set("short", 1, ttl_seconds=10)
        cache.set("long", 2)

        clock.advance(30)
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_least_recently_used_is_evicted(self):
        cache = LocalCache(2, 60)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_set_replaces_whole_value(self):
        cache = LocalCache(2, 60)
        cache.set("a", {"x": 1})
        cache.set("a", {"y": 2})
        assert cache.get("a") == {"y": 2}
        assert len(cache) == 1

    def test_bound_must_be_positive(self):
        with pytest.raises(ValueError):
            LocalCache(0, 60)


# =============================================================================
# REDIS TIER
# =============================================================================


class TestRedisCache:

    @pytest.mark.asyncio
    async def test_set_uses_millisecond_ttl(self):
        client = AsyncMock()
        tier = RedisCache(client, timeout_seconds=1, max_attempts=2)

        await tier.set("addon:data:x", "payload", 1.5)

        client.set.assert_awaited_once_with("addon:data:x", "payload", px=1500)

    @pytest.mark.asyncio
    async def test_retries_then_raises(self):
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("refused")
        tier = RedisCache(client, timeout_seconds=1, max_attempts=2)

        with pytest.raises(RedisConnectionError):
            await tier.get("k")
        assert client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_recovers(self):
        client = AsyncMock()
        client.get.side_effect = [RedisConnectionError("refused"), "value"]
        tier = RedisCache(client, timeout_seconds=1, max_attempts=2)

        assert await tier.get("k") == "value"

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        client = AsyncMock()
        client.get.side_effect = hang
        tier = RedisCache(client, timeout_seconds=0.01, max_attempts=1)

        with pytest.raises(asyncio.TimeoutError):
            await tier.get("k")


# =============================================================================
# COMPOSITE CACHE
# =============================================================================


class TestTwoTierCache:

    @pytest.mark.asyncio
    async def test_round_trip_is_field_equal(self):
        cache = TwoTierCache(LocalCache(5, 60))
        entry = make_entry()

        await cache.put("abc", entry)
        restored = await cache.get("abc")

        assert restored == entry
        assert restored is not entry
        assert restored.channels[0] is not entry.channels[0]

    @pytest.mark.asyncio
    async def test_reads_never_share_objects(self):
        cache = TwoTierCache(LocalCache(5, 60))
        await cache.put("abc", make_entry())

        first = await cache.get("abc")
        first.channels.clear()
        second = await cache.get("abc")

        assert len(second.channels) == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_absent(self):
        clock = FakeClock()
        cache = TwoTierCache(LocalCache(5, 60, clock=clock))
        await cache.put("abc", make_entry())

        clock.advance(61)
        assert await cache.get("abc") is None

    @pytest.mark.asyncio
    async def test_writes_go_to_both_tiers_under_prefix(self):
        shared = AsyncMock()
        cache = TwoTierCache(LocalCache(5, 60), shared, ttl_seconds=60, key_prefix="addon:data:")

        await cache.put("abc", make_entry())

        shared.set.assert_awaited_once()
        key, raw, ttl = shared.set.await_args.args
        assert key == "addon:data:abc"
        assert CacheEntry.from_json(raw) == make_entry()
        assert ttl == 60

    @pytest.mark.asyncio
    async def test_shared_hit_is_promoted(self):
        clock = FakeClock()
        local = LocalCache(5, 60, clock=clock)
        shared = AsyncMock()
        shared.get.return_value = make_entry().to_json()
        cache = TwoTierCache(local, shared, ttl_seconds=60)

        assert await cache.get("abc") == make_entry()
        assert await cache.get("abc") == make_entry()
        shared.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stale_local_fresh_shared_is_served(self):
        clock = FakeClock()
        local = LocalCache(5, 60, clock=clock)
        shared = AsyncMock()
        cache = TwoTierCache(local, shared, ttl_seconds=60)
        await cache.put("abc", make_entry())

        clock.advance(120)
        shared.get.return_value = make_entry(refreshed_at=2.0).to_json()

        restored = await cache.get("abc")
        assert restored.last_refreshed_at == 2.0

    @pytest.mark.asyncio
    async def test_shared_failures_are_swallowed(self):
        shared = AsyncMock()
        shared.get.side_effect = RedisConnectionError("down")
        shared.set.side_effect = asyncio.TimeoutError()
        cache = TwoTierCache(LocalCache(5, 60), shared)

        assert await cache.get("missing") is None
        await cache.put("abc", make_entry())
        assert await cache.get("abc") == make_entry()

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_discarded(self):
        local = LocalCache(5, 60)
        cache = TwoTierCache(local, key_prefix="p:")
        local.set("p:abc", "{not json")

        assert await cache.get("abc") is None
        assert local.get("p:abc") is None
