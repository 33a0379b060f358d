"""Tests for the aggregator: refresh policy, failure handling and query paths."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from iptv_catalog.config import settings
from iptv_catalog.schemas import AddonConfig
from iptv_catalog.services.aggregator_service import CatalogAggregator, get_aggregator, reset_aggregator
from iptv_catalog.services.catalog_query_service import catalog_prefix
from iptv_catalog.services.identity_service import create_cache_key
from iptv_catalog.services.refresh_coordinator import RefreshCoordinator

from tests.conftest import SAMPLE_GUIDE, ScriptedProvider


# =============================================================================
# LOAD / REFRESH POLICY
# =============================================================================


class TestLoadOrRefresh:

    @pytest.mark.asyncio
    async def test_first_load_ingests(self, aggregator, provider, config):
        store = await aggregator.load_or_refresh(config)

        assert len(store.channels) == 3
        assert len(store.movies) == 2
        assert len(store.series) == 1
        assert provider.playlist_calls == 1
        assert aggregator.registry.get(create_cache_key(config)) is store

    @pytest.mark.asyncio
    async def test_within_grace_window_no_refetch(self, aggregator, provider, config, clock):
        first = await aggregator.load_or_refresh(config)
        clock.advance(settings.refresh_grace_sec - 1)

        assert await aggregator.load_or_refresh(config) is first
        assert provider.playlist_calls == 1

    @pytest.mark.asyncio
    async def test_stale_store_served_while_refreshing(self, aggregator, provider, config, clock):
        first = await aggregator.load_or_refresh(config)
        clock.advance(settings.refresh_grace_sec + 1)

        served = await aggregator.load_or_refresh(config)
        assert served is first

        await asyncio.gather(*aggregator._background)
        assert provider.playlist_calls == 2
        assert aggregator.registry.get(create_cache_key(config)) is not first

    @pytest.mark.asyncio
    async def test_expired_store_refreshes_before_answering(self, aggregator, provider, config, clock):
        first = await aggregator.load_or_refresh(config)
        clock.advance(settings.cache_ttl_sec + 1)

        second = await aggregator.load_or_refresh(config)

        assert second is not first
        assert provider.playlist_calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_refresh(self, aggregator, provider, config):
        provider.delay = 0.01

        stores = await asyncio.gather(*(aggregator.load_or_refresh(config) for _ in range(5)))

        assert provider.playlist_calls == 1
        assert all(store is stores[0] for store in stores)

    @pytest.mark.asyncio
    async def test_restores_from_cache_without_fetching(self, cache, clock, config):
        warm_provider = ScriptedProvider(config)
        warm = CatalogAggregator(cache=cache, provider_factory=lambda _c: warm_provider, clock=clock)
        await warm.load_or_refresh(config)

        cold_provider = ScriptedProvider(config)
        cold = CatalogAggregator(cache=cache, provider_factory=lambda _c: cold_provider, clock=clock)
        store = await cold.load_or_refresh(config)

        assert cold_provider.playlist_calls == 0
        assert len(store.channels) == 3

    @pytest.mark.asyncio
    async def test_identities_are_isolated(self, cache, clock):
        providers = {}

        def factory(config):
            providers[config.m3u_url] = ScriptedProvider(config)
            return providers[config.m3u_url]

        aggregator = CatalogAggregator(cache=cache, provider_factory=factory, clock=clock)
        a = await aggregator.load_or_refresh(AddonConfig(m3u_url="http://a/list.m3u"))
        b = await aggregator.load_or_refresh(AddonConfig(m3u_url="http://b/list.m3u"))

        assert a is not b
        assert len(aggregator.registry) == 2


# =============================================================================
# FAILURE HANDLING
# =============================================================================


class TestRefreshFailures:

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(self, aggregator, provider, config):
        first = await aggregator.load_or_refresh(config)
        refreshed_at = first.last_refreshed_at
        provider.fail = True

        result = await aggregator.admin_refresh(config)

        assert result.status == "failed"
        assert "upstream unreachable" in result.error
        assert result.store is first
        assert aggregator.registry.get(create_cache_key(config)) is first
        assert first.last_refreshed_at == refreshed_at

    @pytest.mark.asyncio
    async def test_failed_first_load_gives_empty_store(self, aggregator, provider, config):
        provider.fail = True

        store = await aggregator.load_or_refresh(config)

        assert store.is_empty
        assert await aggregator.query_catalog(config, "tv") == []

    @pytest.mark.asyncio
    async def test_empty_playlist_gives_empty_catalog(self, aggregator, provider, config):
        provider.playlist = ""

        assert await aggregator.query_catalog(config, "tv") == []
        assert await aggregator.resolve_stream(config, "unknown") is None

    @pytest.mark.asyncio
    async def test_broken_guide_leaves_catalog_intact(self, aggregator, provider):
        config = AddonConfig(m3u_url="http://playlist.example.com/list.m3u", enable_epg=True)
        provider.guide = "<tv><programme"

        store = await aggregator.load_or_refresh(config)

        assert len(store.channels) == 3
        assert len(store.schedule) == 0

    @pytest.mark.asyncio
    async def test_out_of_range_programme_does_not_fail_refresh(self, aggregator, provider):
        config = AddonConfig(m3u_url="http://playlist.example.com/list.m3u", enable_epg=True, epg_offset_hours=2)
        provider.guide = SAMPLE_GUIDE.replace(
            'start="20250101110000 +0000"', 'start="99991231230000 +0000"'
        )

        result = await aggregator.admin_refresh(config)

        assert result.status == "success"
        assert len(result.store.channels) == 3
        assert [p.title for p in result.store.schedule.programs["news.uk"]] == ["Morning Briefing"]

    @pytest.mark.asyncio
    async def test_schedule_parser_crash_leaves_catalog_intact(self, aggregator, provider, monkeypatch):
        config = AddonConfig(m3u_url="http://playlist.example.com/list.m3u", enable_epg=True)
        provider.guide = SAMPLE_GUIDE
        monkeypatch.setattr(
            "iptv_catalog.services.aggregator_service.parse_xmltv_async",
            AsyncMock(side_effect=RuntimeError("parser blew up")),
        )

        result = await aggregator.admin_refresh(config)

        assert result.status == "success"
        assert len(result.store.channels) == 3
        assert len(result.store.schedule) == 0


# =============================================================================
# ADMINISTRATIVE AND SCHEDULED REFRESH
# =============================================================================


class TestAdminRefresh:

    @pytest.mark.asyncio
    async def test_bypasses_grace_window(self, aggregator, provider, config):
        await aggregator.load_or_refresh(config)

        result = await aggregator.admin_refresh(config)

        assert result.status == "success"
        assert provider.playlist_calls == 2
        payload = result.to_dict()
        assert payload["channels"] == 3
        assert payload["movies"] == 2
        assert payload["series"] == 1
        assert payload["identity"] == create_cache_key(config)

    @pytest.mark.asyncio
    async def test_refresh_all_respects_grace_window(self, aggregator, provider, config, clock):
        await aggregator.load_or_refresh(config)

        assert await aggregator.refresh_all() == []
        clock.advance(settings.refresh_grace_sec + 1)
        results = await aggregator.refresh_all()

        assert [result.status for result in results] == ["success"]
        assert provider.playlist_calls == 2


# =============================================================================
# QUERY PATHS
# =============================================================================


class TestQueries:

    @pytest.mark.asyncio
    async def test_guide_populates_schedule(self, aggregator, provider):
        config = AddonConfig(m3u_url="http://playlist.example.com/list.m3u", enable_epg=True)
        provider.guide = SAMPLE_GUIDE

        store = await aggregator.load_or_refresh(config)

        assert "news.uk" in store.schedule
        assert len(store.schedule.programs["news.uk"]) == 2

    @pytest.mark.asyncio
    async def test_blacklist_and_rail(self, aggregator):
        config = AddonConfig(
            m3u_url="http://playlist.example.com/list.m3u",
            blacklisted_cats=["Adult"],
            home_tvs_list=["Adult"],
        )
        prefix = catalog_prefix(config)

        global_names = [meta.name for meta in await aggregator.query_catalog(config, "tv", f"{prefix}channels")]
        rail_names = [meta.name for meta in await aggregator.query_catalog(config, "tv", f"{prefix}home_tv_0")]

        assert "Late Night" not in global_names
        assert rail_names == ["Late Night"]

    @pytest.mark.asyncio
    async def test_unknown_rail_is_empty(self, aggregator, config):
        assert await aggregator.query_catalog(config, "tv", f"{catalog_prefix(config)}home_tv_5") == []

    @pytest.mark.asyncio
    async def test_search(self, aggregator, config):
        metas = await aggregator.query_catalog(config, "tv", search="NEWS")
        assert [meta.name for meta in metas] == ["Euro News"]

    @pytest.mark.asyncio
    async def test_stream_and_detail(self, aggregator, config):
        store = await aggregator.load_or_refresh(config)
        channel = store.channels[0]

        locator = await aggregator.resolve_stream(config, channel.id)
        meta = await aggregator.detail(config, channel.id, "tv")

        assert locator.url == "http://stream.example.com/news.m3u8"
        assert meta.name == "Euro News"
        assert await aggregator.detail(config, "unknown", "tv") is None

    @pytest.mark.asyncio
    async def test_playlist_series_episode_streams(self, aggregator, config):
        store = await aggregator.load_or_refresh(config)
        show = store.series[0]

        meta = await aggregator.detail(config, show.id, "series")
        episode_id = meta.videos[0].id

        locator = await aggregator.resolve_stream(config, episode_id)
        assert locator.url == "http://stream.example.com/bb101.mp4"


class TestAggregatorSingleton:

    def test_shared_until_reset(self):
        reset_aggregator()
        first = get_aggregator()

        assert get_aggregator() is first
        reset_aggregator()
        assert get_aggregator() is not first
        reset_aggregator()


class TestRefreshCoordinator:

    @pytest.mark.asyncio
    async def test_joins_pending_refresh(self):
        coordinator = RefreshCoordinator()
        calls = 0

        async def refresh():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return calls

        results = await asyncio.gather(*(coordinator.execute("a", refresh) for _ in range(3)))

        assert results == [1, 1, 1]
        assert not coordinator.is_refreshing("a")

    @pytest.mark.asyncio
    async def test_new_refresh_after_completion(self):
        coordinator = RefreshCoordinator()

        async def refresh():
            return object()

        first = await coordinator.execute("a", refresh)
        second = await coordinator.execute("a", refresh)
        assert first is not second
