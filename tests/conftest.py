"""Shared fixtures: sample playlist/guide documents, a scripted provider and a fake clock."""

import asyncio

import pytest

from iptv_catalog.providers.base import CatalogProvider
from iptv_catalog.schemas import AddonConfig
from iptv_catalog.services.aggregator_service import CatalogAggregator
from iptv_catalog.services.cache_service import LocalCache, TwoTierCache
from iptv_catalog.services.errors import ProviderError


SAMPLE_PLAYLIST = """#EXTM3U url-tvg="http://epg.example.com/guide.xml"
#EXTINF:-1 tvg-id="news.uk" tvg-logo="http://img.example.com/news.png" group-title="News",Euro News
http://stream.example.com/news.m3u8
#EXTINF:-1 tvg-id="sport.uk" group-title="Sports",Sport One
http://stream.example.com/sport.m3u8
#EXTINF:-1 tvg-id="adult.uk" group-title="Adult",Late Night
http://stream.example.com/late.m3u8
#EXTINF:-1 group-title="Movies",The Matrix (1999)
http://stream.example.com/matrix.mp4
#EXTINF:-1 group-title="Movies",Dune (2021)
http://stream.example.com/dune.mp4
#EXTINF:-1 group-title="Drama",Breaking Bad S01E02
http://stream.example.com/bb102.mp4
#EXTINF:-1 group-title="Drama",Breaking Bad S01E01
http://stream.example.com/bb101.mp4
"""

SAMPLE_GUIDE = """<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <channel id="news.uk"><display-name>Euro News</display-name></channel>
  <programme channel="news.uk" start="20250101100000 +0000" stop="20250101110000 +0000">
    <title>Morning Briefing</title>
    <desc>Headlines from across Europe</desc>
  </programme>
  <programme channel="news.uk" start="20250101110000 +0000" stop="20250101120000 +0000">
    <title>Business Today</title>
  </programme>
</tv>
"""


class FakeClock:
    """Settable wall clock (seconds since the epoch)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(CatalogProvider):
    """Provider returning canned documents; counts playlist fetches."""

    name = "scripted"

    def __init__(self, config, playlist=SAMPLE_PLAYLIST, guide=None, delay=0.0):
        super().__init__(config)
        self.playlist = playlist
        self.guide = guide
        self.delay = delay
        self.fail = False
        self.playlist_calls = 0

    async def fetch_playlist_text(self) -> str:
        self.playlist_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ProviderError("upstream unreachable")
        return self.playlist

    async def fetch_schedule_document(self):
        return self.guide


@pytest.fixture
def config():
    return AddonConfig(m3u_url="http://playlist.example.com/list.m3u")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider(config):
    return ScriptedProvider(config)


@pytest.fixture
def cache(clock):
    return TwoTierCache(LocalCache(10, 6 * 3600, clock=clock), ttl_seconds=6 * 3600)


@pytest.fixture
def aggregator(cache, provider, clock):
    return CatalogAggregator(cache=cache, provider_factory=lambda _config: provider, clock=clock)
