"""
Catalog Store

In-memory collections for one configuration identity, plus the registry
that maps identities to their current store. A refresh builds a new store
and swaps the registry reference; stores are never mutated in place
except for the lazily built episode index.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from iptv_catalog.schemas import AddonConfig
from iptv_catalog.services.fetch_types import CacheEntry, CatalogItem, SeriesEpisode
from iptv_catalog.services.schedule_index import ScheduleIndex


logger = logging.getLogger(__name__)

EpisodeFetcher = Callable[[CatalogItem], Awaitable[list[SeriesEpisode]]]


class EpisodeIndex:
    """
    Series id -> episode list, built on first use and kept for the lifetime
    of the owning store.

    Concurrent first requests for one series share a single fetch. A failed
    fetch is remembered as an empty list and not retried.
    """

    def __init__(self, fetcher: EpisodeFetcher | None, timeout_seconds: float | None = None) -> None:
        self._fetcher = fetcher
        self._timeout = timeout_seconds
        self._episodes: dict[str, list[SeriesEpisode]] = {}
        self._pending: dict[str, asyncio.Task] = {}

    def built(self, series_id: str) -> list[SeriesEpisode] | None:
        return self._episodes.get(series_id)

    async def episodes_for(self, series: CatalogItem) -> list[SeriesEpisode]:
        cached = self._episodes.get(series.id)
        if cached is not None:
            return cached

        task = self._pending.get(series.id)
        if task is None:
            task = asyncio.ensure_future(self._load(series))
            self._pending[series.id] = task
        return await asyncio.shield(task)

    async def _load(self, series: CatalogItem) -> list[SeriesEpisode]:
        episodes: list[SeriesEpisode] = []
        try:
            if self._fetcher is not None:
                episodes = await asyncio.wait_for(self._fetcher(series), timeout=self._timeout)
                logger.debug(f"Loaded {len(episodes)} episodes for {series.id}")
        except Exception as e:
            logger.warning(f"Episode fetch failed for {series.id}, caching empty list: {e}")
            episodes = []
        finally:
            self._pending.pop(series.id, None)

        self._episodes[series.id] = list(episodes)
        return self._episodes[series.id]

    def find_episode(self, episode_id: str) -> SeriesEpisode | None:
        """Search every episode list built so far"""
        for episodes in list(self._episodes.values()):
            for episode in episodes:
                if episode.id == episode_id:
                    return episode
        return None


class CatalogStore:
    """Normalized collections and schedule for one configuration identity."""

    def __init__(
        self,
        identity: str,
        *,
        channels: list[CatalogItem] | None = None,
        movies: list[CatalogItem] | None = None,
        series: list[CatalogItem] | None = None,
        schedule: ScheduleIndex | None = None,
        last_refreshed_at: float = 0.0,
        episode_fetcher: EpisodeFetcher | None = None,
        episode_timeout_seconds: float | None = None
    ) -> None:
        self.identity = identity
        self.channels = channels or []
        self.movies = movies or []
        self.series = series or []
        self.schedule = schedule or ScheduleIndex()
        self.last_refreshed_at = last_refreshed_at
        self.episodes = EpisodeIndex(episode_fetcher, episode_timeout_seconds)

        self._by_id: dict[str, CatalogItem] = {}
        for collection in (self.series, self.movies, self.channels):
            for item in collection:
                self._by_id[item.id] = item

    @classmethod
    def from_entry(cls, identity: str, entry: CacheEntry, **kwargs) -> CatalogStore:
        return cls(
            identity,
            channels=entry.channels,
            movies=entry.movies,
            series=entry.series,
            schedule=ScheduleIndex(entry.schedule),
            last_refreshed_at=entry.last_refreshed_at,
            **kwargs,
        )

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            channels=self.channels,
            movies=self.movies,
            series=self.series,
            schedule=self.schedule.programs,
            last_refreshed_at=self.last_refreshed_at,
        )

    def items(self, item_type: str) -> list[CatalogItem]:
        if item_type == "tv":
            return self.channels
        if item_type == "movie":
            return self.movies
        if item_type == "series":
            return self.series
        return []

    def get_item(self, item_id: str, item_type: str | None = None) -> CatalogItem | None:
        item = self._by_id.get(item_id)
        if item is None or (item_type and item.type != item_type):
            return None
        return item

    def find_by_external_id(self, scheme: str, value: str, item_type: str | None = None) -> CatalogItem | None:
        """First movie or series whose imdb_id / tmdb_id equals value"""
        attribute = "imdb_id" if scheme == "imdb" else "tmdb_id"
        collections = [self.items(item_type)] if item_type else [self.movies, self.series]
        for collection in collections:
            for item in collection:
                if getattr(item, attribute) == value:
                    return item
        return None

    def age_seconds(self, now: float | None = None) -> float:
        if not self.last_refreshed_at:
            return float("inf")
        return max(0.0, (now if now is not None else time.time()) - self.last_refreshed_at)

    @property
    def is_empty(self) -> bool:
        return not (self.channels or self.movies or self.series)


@dataclass(slots=True)
class RegisteredStore:
    config: AddonConfig
    store: CatalogStore


class CatalogStoreRegistry:
    """Identity -> current store. Replacement is a single reference swap."""

    def __init__(self) -> None:
        self._stores: dict[str, RegisteredStore] = {}

    def __len__(self) -> int:
        return len(self._stores)

    def get(self, identity: str) -> CatalogStore | None:
        registered = self._stores.get(identity)
        return registered.store if registered else None

    def swap(self, identity: str, config: AddonConfig, store: CatalogStore) -> CatalogStore | None:
        previous = self._stores.get(identity)
        self._stores[identity] = RegisteredStore(config=config, store=store)
        return previous.store if previous else None

    def configs(self) -> list[AddonConfig]:
        return [registered.config for registered in list(self._stores.values())]
