"""
Provider capability interface

A provider fetches playlist text, the raw schedule document and per-series episode
lists from one upstream. Every call may raise ProviderError; callers own
the fallback behavior.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from iptv_catalog.schemas import AddonConfig
from iptv_catalog.services.fetch_types import CatalogItem, ProviderCatalog, SeriesEpisode
from iptv_catalog.services.m3u_parser_service import make_item_id, parse_m3u, split_series_name
from iptv_catalog.utils.http_operations import fetch_document, fetch_json, fetch_text


logger = logging.getLogger(__name__)

SERIES_ID_PREFIX = "iptv_series_"
EPISODE_ID_PREFIX = "iptv_series_ep_"

TextFetcher = Callable[..., Awaitable[str]]
DocumentFetcher = Callable[..., Awaitable[bytes]]
JsonFetcher = Callable[..., Awaitable[Any]]


class CatalogProvider(ABC):
    """Base class for upstream ingestion sources."""

    name: str = "base"

    def __init__(
        self,
        config: AddonConfig,
        *,
        text_fetcher: TextFetcher = fetch_text,
        document_fetcher: DocumentFetcher = fetch_document,
        json_fetcher: JsonFetcher = fetch_json
    ) -> None:
        self.config = config
        self._fetch_text = text_fetcher
        self._fetch_document = document_fetcher
        self._fetch_json = json_fetcher
        self._playlist_episodes: dict[str, list[SeriesEpisode]] | None = None

    @abstractmethod
    async def fetch_playlist_text(self) -> str:
        """Raw extended-M3U playlist text"""

    @abstractmethod
    async def fetch_schedule_document(self) -> bytes | None:
        """Raw XMLTV bytes, or None when no schedule is configured"""

    async def fetch_catalog(self) -> ProviderCatalog:
        """Fetch and normalize the playlist into typed collections"""
        content = await self.fetch_playlist_text()
        return self.catalog_from_playlist(content)

    async def fetch_series_episodes(self, series: CatalogItem) -> list[SeriesEpisode]:
        """Episodes of a playlist-grouped series"""
        if self._playlist_episodes is None:
            logger.debug("Episode grouping not in memory, re-reading playlist")
            await self.fetch_catalog()
        return list((self._playlist_episodes or {}).get(series.id, []))

    def catalog_from_playlist(self, content: str) -> ProviderCatalog:
        entries = parse_m3u(content)
        catalog = ProviderCatalog(
            channels=[item for item in entries if item.type == "tv"],
            movies=[item for item in entries if item.type == "movie"],
        )

        series_entries = [item for item in entries if item.type == "series"]
        if self.config.include_series:
            catalog.series, self._playlist_episodes = group_playlist_series(series_entries)
        else:
            self._playlist_episodes = {}

        logger.info(
            f"Playlist normalized: {len(catalog.channels)} channels, {len(catalog.movies)} movies, "
            f"{len(catalog.series)} series ({len(series_entries)} episode entries)"
        )
        return catalog


def group_playlist_series(
    entries: list[CatalogItem]
) -> tuple[list[CatalogItem], dict[str, list[SeriesEpisode]]]:
    """
    Group playlist episode entries into one series record per show

    Series records carry no URL; the URLs live on the episodes.

    Returns:
        Tuple of (series records, series id -> episodes)
    """
    series_by_id: dict[str, CatalogItem] = {}
    episodes: dict[str, list[SeriesEpisode]] = {}

    for entry in entries:
        show, season, number = split_series_name(entry.name)
        series_id = make_item_id(show, prefix=SERIES_ID_PREFIX)

        if series_id not in series_by_id:
            series_by_id[series_id] = CatalogItem(
                id=series_id,
                type="series",
                name=show,
                category=entry.category,
                logo=entry.logo,
                year=entry.year,
            )

        show_episodes = episodes.setdefault(series_id, [])
        if number is None:
            number = sum(1 for ep in show_episodes if ep.season == season) + 1

        show_episodes.append(SeriesEpisode(
            id=make_item_id(series_id, entry.url or "", prefix=EPISODE_ID_PREFIX),
            title=entry.name,
            season=season,
            episode=number,
            url=entry.url or "",
            thumbnail=entry.logo,
        ))

    for show_episodes in episodes.values():
        show_episodes.sort(key=lambda ep: (ep.season, ep.episode))

    return list(series_by_id.values()), episodes
