"""
Stream resolution

Maps a requested id to a playable URL. Recognized shapes:
  iptv_series_ep_*        episode of a series episode index
  tt123 / tt123:S:E       IMDb id, optionally season/episode
  tmdb:123 / tmdb:123:S:E TMDB id, optionally season/episode
  anything else           channel or movie id
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from iptv_catalog.providers.base import EPISODE_ID_PREFIX
from iptv_catalog.services.catalog_store import CatalogStore


logger = logging.getLogger(__name__)

_EXTERNAL_ID_RE = re.compile(r'^(?:(tt\d+)|tmdb:(\d+))(?::(\d+):(\d+))?$')


@dataclass(slots=True)
class StreamLocator:
    url: str
    title: str


@dataclass(slots=True)
class ExternalId:
    scheme: str
    value: str
    season: int | None = None
    episode: int | None = None


def parse_external_id(stream_id: str) -> ExternalId | None:
    match = _EXTERNAL_ID_RE.match(stream_id)
    if not match:
        return None
    imdb, tmdb, season, episode = match.groups()
    return ExternalId(
        scheme="imdb" if imdb else "tmdb",
        value=imdb or tmdb,
        season=int(season) if season else None,
        episode=int(episode) if episode else None,
    )


async def resolve_stream(store: CatalogStore, stream_id: str) -> StreamLocator | None:
    """Playable locator for an id, or None when nothing matches"""
    if not stream_id:
        return None

    if stream_id.startswith(EPISODE_ID_PREFIX):
        episode = store.episodes.find_episode(stream_id)
        if episode is None or not episode.url:
            logger.debug(f"No built episode index contains {stream_id}")
            return None
        return StreamLocator(url=episode.url, title=episode.title or "Episode")

    external = parse_external_id(stream_id)
    if external is not None:
        return await _resolve_external(store, external)

    item = store.get_item(stream_id)
    if item is None or item.type == "series" or not item.url:
        return None
    return StreamLocator(url=item.url, title=item.name)


async def _resolve_external(store: CatalogStore, external: ExternalId) -> StreamLocator | None:
    if external.season is None:
        movie = store.find_by_external_id(external.scheme, external.value, "movie")
        if movie is None or not movie.url:
            return None
        return StreamLocator(url=movie.url, title=movie.name)

    series = store.find_by_external_id(external.scheme, external.value, "series")
    if series is None:
        return None

    for episode in await store.episodes.episodes_for(series):
        if episode.season == external.season and episode.episode == external.episode and episode.url:
            return StreamLocator(url=episode.url, title=episode.title or series.name)
    return None
