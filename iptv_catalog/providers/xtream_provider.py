"""
Xtream-Codes style provider

Reads live/VOD/series listings from player_api.php, or the m3u_plus
playlist when playlist mode is selected, and the schedule from xmltv.php.
"""
import logging
from typing import Any

from iptv_catalog.providers.base import EPISODE_ID_PREFIX, SERIES_ID_PREFIX, CatalogProvider
from iptv_catalog.services.errors import ProviderError
from iptv_catalog.services.fetch_types import CatalogItem, ProviderCatalog, SeriesEpisode
from iptv_catalog.services.m3u_parser_service import extract_year


logger = logging.getLogger(__name__)

LIVE_ID_PREFIX = "iptv_live_"
VOD_ID_PREFIX = "iptv_vod_"


class XtreamProvider(CatalogProvider):
    """Xtream-Codes API account."""

    name = "xtream"

    @property
    def base_url(self) -> str:
        if not self.config.xtream_url:
            raise ProviderError("No Xtream server URL configured")
        return self.config.xtream_url.rstrip("/")

    @property
    def _credentials(self) -> dict[str, str]:
        return {
            "username": self.config.xtream_username or "",
            "password": self.config.xtream_password or "",
        }

    async def fetch_playlist_text(self) -> str:
        params = {**self._credentials, "type": "m3u_plus", "output": self.config.xtream_output}
        return await self._fetch_text(f"{self.base_url}/get.php", params=params)

    async def fetch_schedule_document(self) -> bytes | None:
        if not self.config.enable_epg:
            return None
        if self.config.epg_url:
            return await self._fetch_document(self.config.epg_url)
        return await self._fetch_document(f"{self.base_url}/xmltv.php", params=self._credentials)

    async def _api(self, action: str, **params: Any) -> Any:
        return await self._fetch_json(
            f"{self.base_url}/player_api.php",
            params={**self._credentials, "action": action, **params},
        )

    async def _api_list(self, action: str) -> list[dict]:
        data = await self._api(action)
        if not isinstance(data, list):
            # Bad credentials come back as a user_info object instead of a list
            raise ProviderError(f"Unexpected {action} response ({type(data).__name__})")
        return [entry for entry in data if isinstance(entry, dict)]

    async def _category_names(self, action: str) -> dict[str, str]:
        try:
            categories = await self._api_list(action)
        except ProviderError as e:
            logger.warning(f"Category lookup {action} failed, using raw ids: {e}")
            return {}
        return {
            str(category.get("category_id")): category.get("category_name") or ""
            for category in categories
        }

    async def fetch_catalog(self) -> ProviderCatalog:
        if self.config.xtream_use_m3u:
            return await super().fetch_catalog()

        live_categories = await self._category_names("get_live_categories")
        catalog = ProviderCatalog(
            channels=[
                self._live_item(stream, live_categories)
                for stream in await self._api_list("get_live_streams")
                if stream.get("stream_id") is not None
            ]
        )

        vod_categories = await self._category_names("get_vod_categories")
        catalog.movies = [
            self._vod_item(stream, vod_categories)
            for stream in await self._api_list("get_vod_streams")
            if stream.get("stream_id") is not None
        ]

        if self.config.include_series:
            series_categories = await self._category_names("get_series_categories")
            catalog.series = [
                self._series_item(entry, series_categories)
                for entry in await self._api_list("get_series")
                if entry.get("series_id") is not None
            ]

        logger.info(
            f"Xtream API normalized: {len(catalog.channels)} channels, "
            f"{len(catalog.movies)} movies, {len(catalog.series)} series"
        )
        return catalog

    def _stream_url(self, kind: str, stream_id: Any, extension: str) -> str:
        credentials = self._credentials
        return f"{self.base_url}/{kind}/{credentials['username']}/{credentials['password']}/{stream_id}.{extension}"

    def _live_item(self, stream: dict, categories: dict[str, str]) -> CatalogItem:
        stream_id = stream["stream_id"]
        return CatalogItem(
            id=f"{LIVE_ID_PREFIX}{stream_id}",
            type="tv",
            name=str(stream.get("name") or stream_id).strip(),
            url=self._stream_url("live", stream_id, self.config.xtream_output),
            category=categories.get(str(stream.get("category_id"))) or None,
            logo=stream.get("stream_icon") or None,
            epg_channel_id=stream.get("epg_channel_id") or None,
        )

    def _vod_item(self, stream: dict, categories: dict[str, str]) -> CatalogItem:
        stream_id = stream["stream_id"]
        name = str(stream.get("name") or stream_id).strip()
        return CatalogItem(
            id=f"{VOD_ID_PREFIX}{stream_id}",
            type="movie",
            name=name,
            url=self._stream_url("movie", stream_id, stream.get("container_extension") or "mp4"),
            category=categories.get(str(stream.get("category_id"))) or None,
            poster=stream.get("stream_icon") or None,
            year=_parse_year(stream.get("year")) or extract_year(name),
            tmdb_id=_string_id(stream.get("tmdb") or stream.get("tmdb_id")),
            imdb_id=_imdb_id(stream.get("imdb") or stream.get("imdb_id")),
            rating=_string_id(stream.get("rating")),
        )

    def _series_item(self, entry: dict, categories: dict[str, str]) -> CatalogItem:
        series_id = entry["series_id"]
        name = str(entry.get("name") or series_id).strip()
        return CatalogItem(
            id=f"{SERIES_ID_PREFIX}{series_id}",
            type="series",
            name=name,
            category=categories.get(str(entry.get("category_id"))) or None,
            poster=entry.get("cover") or None,
            year=_parse_year(entry.get("releaseDate") or entry.get("release_date")) or extract_year(name),
            tmdb_id=_string_id(entry.get("tmdb") or entry.get("tmdb_id")),
            imdb_id=_imdb_id(entry.get("imdb") or entry.get("imdb_id")),
            series_id=str(series_id),
            plot=entry.get("plot") or None,
            rating=_string_id(entry.get("rating")),
        )

    async def fetch_series_episodes(self, series: CatalogItem) -> list[SeriesEpisode]:
        if self.config.xtream_use_m3u:
            return await super().fetch_series_episodes(series)

        raw_id = series.series_id or series.id.removeprefix(SERIES_ID_PREFIX)
        info = await self._api("get_series_info", series_id=raw_id)
        if not isinstance(info, dict):
            raise ProviderError(f"Unexpected get_series_info response for {raw_id}")

        seasons = info.get("episodes") or {}
        if isinstance(seasons, list):
            # Some panels return a list of per-season lists
            seasons = {str(index + 1): season for index, season in enumerate(seasons)}

        episodes: list[SeriesEpisode] = []
        for season_key, season_episodes in seasons.items():
            for raw in season_episodes or []:
                if not isinstance(raw, dict) or raw.get("id") is None:
                    continue
                episodes.append(self._episode(raw, season_key))

        episodes.sort(key=lambda ep: (ep.season, ep.episode))
        return episodes

    def _episode(self, raw: dict, season_key: str) -> SeriesEpisode:
        details = raw.get("info") if isinstance(raw.get("info"), dict) else {}
        season = _parse_int(raw.get("season")) or _parse_int(season_key) or 1
        number = _parse_int(raw.get("episode_num")) or 0
        return SeriesEpisode(
            id=f"{EPISODE_ID_PREFIX}{raw['id']}",
            title=str(raw.get("title") or f"Episode {number}"),
            season=season,
            episode=number,
            url=self._stream_url("series", raw["id"], raw.get("container_extension") or "mp4"),
            thumbnail=details.get("movie_image") or None,
            plot=details.get("plot") or None,
            released=details.get("releasedate") or details.get("air_date") or None,
        )


def _parse_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _parse_year(value: Any) -> int | None:
    if not value:
        return None
    return _parse_int(str(value)[:4])


def _string_id(value: Any) -> str | None:
    if value is None or value == "" or value == 0:
        return None
    return str(value).strip() or None


def _imdb_id(value: Any) -> str | None:
    value = _string_id(value)
    if value and not value.startswith("tt"):
        value = f"tt{value}"
    return value
