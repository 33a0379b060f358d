"""
Enrichment Pipeline

Projects catalog items into preview and detail metadata. Detail requests
for movies and series may consult the external metadata source; that
lookup only ever adds to what the preview already has.
"""
from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import quote

from iptv_catalog.config import settings
from iptv_catalog.schemas import DetailMeta, EpisodeMeta, PreviewMeta, ProgramResponse
from iptv_catalog.services.cache_service import LocalCache
from iptv_catalog.services.catalog_store import CatalogStore
from iptv_catalog.services.fetch_types import CatalogItem, ProgramEntry
from iptv_catalog.services.metadata_client import ExternalMetadata, MetadataClient
from iptv_catalog.services.m3u_parser_service import extract_year
from iptv_catalog.services.schedule_index import ScheduleIndex
from iptv_catalog.services.stream_service import parse_external_id


logger = logging.getLogger(__name__)

LANDSCAPE_PLACEHOLDER = "https://via.placeholder.com/300x200/333333/FFFFFF?text={name}"
POSTER_PLACEHOLDER = "https://via.placeholder.com/300x450/1a1a1a/ffffff?text={name}"


def display_image(item: CatalogItem) -> str | None:
    """First non-blank image-bearing field"""
    for candidate in (item.poster, item.logo):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def transform_image(url: str, item_type: str) -> str:
    """Rewrite an image through the resize proxy (16:9 for live, 2:3 otherwise)"""
    if not settings.image_proxy_enabled:
        return url
    template = settings.image_proxy_landscape if item_type == "tv" else settings.image_proxy_poster
    return template.format(url=quote(url, safe=""))


def placeholder_image(item: CatalogItem) -> str:
    template = LANDSCAPE_PLACEHOLDER if item.type == "tv" else POSTER_PLACEHOLDER
    return template.format(name=quote(item.name, safe=""))


def build_preview(
    item: CatalogItem,
    schedule: ScheduleIndex | None = None,
    now: datetime | None = None
) -> PreviewMeta:
    """Catalog projection of a single item"""
    image = display_image(item)
    poster = transform_image(image, item.type) if image else placeholder_image(item)

    meta = PreviewMeta(id=item.id, type=item.type, name=item.name, poster=poster)

    if item.type == "tv":
        current = schedule.current_program(item.epg_channel_id, now) if schedule else None
        meta.description = f"Now: {current.title}" if current else "Live Channel"
        meta.poster_shape = "landscape"
    else:
        meta.poster_shape = "poster"
        meta.description = item.plot or None
        meta.year = item.year or extract_year(item.name)

    meta.logo = poster
    meta.background = poster
    return meta


def _program_response(program: ProgramEntry) -> ProgramResponse:
    return ProgramResponse(
        title=program.title,
        description=program.description or None,
        start=program.start.isoformat(),
        stop=program.stop.isoformat(),
    )


class EnrichmentService:
    """
    Builds detail metadata.

    External lookups are cached by (type, external id). Only the external
    overlay is cached; the item's own fields are projected per request, so
    two playlist entries sharing an external id keep their own ids and names.
    """

    def __init__(
        self,
        metadata_client: MetadataClient | None = None,
        detail_cache: LocalCache | None = None
    ) -> None:
        self.metadata_client = metadata_client or MetadataClient()
        self.detail_cache = detail_cache or LocalCache(settings.cache_max_entries, settings.cache_ttl_sec)

    @staticmethod
    def _detail_key(item: CatalogItem) -> str | None:
        external = item.imdb_id or (f"tmdb:{item.tmdb_id}" if item.tmdb_id else None)
        return f"{item.type}:{external}" if external else None

    @staticmethod
    def _find_item(store: CatalogStore, item_id: str, item_type: str | None) -> CatalogItem | None:
        item = store.get_item(item_id, item_type) or store.get_item(item_id)
        if item is not None:
            return item
        external = parse_external_id(item_id)
        if external is None or external.season is not None:
            return None
        return store.find_by_external_id(external.scheme, external.value, item_type)

    async def detail(
        self,
        store: CatalogStore,
        item_id: str,
        item_type: str | None = None,
        *,
        api_key: str | None = None,
        now: datetime | None = None
    ) -> DetailMeta | None:
        """
        Detail projection of one item, or None when the id is unknown

        Accepts internal ids as well as 'tt...' and 'tmdb:...' ids of movies
        and series in the store; the answer then carries the requested id.
        """
        item = self._find_item(store, item_id, item_type)
        if item is None:
            return None

        if item.type == "tv":
            return self._channel_detail(item, store.schedule, now)

        meta = self._base_detail(item)
        external = await self._external_metadata(item, api_key)
        if external is not None:
            _merge_external(meta, external)
        if item_id != item.id:
            meta.id = item_id

        if item.type == "series":
            episodes = await store.episodes.episodes_for(item)
            meta.videos = [
                EpisodeMeta(
                    id=episode.id,
                    title=episode.title,
                    season=episode.season,
                    episode=episode.episode,
                    thumbnail=episode.thumbnail or meta.poster,
                    overview=episode.plot,
                    released=episode.released,
                )
                for episode in episodes
            ]
        return meta

    def _channel_detail(self, item: CatalogItem, schedule: ScheduleIndex, now: datetime | None) -> DetailMeta:
        preview = build_preview(item, schedule, now)
        meta = DetailMeta(**preview.model_dump())
        current = schedule.current_program(item.epg_channel_id, now)
        if current is not None and current.description:
            meta.description = f"Now: {current.title}\n{current.description}"
        elif current is None:
            meta.description = item.name
        meta.upcoming = [
            _program_response(program)
            for program in schedule.upcoming_programs(item.epg_channel_id, now, settings.upcoming_programs_limit)
        ]
        return meta

    def _base_detail(self, item: CatalogItem) -> DetailMeta:
        preview = build_preview(item)
        meta = DetailMeta(**preview.model_dump())
        meta.description = item.plot or ("Series" if item.type == "series" else item.name)
        meta.imdb_rating = item.rating
        if item.category:
            meta.genres = [item.category]
        return meta

    async def _external_metadata(self, item: CatalogItem, api_key: str | None) -> ExternalMetadata | None:
        """Cached external overlay; misses are not cached so a later key can still find data"""
        key = self._detail_key(item)
        if key is None:
            return None

        cached = self.detail_cache.get(key)
        if cached is not None:
            return cached  # type: ignore[return-value]

        external = await self.metadata_client.lookup(
            item.type,
            imdb_id=item.imdb_id,
            tmdb_id=item.tmdb_id,
            api_key=api_key,
        )
        if external is not None:
            self.detail_cache.set(key, external)
        return external


def _merge_external(meta: DetailMeta, external: ExternalMetadata) -> None:
    """Overlay non-empty external fields onto a detail projection"""
    if external.description:
        meta.description = external.description
    if external.year:
        meta.year = external.year
        meta.release_info = str(external.year)
    if external.rating:
        meta.imdb_rating = external.rating
    if external.genres:
        meta.genres = list(external.genres)
    if external.poster:
        meta.poster = external.poster
    if external.background:
        meta.background = external.background
    if external.logo:
        meta.logo = external.logo
    if external.trailer:
        meta.trailers = [{"source": external.trailer, "type": "Trailer"}]
