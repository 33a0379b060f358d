"""
Catalog Query Service

Filtering, sorting and paging of catalog collections, plus the manifest
that advertises the available catalogs.
"""
from datetime import datetime
import logging
import re
from collections.abc import Collection
from typing import Any

from iptv_catalog.config import settings
from iptv_catalog.schemas import AddonConfig, PreviewMeta
from iptv_catalog.services.catalog_store import CatalogStore
from iptv_catalog.services.enrichment_service import build_preview
from iptv_catalog.services.fetch_types import ITEM_TYPES, CatalogItem

logger = logging.getLogger(__name__)

_RAIL_RE = re.compile(r'home_(tv|movie|series)_(\d+)$')
_RAIL_LISTS = {
    "tv": "home_tvs_list",
    "movie": "home_movies_list",
    "series": "home_series_list",
}


class RailNotFound(LookupError):
    """Catalog id names a rail index the configuration does not have"""


def select_items(
    items: list[CatalogItem],
    *,
    rail: str | None = None,
    genre: str | None = None,
    search: str | None = None,
    blacklist: Collection[str] = (),
    sort_by_year: bool = False
) -> list[CatalogItem]:
    """
    Apply rail/blacklist/genre/search filters and optional year sort

    A rail query selects the rail's category and ignores the blacklist.
    A global query drops blacklisted categories.
    """
    if rail is not None:
        selected = [item for item in items if item.category == rail]
    else:
        blocked = set(blacklist)
        selected = [item for item in items if item.category not in blocked] if blocked else list(items)

    if genre:
        selected = [item for item in selected if item.category == genre]

    if search:
        query = search.lower()
        selected = [item for item in selected if query in item.name.lower()]

    if sort_by_year:
        selected.sort(key=lambda item: item.year or 0, reverse=True)

    return selected


def query_catalog(
    store: CatalogStore,
    item_type: str,
    *,
    rail: str | None = None,
    genre: str | None = None,
    search: str | None = None,
    blacklist: Collection[str] = (),
    skip: int = 0,
    page_size: int | None = None,
    now: datetime | None = None
) -> list[PreviewMeta]:
    """
    One page of preview projections for a catalog request

    Args:
        store: Catalog store of the requesting identity
        item_type: 'tv', 'movie' or 'series'
        rail: Category bound to a home rail, if the request targets one
        genre: Exact category filter
        search: Case-insensitive name substring
        blacklist: Categories hidden from global catalogs
        skip: Items to skip before the page starts

    Returns:
        At most page_size previews
    """
    if item_type not in ITEM_TYPES:
        return []

    page_size = page_size or settings.catalog_page_size
    selected = select_items(
        store.items(item_type),
        rail=rail,
        genre=genre,
        search=search,
        blacklist=blacklist,
        sort_by_year=item_type in ("movie", "series"),
    )
    skip = max(0, skip)
    page = selected[skip:skip + page_size]

    logger.debug(
        f"Catalog {item_type} rail={rail!r} genre={genre!r} search={search!r}: "
        f"{len(selected)} matches, returning {len(page)}"
    )
    return [build_preview(item, store.schedule, now) for item in page]


def catalog_prefix(config: AddonConfig) -> str:
    """Per-configuration catalog id prefix derived from the display name"""
    name = config.addon_name or settings.addon_name
    return f"{re.sub(r'[^a-zA-Z0-9]', '', name)}_"


def resolve_rail(config: AddonConfig, catalog_id: str) -> str | None:
    """
    Category bound to a home rail catalog id, or None for global catalogs

    Raises:
        RailNotFound: If the id names a rail index the configuration lacks
    """
    match = _RAIL_RE.search(catalog_id)
    if not match:
        return None
    rail_type, index = match.group(1), int(match.group(2))
    categories = getattr(config, _RAIL_LISTS[rail_type])
    if index >= len(categories):
        raise RailNotFound(catalog_id)
    return categories[index]


def genre_options(items: list[CatalogItem], blacklist: Collection[str]) -> list[str]:
    blocked = set(blacklist)
    return sorted({item.category for item in items if item.category and item.category not in blocked})


def build_manifest(config: AddonConfig, store: CatalogStore | None) -> dict[str, Any]:
    """Manifest listing home rails first, then the three global catalogs"""
    prefix = catalog_prefix(config)
    display_name = config.addon_name or settings.addon_name
    blacklist = config.blacklisted_cats

    catalogs: list[dict[str, Any]] = []
    for item_type, label in (("tv", "tv"), ("movie", "movie"), ("series", "series")):
        for index, category in enumerate(getattr(config, _RAIL_LISTS[item_type])):
            catalog: dict[str, Any] = {"type": item_type, "id": f"{prefix}home_{label}_{index}", "name": category}
            if item_type == "tv":
                catalog["posterShape"] = "landscape"
            catalogs.append(catalog)

    for item_type, suffix, title in (("tv", "channels", "Live"), ("movie", "movies", "Movies"), ("series", "series", "Series")):
        if item_type == "series" and not config.include_series:
            continue
        items = store.items(item_type) if store else []
        catalog = {
            "type": item_type,
            "id": f"{prefix}{suffix}",
            "name": f"{display_name} {title}",
            "extra": [{"name": "genre"}, {"name": "search"}, {"name": "skip"}],
            "genres": genre_options(items, blacklist),
        }
        if item_type == "tv":
            catalog["posterShape"] = "landscape"
        catalogs.append(catalog)

    return {
        "id": f"{settings.addon_id}.{prefix.rstrip('_')}",
        "version": settings.addon_version,
        "name": display_name,
        "description": "IPTV live channels, movies and series",
        "resources": ["catalog", "stream", "meta"],
        "types": ["tv", "movie", "series"],
        "catalogs": catalogs,
        "idPrefixes": [prefix, "iptv_", "tt", "tmdb:"],
    }
