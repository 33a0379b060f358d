import hashlib
import logging
import re
from typing import Optional

from iptv_catalog.services.fetch_types import CatalogItem

logger = logging.getLogger(__name__)

ID_PREFIX = "iptv_"

_EXTINF_RE = re.compile(r'^#EXTINF:(-?\d+(?:\.\d+)?)(?:\s+(.*))?,(.*)$')
_ATTRIBUTE_RE = re.compile(r'(\w+(?:-\w+)*)="([^"]*)"')
_MOVIE_NAME_PATTERNS = (
    re.compile(r'\(\d{4}\)'),
    re.compile(r'\d{4}\.'),
    re.compile(r'(?:HD|FHD|4K)$', re.IGNORECASE),
)
_EPISODE_RE = re.compile(r'\bS(\d{1,2})\s?E(\d{1,3})\b', re.IGNORECASE)
_SEASON_RE = re.compile(r'\bSeason\s?(\d+)', re.IGNORECASE)
_YEAR_RE = re.compile(r'\((\d{4})\)')


def parse_m3u(content: str) -> list[CatalogItem]:
    """
    Parse extended M3U playlist text into catalog items

    Each #EXTINF description line is terminated by the next non-comment,
    non-blank line, which is its stream URL. Description lines that do not
    match the grammar, or that never get a URL, are dropped.

    Args:
        content: Raw playlist text

    Returns:
        Items in playlist order, classified as tv/movie/series
    """
    items: list[CatalogItem] = []
    current: Optional[dict] = None
    dropped = 0

    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue

        if line.startswith('#EXTINF:'):
            if current is not None:
                dropped += 1
            current = _parse_extinf(line)
            if current is None:
                dropped += 1
            continue

        if line.startswith('#'):
            continue

        if current is None:
            continue

        items.append(_build_item(current, line))
        current = None

    if current is not None:
        dropped += 1

    logger.debug(f"Parsed {len(items)} playlist entries ({dropped} dropped)")
    return items


def _parse_extinf(line: str) -> Optional[dict]:
    """Split one #EXTINF line into attributes and display name"""
    match = _EXTINF_RE.match(line)
    if not match:
        return None

    name = (match.group(3) or '').strip()
    if not name:
        return None

    return {
        'attributes': parse_attributes(match.group(2) or ''),
        'name': name,
    }


def playlist_epg_url(content: str) -> str | None:
    """Schedule URL advertised in the #EXTM3U header (url-tvg / x-tvg-url), if any"""
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        if not line.startswith('#EXTM3U'):
            return None
        attributes = parse_attributes(line)
        url = attributes.get('url-tvg') or attributes.get('x-tvg-url')
        # Several comma-separated guides may be listed; the first one wins
        return url.split(',')[0].strip() if url else None
    return None


def parse_attributes(text: str) -> dict[str, str]:
    """Extract key="value" pairs; keys may contain hyphens"""
    return {key: value for key, value in _ATTRIBUTE_RE.findall(text)}


def is_movie_format(name: str) -> bool:
    return any(pattern.search(name) for pattern in _MOVIE_NAME_PATTERNS)


def classify_entry(name: str, group: str | None) -> str:
    """
    Classify a playlist entry, first match wins:
    movie markers, then series markers, then live channel
    """
    group_lower = (group or '').lower()
    name_lower = name.lower()

    if 'movie' in group_lower or 'movie' in name_lower or is_movie_format(name):
        return 'movie'

    if (
        'series' in group_lower
        or 'show' in group_lower
        or _EPISODE_RE.search(name)
        or _SEASON_RE.search(name)
    ):
        return 'series'

    return 'tv'


def make_item_id(*parts: str, prefix: str = ID_PREFIX) -> str:
    """Content-derived id, stable across refreshes for the same inputs"""
    digest = hashlib.md5(''.join(parts).encode('utf-8')).hexdigest()[:16]
    return f"{prefix}{digest}"


def extract_year(name: str) -> int | None:
    match = _YEAR_RE.search(name)
    return int(match.group(1)) if match else None


def split_series_name(name: str) -> tuple[str, int, int | None]:
    """
    Split an episode display name into (show, season, episode)

    Names without an S##E## marker fall back to 'Season #' (episode unknown)
    and then to season 1.
    """
    match = _EPISODE_RE.search(name)
    if match:
        show = name[:match.start()]
        return _clean_show_name(show) or name.strip(), int(match.group(1)), int(match.group(2))

    match = _SEASON_RE.search(name)
    if match:
        show = name[:match.start()]
        return _clean_show_name(show) or name.strip(), int(match.group(1)), None

    return name.strip(), 1, None


def _clean_show_name(value: str) -> str:
    return value.strip().rstrip('-|:,.').strip()


def _build_item(entry: dict, url: str) -> CatalogItem:
    attributes = entry['attributes']
    name = entry['name']
    group = attributes.get('group-title')

    return CatalogItem(
        id=make_item_id(name, url),
        type=classify_entry(name, group),
        name=name,
        url=url,
        category=group,
        logo=attributes.get('tvg-logo') or None,
        epg_channel_id=attributes.get('tvg-id') or attributes.get('tvg-name') or None,
        year=extract_year(name),
    )
