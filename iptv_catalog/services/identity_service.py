"""
Configuration identity

Derives the cache identity of a user configuration from the subset of
fields that determine catalog content.
"""
import hashlib
import json
from typing import Any

from iptv_catalog.schemas import AddonConfig


def content_fields(config: AddonConfig) -> dict[str, Any]:
    """Fields that change what ingestion produces. Display-only fields are excluded."""
    return {
        'provider': config.provider,
        'm3u_url': config.m3u_url,
        'epg_url': config.epg_url,
        'enable_epg': bool(config.enable_epg),
        'xtream_url': config.xtream_url,
        'xtream_username': config.xtream_username,
        'xtream_use_m3u': bool(config.xtream_use_m3u),
        'xtream_output': config.xtream_output,
        'epg_offset_hours': config.epg_offset_hours,
        'include_series': config.include_series,
    }


def create_cache_key(config: AddonConfig) -> str:
    """
    Deterministic MD5 digest over the content fields

    Keys are serialized in sorted order so field order never matters.
    """
    serialized = json.dumps(content_fields(config), sort_keys=True, separators=(',', ':'))
    return hashlib.md5(serialized.encode('utf-8')).hexdigest()
