"""
External metadata lookup (TMDB v3)

Best-effort: every failure is logged and reported as "no metadata".
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from iptv_catalog.config import settings


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExternalMetadata:
    """Fields the detail projection may take from the metadata source."""
    description: str | None = None
    year: int | None = None
    rating: str | None = None
    genres: list[str] = field(default_factory=list)
    poster: str | None = None
    background: str | None = None
    logo: str | None = None
    trailer: str | None = None


class MetadataClient:
    """Looks up movies and series by IMDb or TMDB id."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.enrichment_timeout_sec
        self._transport = transport

    async def lookup(
        self,
        item_type: str,
        *,
        imdb_id: str | None = None,
        tmdb_id: str | None = None,
        api_key: str | None = None
    ) -> ExternalMetadata | None:
        """
        One bounded lookup; None when unconfigured, not found or failed

        Args:
            item_type: 'movie' or 'series'
            imdb_id: IMDb id (tt...)
            tmdb_id: TMDB numeric id
            api_key: Per-user key, overrides the process-wide one
        """
        key = api_key or self.api_key
        if not key or item_type not in ("movie", "series") or not (imdb_id or tmdb_id):
            return None

        media = "movie" if item_type == "movie" else "tv"
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                return await asyncio.wait_for(
                    self._lookup(client, key, media, imdb_id, tmdb_id),
                    timeout=self.timeout,
                )
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Metadata lookup failed for {imdb_id or tmdb_id}: {type(e).__name__}: {e}")
            return None

    async def _lookup(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        media: str,
        imdb_id: str | None,
        tmdb_id: str | None
    ) -> ExternalMetadata | None:
        if not tmdb_id and imdb_id:
            tmdb_id = await self._find_by_imdb(client, api_key, media, imdb_id)
            if not tmdb_id:
                logger.debug(f"No {media} match for {imdb_id}")
                return None

        response = await client.get(
            f"/{media}/{tmdb_id}",
            params={"api_key": api_key, "append_to_response": "videos,images", "include_image_language": "en,null"},
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return self._to_metadata(response.json())

    async def _find_by_imdb(self, client: httpx.AsyncClient, api_key: str, media: str, imdb_id: str) -> str | None:
        response = await client.get(
            f"/find/{imdb_id}",
            params={"api_key": api_key, "external_source": "imdb_id"},
        )
        response.raise_for_status()
        results = response.json().get(f"{media}_results") or []
        return str(results[0]["id"]) if results else None

    def _image(self, path: str | None) -> str | None:
        return f"{settings.tmdb_image_base_url}{path}" if path else None

    def _to_metadata(self, data: dict[str, Any]) -> ExternalMetadata:
        release = data.get("release_date") or data.get("first_air_date") or ""
        rating = data.get("vote_average")
        logos = (data.get("images") or {}).get("logos") or []
        trailers = [
            video for video in (data.get("videos") or {}).get("results") or []
            if video.get("site") == "YouTube" and video.get("type") == "Trailer"
        ]
        return ExternalMetadata(
            description=data.get("overview") or None,
            year=int(release[:4]) if release[:4].isdigit() else None,
            rating=f"{rating:.1f}" if isinstance(rating, (int, float)) and rating else None,
            genres=[genre["name"] for genre in data.get("genres") or [] if genre.get("name")],
            poster=self._image(data.get("poster_path")),
            background=self._image(data.get("backdrop_path")),
            logo=self._image(logos[0].get("file_path")) if logos else None,
            trailer=trailers[0]["key"] if trailers else None,
        )
