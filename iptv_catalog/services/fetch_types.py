"""
Shared dataclasses used across the ingestion pipeline.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Literal

ItemType = Literal["tv", "movie", "series"]

ITEM_TYPES: tuple[str, ...] = ("tv", "movie", "series")


@dataclass(slots=True)
class CatalogItem:
    """One listing entry (live channel, movie or series)."""
    id: str
    type: str
    name: str
    url: str | None = None
    category: str | None = None
    logo: str | None = None
    poster: str | None = None
    epg_channel_id: str | None = None
    year: int | None = None
    imdb_id: str | None = None
    tmdb_id: str | None = None
    series_id: str | None = None
    plot: str | None = None
    rating: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CatalogItem:
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(slots=True)
class ProgramEntry:
    """One scheduled broadcast, times already normalized to UTC instants."""
    channel_id: str
    start: datetime
    stop: datetime
    title: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "start": self.start.isoformat(),
            "stop": self.stop.isoformat(),
            "title": self.title,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgramEntry:
        return cls(
            channel_id=data["channel_id"],
            start=datetime.fromisoformat(data["start"]),
            stop=datetime.fromisoformat(data["stop"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
        )


@dataclass(slots=True)
class SeriesEpisode:
    """A single playable episode, owned by its series' episode index."""
    id: str
    title: str
    season: int
    episode: int
    url: str
    thumbnail: str | None = None
    plot: str | None = None
    released: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SeriesEpisode:
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass(slots=True)
class ProviderCatalog:
    """Raw result of one provider ingestion, before the store is built."""
    channels: list[CatalogItem] = field(default_factory=list)
    movies: list[CatalogItem] = field(default_factory=list)
    series: list[CatalogItem] = field(default_factory=list)


@dataclass(slots=True)
class CacheEntry:
    """Serializable snapshot of one catalog store."""
    channels: list[CatalogItem]
    movies: list[CatalogItem]
    series: list[CatalogItem]
    schedule: dict[str, list[ProgramEntry]]
    last_refreshed_at: float

    def to_json(self) -> str:
        payload = {
            "channels": [item.to_dict() for item in self.channels],
            "movies": [item.to_dict() for item in self.movies],
            "series": [item.to_dict() for item in self.series],
            "schedule": {
                channel_id: [program.to_dict() for program in programs]
                for channel_id, programs in self.schedule.items()
            },
            "last_refreshed_at": self.last_refreshed_at,
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str | bytes) -> CacheEntry:
        """
        Rebuild a snapshot from its serialized form

        Raises:
            ValueError: If the payload is not a valid snapshot
        """
        try:
            payload = json.loads(raw)
            return cls(
                channels=[CatalogItem.from_dict(item) for item in payload.get("channels") or []],
                movies=[CatalogItem.from_dict(item) for item in payload.get("movies") or []],
                series=[CatalogItem.from_dict(item) for item in payload.get("series") or []],
                schedule={
                    channel_id: [ProgramEntry.from_dict(program) for program in programs]
                    for channel_id, programs in (payload.get("schedule") or {}).items()
                },
                last_refreshed_at=float(payload.get("last_refreshed_at") or 0),
            )
        except (TypeError, KeyError, AttributeError) as e:
            raise ValueError(f"Malformed cache entry: {e}") from e


__all__ = [
    "ITEM_TYPES",
    "ItemType",
    "CatalogItem",
    "ProgramEntry",
    "SeriesEpisode",
    "ProviderCatalog",
    "CacheEntry",
]
