from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from iptv_catalog.utils.timezone import normalize_offset_hours


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class AddonConfig(BaseModel):
    """Per-user configuration supplied with every request.

    Accepts both snake_case and the camelCase keys older configuration
    tokens were generated with.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    provider: Literal["direct", "xtream"] = "direct"
    m3u_url: str | None = Field(None, validation_alias=_alias("m3u_url", "m3uUrl"))
    epg_url: str | None = Field(None, validation_alias=_alias("epg_url", "epgUrl"))
    enable_epg: bool = Field(False, validation_alias=_alias("enable_epg", "enableEpg"))
    xtream_url: str | None = Field(None, validation_alias=_alias("xtream_url", "xtreamUrl"))
    xtream_username: str | None = Field(None, validation_alias=_alias("xtream_username", "xtreamUsername"))
    xtream_password: str | None = Field(None, validation_alias=_alias("xtream_password", "xtreamPassword"))
    xtream_use_m3u: bool = Field(False, validation_alias=_alias("xtream_use_m3u", "xtreamUseM3U"))
    xtream_output: Literal["ts", "m3u8"] = Field("ts", validation_alias=_alias("xtream_output", "xtreamOutput"))
    epg_offset_hours: float = Field(0.0, validation_alias=_alias("epg_offset_hours", "epgOffsetHours"))
    include_series: bool = Field(True, validation_alias=_alias("include_series", "includeSeries"))
    blacklisted_cats: list[str] = Field(default_factory=list)
    home_tvs_list: list[str] = Field(default_factory=list)
    home_movies_list: list[str] = Field(default_factory=list)
    home_series_list: list[str] = Field(default_factory=list)
    addon_name: str | None = Field(None, validation_alias=_alias("addon_name", "addonName"))
    tmdb_api_key: str | None = Field(None, validation_alias=_alias("tmdb_api_key", "tmdbApiKey"))
    debug: bool = False

    @model_validator(mode="before")
    @classmethod
    def derive_provider(cls, data: Any) -> Any:
        """Older configurations only carry a use_xtream flag"""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        provider = data.get("provider")
        if not provider:
            use_xtream = data.get("use_xtream", data.get("useXtream"))
            provider = "xtream" if use_xtream else "direct"
        data["provider"] = "xtream" if provider == "xtream" else "direct"
        return data

    @field_validator("epg_offset_hours", mode="before")
    @classmethod
    def validate_offset(cls, value: Any) -> float:
        """Clamp the schedule offset to +/-48h, resetting bad values to 0"""
        return normalize_offset_hours(value)

    @field_validator("include_series", "enable_epg", "xtream_use_m3u", "debug", mode="before")
    @classmethod
    def none_to_default(cls, value: Any, info) -> Any:
        if value is None:
            return info.field_name == "include_series"
        return value

    @field_validator("blacklisted_cats", "home_tvs_list", "home_movies_list", "home_series_list", mode="before")
    @classmethod
    def parse_category_list(cls, value: Any) -> list[str]:
        """Parse comma-separated categories or list."""
        if value is None:
            return []
        if isinstance(value, str):
            return [cat.strip() for cat in value.split(",") if cat.strip()]
        if isinstance(value, list):
            return [str(cat) for cat in value if cat is not None and str(cat) != ""]
        return []

    @field_validator("m3u_url", "epg_url", "xtream_url")
    @classmethod
    def validate_source_url(cls, value: str | None) -> str | None:
        """Validate source URLs are HTTP/HTTPS."""
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Source URL must be HTTP/HTTPS: {value}")
        return value


class ProgramResponse(BaseModel):
    """Single program data"""
    title: str
    description: str | None = None
    start: str
    stop: str


class EpisodeMeta(BaseModel):
    """Episode entry of a series detail"""
    id: str
    title: str
    season: int
    episode: int
    thumbnail: str | None = None
    overview: str | None = None
    released: str | None = None


class PreviewMeta(BaseModel):
    """Lightweight catalog projection"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    name: str
    poster: str | None = None
    poster_shape: str = Field("poster", alias="posterShape")
    description: str | None = None
    year: int | None = None
    logo: str | None = None
    background: str | None = None


class DetailMeta(PreviewMeta):
    """Enriched projection returned by meta requests"""
    release_info: str | None = Field(None, alias="releaseInfo")
    imdb_rating: str | None = Field(None, alias="imdbRating")
    genres: list[str] = Field(default_factory=list)
    trailers: list[dict[str, str]] = Field(default_factory=list)
    videos: list[EpisodeMeta] = Field(default_factory=list)
    upcoming: list[ProgramResponse] = Field(default_factory=list)


class StreamResponse(BaseModel):
    """Playable stream entry"""
    model_config = ConfigDict(populate_by_name=True)

    url: str
    title: str | None = None
    behavior_hints: dict[str, Any] = Field(
        default_factory=lambda: {"notWebReady": True},
        alias="behaviorHints"
    )


class CatalogResponse(BaseModel):
    metas: list[PreviewMeta]


class MetaResponse(BaseModel):
    meta: DetailMeta | None = None


class StreamsResponse(BaseModel):
    streams: list[StreamResponse]


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: str = Field(..., description="Error code (e.g., 'INVALID_CONFIG', 'VALIDATION_ERROR')")
    message: str = Field(..., description="Human-readable error message")
    context: dict | None = Field(None, description="Additional context about the error")
