import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    addon_id: str = "org.iptv.catalog"
    addon_name: str = "IPTV"
    addon_version: str = "1.0.0"

    cache_enabled: bool = True
    cache_ttl_sec: int = 6 * 3600
    cache_max_entries: int = 300
    cache_key_prefix: str = "addon:data:"
    refresh_grace_sec: int = 900  # Below this age no refetch is attempted

    redis_url: str | None = None
    redis_timeout_sec: float = 2.0
    redis_max_attempts: int = 2

    http_timeout_sec: float = 60.0
    http_max_retries: int = 3
    http_backoff_factor: float = 2.0
    epg_parse_timeout_sec: int = 300  # 0 disables timeout

    catalog_page_size: int = 100
    upcoming_programs_limit: int = 5

    image_proxy_enabled: bool = True
    image_proxy_landscape: str = "https://images.weserv.nl/?url={url}&w=400&h=225&fit=contain&bg=black"
    image_proxy_poster: str = "https://images.weserv.nl/?url={url}&w=300&h=450&fit=contain&bg=black"

    tmdb_api_key: str | None = None
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_image_base_url: str = "https://image.tmdb.org/t/p/original"
    enrichment_timeout_sec: float = 8.0

    refresh_cron: str = "0 * * * *"  # Hourly
    refresh_misfire_grace_sec: int = 300

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("redis_url", "tmdb_api_key", mode="before")
    @classmethod
    def empty_to_none(cls, value):
        """Treat blank strings as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, value: str | None) -> str | None:
        """Validate the shared cache URL scheme."""
        if value is None:
            return value
        if not value.lower().startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(f"REDIS_URL must use redis://, rediss:// or unix://: {value}")
        return value

    @field_validator(
        "cache_ttl_sec",
        "cache_max_entries",
        "redis_max_attempts",
        "http_max_retries",
        "catalog_page_size",
        "upcoming_programs_limit",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("refresh_grace_sec", "epg_parse_timeout_sec", "refresh_misfire_grace_sec")
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        """Ensure integer settings are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator(
        "redis_timeout_sec",
        "http_timeout_sec",
        "http_backoff_factor",
        "enrichment_timeout_sec",
    )
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure floating-point settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("image_proxy_landscape", "image_proxy_poster")
    @classmethod
    def validate_image_template(cls, value: str, info) -> str:
        """Image templates must carry the {url} placeholder."""
        if "{url}" not in value:
            raise ValueError(f"{info.field_name} must contain a '{{url}}' placeholder")
        return value

    @field_validator("refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate log level name."""
        normalized = value.upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_cache_configuration(self):
        """Validate cross-field configuration."""
        if self.refresh_grace_sec >= self.cache_ttl_sec:
            raise ValueError("refresh_grace_sec must be lower than cache_ttl_sec")

        if not self.redis_url:
            logger.info("No REDIS_URL configured - running with the in-process cache only")

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Cache: %s", "enabled" if self.cache_enabled else "disabled")
        logger.info("  Cache TTL: %ss (grace %ss)", self.cache_ttl_sec, self.refresh_grace_sec)
        logger.info("  Local Cache Entries: %s", self.cache_max_entries)
        logger.info("  Shared Cache: %s", "redis" if self.redis_url else "not configured")
        logger.info("  HTTP Timeout: %ss (retries: %s)", self.http_timeout_sec, self.http_max_retries)
        logger.info(
            "  Parse Timeout: %s seconds",
            self.epg_parse_timeout_sec or "disabled",
        )
        logger.info("  Page Size: %s", self.catalog_page_size)
        logger.info("  Metadata Enrichment: %s", "enabled" if self.tmdb_api_key else "per-user only")
        logger.info("  Refresh Schedule: %s", self.refresh_cron)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
