"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging without excessive decorative separators.
"""
import logging
import re
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode


_SECRET_QUERY_KEYS = {"password", "pass", "token", "api_key"}
_STREAM_PATH_KINDS = ("live", "movie", "series", "timeshift")
_STREAM_ID_RE = re.compile(r"^\d+(?:\.\w+)?$")


def sanitize_url_for_logging(url: str | None) -> str:
    """Remove credentials from URL for safe logging."""
    if not url:
        return ""
    if "://" not in url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    netloc = parts.netloc
    if "@" in netloc:
        netloc = "***:***@" + netloc.split("@", 1)[1]

    query = parts.query
    if query:
        query = urlencode(
            [(key, "***" if key.lower() in _SECRET_QUERY_KEYS else value)
             for key, value in parse_qsl(query, keep_blank_values=True)],
            safe="*",
        )

    return urlunsplit((parts.scheme, netloc, _mask_stream_path(parts.path), query, parts.fragment))


def _mask_stream_path(path: str) -> str:
    """
    Mask credentials embedded in Xtream stream paths

    Handles /live|movie|series|timeshift/<user>/<pass>/... and the
    prefix-less live form /<user>/<pass>/<id>[.ext].
    """
    segments = path.split("/")
    if len(segments) > 4 and segments[1] in _STREAM_PATH_KINDS:
        segments[2] = segments[3] = "***"
    elif len(segments) == 4 and segments[1] and segments[2] and _STREAM_ID_RE.match(segments[3]):
        segments[1] = segments[2] = "***"
    return "/".join(segments)


def log_refresh_start(logger: logging.Logger, identity: str, provider: str) -> None:
    """
    Log the start of a catalog refresh.

    Args:
        logger: Logger instance
        identity: Configuration identity digest
        provider: Provider variant name
    """
    logger.info(f"Refresh started: identity={identity[:8]} provider={provider}")


def log_refresh_end(
    logger: logging.Logger,
    identity: str,
    channels_count: int,
    movies_count: int,
    series_count: int,
    duration_seconds: float
) -> None:
    """
    Log refresh summary.

    Args:
        logger: Logger instance
        identity: Configuration identity digest
        channels_count: Number of live channels
        movies_count: Number of movies
        series_count: Number of series
        duration_seconds: Wall time spent on the refresh
    """
    logger.info(
        f"Refresh completed: identity={identity[:8]} channels={channels_count} "
        f"movies={movies_count} series={series_count} ({duration_seconds:.2f}s)"
    )
