"""
HTTP fetch utilities

This module handles fetching provider documents with retry logic.
"""
import asyncio
import gzip
import json
import logging
from typing import Any

import httpx

from iptv_catalog.config import settings
from iptv_catalog.services.errors import ProviderError
from iptv_catalog.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

_GZIP_MAGIC = b"\x1f\x8b"


async def fetch_bytes(
    url: str,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
    max_retries: int | None = None,
    backoff_factor: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """
    Fetch a URL with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx.
    Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        url: URL to fetch
        params: Optional query parameters
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
        transport: Optional httpx transport (tests)

    Returns:
        Response body

    Raises:
        ProviderError: If the fetch fails after all retries or on a client error
    """
    timeout = timeout if timeout is not None else settings.http_timeout_sec
    max_retries = max_retries if max_retries is not None else settings.http_max_retries
    backoff_factor = backoff_factor if backoff_factor is not None else settings.http_backoff_factor
    safe_url = sanitize_url_for_logging(url)

    logger.debug(f"Fetching {safe_url}...")

    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()

                logger.debug(f"Fetched {len(response.content) / 1024:.1f} KB from {safe_url}")
                return response.content

        except (httpx.TimeoutException, httpx.TransportError) as e:
            # Transient network errors - retry
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{max_retries} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Fetch of {safe_url} failed after {max_retries} attempts (transient error)")

        except httpx.HTTPStatusError as e:
            if 400 <= e.response.status_code < 500:
                logger.error(f"HTTP {e.response.status_code} (client error) for {safe_url}")
                raise ProviderError(f"HTTP {e.response.status_code} fetching {safe_url}") from e

            # 5xx server error - retry
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{max_retries} failed "
                    f"(HTTP {e.response.status_code} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Fetch of {safe_url} failed after {max_retries} attempts (HTTP {e.response.status_code})")

    raise ProviderError(f"Failed to fetch {safe_url} after {max_retries} attempts") from last_error


async def fetch_document(url: str, **kwargs: Any) -> bytes:
    """
    Fetch a raw document, inflating gzip bodies transparently

    The bytes are left undecoded so XML parsers can apply the document's
    own encoding declaration.
    """
    body = await fetch_bytes(url, **kwargs)
    if body.startswith(_GZIP_MAGIC):
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError) as e:
            raise ProviderError(f"Corrupt gzip body from {sanitize_url_for_logging(url)}") from e
    return body


async def fetch_text(url: str, **kwargs: Any) -> str:
    """Fetch a UTF-8 text document such as a playlist."""
    body = await fetch_document(url, **kwargs)
    return body.decode("utf-8", errors="replace")


async def fetch_json(url: str, **kwargs: Any) -> Any:
    """Fetch and decode a JSON document."""
    body = await fetch_bytes(url, **kwargs)
    try:
        return json.loads(body)
    except ValueError as e:
        raise ProviderError(f"Invalid JSON from {sanitize_url_for_logging(url)}") from e
