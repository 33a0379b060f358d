"""
Two-Tier Cache

Process-local bounded LRU with per-entry TTL, optionally backed by a shared
redis tier. Both tiers hold serialized strings only, so every read rebuilds
fresh objects and nothing handed out can mutate cached state.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from iptv_catalog.config import settings
from iptv_catalog.services.fetch_types import CacheEntry


logger = logging.getLogger(__name__)


class LocalCache:
    """
    Bounded recency-evicting cache with wall-clock TTL per entry.

    Values are replaced whole; an expired entry is treated as absent and
    dropped on access.
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, object]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> object | None:
        item = self._entries.get(key)
        if item is None:
            return None

        expires_at, value = item
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None

        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: object, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (self._clock() + ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted least recently used cache entry {evicted}")

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class SharedTier(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: float) -> None: ...


class RedisCache:
    """
    Shared cache tier backed by redis.

    Every call has a per-attempt timeout and a small fixed attempt budget.
    Failures raise; the composite cache decides what to do with them.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        timeout_seconds: float = 2.0,
        max_attempts: int = 2
    ) -> None:
        self._client = client
        self._timeout = timeout_seconds
        self._max_attempts = max(1, max_attempts)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> RedisCache:
        client = aioredis.Redis.from_url(
            url,
            socket_timeout=settings.redis_timeout_sec,
            socket_connect_timeout=settings.redis_timeout_sec,
            decode_responses=True,
        )
        return cls(client, **kwargs)

    async def _call(self, operation: str, func: Callable, *args, **kwargs):
        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=self._timeout)
            except (asyncio.TimeoutError, RedisError, OSError) as e:
                last_error = e
                logger.debug(
                    f"Redis {operation} attempt {attempt}/{self._max_attempts} failed: {type(e).__name__}"
                )
        raise last_error  # type: ignore[misc]

    async def get(self, key: str) -> str | None:
        return await self._call("GET", self._client.get, key)

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        await self._call("SET", self._client.set, key, value, px=max(1, int(ttl_seconds * 1000)))

    async def close(self) -> None:
        await self._client.aclose()


class TwoTierCache:
    """
    Composite get/put over the local tier and an optional shared tier.

    Reads try local first and promote shared hits; writes go to both.
    Shared tier failures are logged and swallowed.
    """

    def __init__(
        self,
        local: LocalCache,
        shared: SharedTier | None = None,
        *,
        ttl_seconds: float | None = None,
        key_prefix: str = "addon:data:"
    ) -> None:
        self.local = local
        self.shared = shared
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else local.ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, identity: str) -> str:
        return f"{self.key_prefix}{identity}"

    async def get(self, identity: str) -> CacheEntry | None:
        key = self._key(identity)
        raw = self.local.get(key)

        if raw is None and self.shared is not None:
            try:
                raw = await self.shared.get(key)
            except Exception as e:
                logger.warning(f"Shared cache read failed for {identity[:8]}, treating as miss: {e}")
                raw = None
            if raw is not None:
                logger.debug(f"Promoting shared cache entry {identity[:8]} to local tier")
                self.local.set(key, raw, self.ttl_seconds)

        if raw is None:
            return None

        try:
            return CacheEntry.from_json(raw)  # type: ignore[arg-type]
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache entry {identity[:8]}: {e}")
            self.local.delete(key)
            return None

    async def put(self, identity: str, entry: CacheEntry, ttl_seconds: float | None = None) -> None:
        key = self._key(identity)
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            raw = entry.to_json()
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not serialize cache entry {identity[:8]}: {e}")
            return

        self.local.set(key, raw, ttl)

        if self.shared is None:
            return
        try:
            await self.shared.set(key, raw, ttl)
        except Exception as e:
            logger.warning(f"Shared cache write failed for {identity[:8]}: {e}")


def create_cache() -> TwoTierCache:
    """Build the ingestion cache from settings"""
    local = LocalCache(settings.cache_max_entries, settings.cache_ttl_sec)
    shared = None
    if settings.redis_url:
        shared = RedisCache.from_url(
            settings.redis_url,
            timeout_seconds=settings.redis_timeout_sec,
            max_attempts=settings.redis_max_attempts,
        )
        logger.info("Shared cache tier enabled")
    return TwoTierCache(
        local,
        shared,
        ttl_seconds=settings.cache_ttl_sec,
        key_prefix=settings.cache_key_prefix,
    )
