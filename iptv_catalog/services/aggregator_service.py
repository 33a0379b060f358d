"""
Catalog Aggregation Service

Coordinates ingestion, caching and store replacement per configuration
identity, and exposes the query operations the HTTP layer calls.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Literal

from iptv_catalog.config import settings
from iptv_catalog.providers import CatalogProvider, create_provider
from iptv_catalog.schemas import AddonConfig, DetailMeta, PreviewMeta
from iptv_catalog.services.cache_service import TwoTierCache, create_cache
from iptv_catalog.services.catalog_query_service import (
    RailNotFound,
    build_manifest,
    query_catalog,
    resolve_rail,
)
from iptv_catalog.services.catalog_store import CatalogStore, CatalogStoreRegistry
from iptv_catalog.services.enrichment_service import EnrichmentService
from iptv_catalog.services.errors import ProviderError
from iptv_catalog.services.fetch_types import ProgramEntry
from iptv_catalog.services.identity_service import create_cache_key
from iptv_catalog.services.refresh_coordinator import RefreshCoordinator
from iptv_catalog.services.schedule_index import ScheduleIndex
from iptv_catalog.services.stream_service import StreamLocator, resolve_stream
from iptv_catalog.services.xmltv_parser_service import parse_xmltv_async
from iptv_catalog.utils.logging_helpers import log_refresh_end, log_refresh_start


logger = logging.getLogger(__name__)

ProviderFactory = Callable[[AddonConfig], CatalogProvider]


@dataclass(slots=True)
class RefreshResult:
    identity: str
    store: CatalogStore
    status: Literal["success", "failed"]
    started_at: datetime
    completed_at: datetime
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "status": self.status,
            "identity": self.identity,
            "channels": len(self.store.channels),
            "movies": len(self.store.movies),
            "series": len(self.store.series),
            "scheduled_channels": len(self.store.schedule),
            "last_refreshed_at": (
                datetime.fromtimestamp(self.store.last_refreshed_at, timezone.utc).isoformat()
                if self.store.last_refreshed_at else None
            ),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }
        if self.error:
            payload["error"] = self.error
        return payload


class CatalogAggregator:
    """
    Owns the identity -> store registry.

    Stores younger than the grace window are served as-is. Older stores are
    served while a background refresh runs; stores past the cache TTL (or
    missing) are refreshed before answering. A failed refresh keeps the
    previous store.
    """

    def __init__(
        self,
        *,
        cache: TwoTierCache | None = None,
        registry: CatalogStoreRegistry | None = None,
        enrichment: EnrichmentService | None = None,
        provider_factory: ProviderFactory = create_provider,
        clock: Callable[[], float] = time.time
    ) -> None:
        self.cache = cache if cache is not None else create_cache()
        self.registry = registry or CatalogStoreRegistry()
        self.enrichment = enrichment or EnrichmentService()
        self._provider_factory = provider_factory
        self._providers: dict[str, CatalogProvider] = {}
        self._coordinator = RefreshCoordinator()
        self._background: set[asyncio.Task] = set()
        self._clock = clock

    # ------------------------------------------------------------------
    # Loading and refreshing
    # ------------------------------------------------------------------

    def _provider_for(self, identity: str, config: AddonConfig) -> CatalogProvider:
        provider = self._providers.get(identity)
        if provider is None:
            provider = self._provider_factory(config)
            self._providers[identity] = provider
        return provider

    def _new_store(self, identity: str, config: AddonConfig, **kwargs) -> CatalogStore:
        provider = self._provider_for(identity, config)
        return CatalogStore(
            identity,
            episode_fetcher=provider.fetch_series_episodes,
            episode_timeout_seconds=settings.http_timeout_sec,
            **kwargs,
        )

    async def _restore(self, identity: str, config: AddonConfig) -> CatalogStore | None:
        if not settings.cache_enabled:
            return None
        entry = await self.cache.get(identity)
        if entry is None:
            return None

        provider = self._provider_for(identity, config)
        store = CatalogStore.from_entry(
            identity,
            entry,
            episode_fetcher=provider.fetch_series_episodes,
            episode_timeout_seconds=settings.http_timeout_sec,
        )
        self.registry.swap(identity, config, store)
        logger.info(
            f"Restored {identity[:8]} from cache: {len(store.channels)} channels, "
            f"{len(store.movies)} movies, {len(store.series)} series"
        )
        return store

    async def load_or_refresh(self, config: AddonConfig) -> CatalogStore:
        """
        Current store for a configuration, refreshing when stale

        Never raises for provider problems; worst case is an empty store.
        """
        identity = create_cache_key(config)
        store = self.registry.get(identity)
        if store is None:
            store = await self._restore(identity, config)

        if store is not None:
            age = store.age_seconds(self._clock())
            if age < settings.refresh_grace_sec:
                return store
            if age < settings.cache_ttl_sec and not store.is_empty:
                self._refresh_in_background(identity, config)
                return store

        result = await self._coordinator.execute(identity, lambda: self._refresh(identity, config))
        return result.store

    async def admin_refresh(self, config: AddonConfig) -> RefreshResult:
        """Refresh now, bypassing the grace window"""
        identity = create_cache_key(config)
        if self.registry.get(identity) is None:
            await self._restore(identity, config)
        return await self._coordinator.execute(identity, lambda: self._refresh(identity, config))

    async def refresh_all(self) -> list[RefreshResult]:
        """Grace-respecting refresh of every registered configuration"""
        results = []
        for config in self.registry.configs():
            identity = create_cache_key(config)
            store = self.registry.get(identity)
            if store is not None and store.age_seconds(self._clock()) < settings.refresh_grace_sec:
                continue
            results.append(
                await self._coordinator.execute(identity, lambda c=config, i=identity: self._refresh(i, c))
            )
        return results

    def _refresh_in_background(self, identity: str, config: AddonConfig) -> None:
        if self._coordinator.is_refreshing(identity):
            return
        logger.debug(f"Serving stale store for {identity[:8]} while refreshing")
        task = self._coordinator.start(identity, lambda: self._refresh(identity, config))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh(self, identity: str, config: AddonConfig) -> RefreshResult:
        provider = self._provider_for(identity, config)
        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        log_refresh_start(logger, identity, provider.name)

        try:
            catalog = await provider.fetch_catalog()
            schedule = await self._fetch_schedule(provider, config)
        except Exception as exc:  # Catch-all so a broken provider never reaches a query
            previous = self.registry.get(identity)
            if isinstance(exc, ProviderError):
                logger.error(f"Refresh failed for {identity[:8]}: {exc}")
            else:
                logger.error(f"Unexpected error refreshing {identity[:8]}: {exc}", exc_info=True)
            if previous is None:
                previous = self._new_store(identity, config)
                self.registry.swap(identity, config, previous)
            return RefreshResult(
                identity=identity,
                store=previous,
                status="failed",
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                error=str(exc),
            )

        store = self._new_store(
            identity,
            config,
            channels=catalog.channels,
            movies=catalog.movies,
            series=catalog.series if config.include_series else [],
            schedule=ScheduleIndex(schedule),
            last_refreshed_at=self._clock(),
        )
        self.registry.swap(identity, config, store)

        if settings.cache_enabled:
            await self.cache.put(identity, store.to_entry())

        log_refresh_end(
            logger,
            identity,
            len(store.channels),
            len(store.movies),
            len(store.series),
            time.perf_counter() - started,
        )
        return RefreshResult(
            identity=identity,
            store=store,
            status="success",
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )

    async def _fetch_schedule(self, provider: CatalogProvider, config: AddonConfig) -> dict[str, list[ProgramEntry]]:
        """Schedule problems leave the schedule empty; the catalog still refreshes"""
        if not config.enable_epg:
            return {}
        try:
            content = await provider.fetch_schedule_document()
        except ProviderError as exc:
            logger.warning(f"Schedule fetch failed, continuing without schedule: {exc}")
            return {}
        if not content:
            return {}
        try:
            return await parse_xmltv_async(
                content,
                config.epg_offset_hours,
                parse_timeout_seconds=settings.epg_parse_timeout_sec,
            )
        except Exception as exc:  # A broken guide must not cost the playlist catalog
            logger.error(f"Schedule parsing failed, continuing without schedule: {exc}", exc_info=True)
            return {}

    # ------------------------------------------------------------------
    # Query operations
    # ------------------------------------------------------------------

    async def query_catalog(
        self,
        config: AddonConfig,
        item_type: str,
        catalog_id: str | None = None,
        *,
        genre: str | None = None,
        search: str | None = None,
        skip: int = 0
    ) -> list[PreviewMeta]:
        store = await self.load_or_refresh(config)
        try:
            rail = resolve_rail(config, catalog_id) if catalog_id else None
        except RailNotFound:
            logger.debug(f"Unknown rail catalog {catalog_id}")
            return []

        trace = logger.info if config.debug else logger.debug
        trace(f"Catalog request type={item_type} catalog={catalog_id} rail={rail!r}")

        return query_catalog(
            store,
            item_type,
            rail=rail,
            genre=genre,
            search=search,
            blacklist=config.blacklisted_cats,
            skip=skip,
        )

    async def resolve_stream(self, config: AddonConfig, stream_id: str) -> StreamLocator | None:
        store = await self.load_or_refresh(config)
        locator = await resolve_stream(store, stream_id)
        trace = logger.info if config.debug else logger.debug
        trace(f"Stream request {stream_id}: {'found' if locator else 'no stream'}")
        return locator

    async def detail(self, config: AddonConfig, item_id: str, item_type: str | None = None) -> DetailMeta | None:
        store = await self.load_or_refresh(config)
        return await self.enrichment.detail(store, item_id, item_type, api_key=config.tmdb_api_key)

    async def manifest(self, config: AddonConfig) -> dict[str, Any]:
        store = await self.load_or_refresh(config)
        return build_manifest(config, store)


# Global singleton instance
_aggregator: CatalogAggregator | None = None


def get_aggregator() -> CatalogAggregator:
    """
    Get or create the global aggregator singleton.

    Returns:
        The global CatalogAggregator instance
    """
    global _aggregator
    if _aggregator is None:
        _aggregator = CatalogAggregator()
    return _aggregator


def reset_aggregator() -> None:
    """
    Reset the aggregator (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _aggregator
    _aggregator = None
