from urllib.parse import parse_qs, unquote
import logging

from fastapi import APIRouter

from iptv_catalog.config import settings
from iptv_catalog.dependencies import AggregatorDep, ConfigDep
from iptv_catalog.schemas import CatalogResponse, MetaResponse, StreamResponse, StreamsResponse
from iptv_catalog.services.scheduler_service import refresh_scheduler


logger = logging.getLogger(__name__)

main_router = APIRouter()


def _parse_extra(extra: str | None) -> dict[str, str]:
    """Parse the 'genre=Action&search=foo&skip=100' catalog path segment"""
    if not extra:
        return {}
    parsed = parse_qs(unquote(extra), keep_blank_values=False)
    return {key: values[0] for key, values in parsed.items() if values}


def _parse_skip(value: str | None) -> int:
    try:
        return max(0, int(value)) if value else 0
    except ValueError:
        return 0


@main_router.get("/")
async def root() -> dict:
    """Root endpoint with service information"""
    next_run = refresh_scheduler.get_next_run_time()

    return {
        "service": settings.addon_name,
        "version": settings.addon_version,
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "manifest": "/{config}/manifest.json",
            "catalog": "/{config}/catalog/{type}/{id}.json",
            "meta": "/{config}/meta/{type}/{id}.json",
            "stream": "/{config}/stream/{type}/{id}.json",
            "refresh": "/{config}/refresh - Force a catalog refresh (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(aggregator: AggregatorDep) -> dict:
    """Health check endpoint"""
    next_run = refresh_scheduler.get_next_run_time()
    return {
        "status": "ok",
        "configurations": len(aggregator.registry),
        "scheduler_running": refresh_scheduler.running,
        "next_refresh": next_run.isoformat() if next_run else None
    }


@main_router.get("/{token}/manifest.json")
async def get_manifest(config: ConfigDep, aggregator: AggregatorDep) -> dict:
    """Addon manifest with home rails and global catalogs"""
    return await aggregator.manifest(config)


@main_router.get("/{token}/catalog/{item_type}/{catalog_id}.json")
async def get_catalog(item_type: str, catalog_id: str, config: ConfigDep, aggregator: AggregatorDep) -> dict:
    """First page of a catalog"""
    return await _catalog(item_type, catalog_id, None, config, aggregator)


@main_router.get("/{token}/catalog/{item_type}/{catalog_id}/{extra}.json")
async def get_catalog_with_extra(
    item_type: str,
    catalog_id: str,
    extra: str,
    config: ConfigDep,
    aggregator: AggregatorDep
) -> dict:
    """Catalog page with genre/search/skip extras"""
    return await _catalog(item_type, catalog_id, extra, config, aggregator)


async def _catalog(item_type, catalog_id, extra, config, aggregator) -> dict:
    extras = _parse_extra(extra)
    metas = await aggregator.query_catalog(
        config,
        item_type,
        catalog_id,
        genre=extras.get("genre"),
        search=extras.get("search"),
        skip=_parse_skip(extras.get("skip")),
    )
    return CatalogResponse(metas=metas).model_dump(by_alias=True, exclude_none=True)


@main_router.get("/{token}/meta/{item_type}/{item_id}.json")
async def get_meta(item_type: str, item_id: str, config: ConfigDep, aggregator: AggregatorDep) -> dict:
    """Detail metadata; meta is null for unknown ids"""
    meta = await aggregator.detail(config, item_id, item_type)
    if meta is None:
        return MetaResponse().model_dump()
    return MetaResponse(meta=meta).model_dump(by_alias=True, exclude_none=True)


@main_router.get("/{token}/stream/{item_type}/{item_id}.json")
async def get_stream(item_type: str, item_id: str, config: ConfigDep, aggregator: AggregatorDep) -> dict:
    """Playable streams; an empty list means no stream"""
    locator = await aggregator.resolve_stream(config, item_id)
    streams = [StreamResponse(url=locator.url, title=locator.title)] if locator else []
    return StreamsResponse(streams=streams).model_dump(by_alias=True, exclude_none=True)


@main_router.post("/{token}/refresh")
async def trigger_refresh(config: ConfigDep, aggregator: AggregatorDep) -> dict:
    """
    Manually refresh a configuration's catalog

    Bypasses the staleness grace window.
    """
    logger.info("Manual catalog refresh triggered via API")
    result = await aggregator.admin_refresh(config)
    return result.to_dict()
