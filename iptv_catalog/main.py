from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from iptv_catalog.config import settings, setup_logging
from iptv_catalog.services.aggregator_service import get_aggregator
from iptv_catalog.services.cache_service import RedisCache
from iptv_catalog.services.scheduler_service import refresh_scheduler

from iptv_catalog.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting catalog service...")

    try:
        get_aggregator()
        refresh_scheduler.start()
        logger.info("Catalog service started successfully")
    except Exception as e:
        logger.error(f"Failed to start catalog service: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down catalog service...")

    try:
        refresh_scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    shared = get_aggregator().cache.shared
    if isinstance(shared, RedisCache):
        try:
            await shared.close()
        except Exception as e:
            logger.warning(f"Error closing shared cache: {e}")

    logger.info("Catalog service stopped")


app = FastAPI(
    title=settings.addon_name,
    version=settings.addon_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
