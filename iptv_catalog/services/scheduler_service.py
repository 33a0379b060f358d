"""
Background catalog refresh

A single cron job walks every configuration the process has served and
refreshes the ones past their grace window. Configurations nobody has
requested yet are never touched.
"""
import logging
from datetime import datetime
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from iptv_catalog.config import settings
from iptv_catalog.services.aggregator_service import CatalogAggregator, get_aggregator


logger = logging.getLogger(__name__)

JOB_ID = "catalog_refresh"


class RefreshScheduler:
    """Cron-driven refresh of registered configurations"""

    def __init__(self, aggregator_getter: Callable[[], CatalogAggregator] = get_aggregator):
        self.scheduler: AsyncIOScheduler | None = None
        self._get_aggregator = aggregator_getter

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    async def run_refresh(self) -> None:
        """One pass over the registry; failures are logged, never raised into the scheduler"""
        aggregator = self._get_aggregator()
        registered = len(aggregator.registry)
        if not registered:
            logger.debug("Scheduled refresh skipped: no configurations registered yet")
            return

        try:
            results = await aggregator.refresh_all()
        except Exception as e:
            logger.error(f"Scheduled refresh aborted: {e}", exc_info=True)
            return

        failed = [result for result in results if result.status == "failed"]
        logger.info(
            f"Scheduled refresh: {len(results)} of {registered} configuration(s) refreshed, "
            f"{registered - len(results)} within grace window, {len(failed)} failed"
        )
        for result in failed:
            logger.error(f"  {result.identity[:8]}: {result.error}")

    def start(self) -> None:
        if self.running:
            logger.warning("Refresh scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(settings.refresh_cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid refresh cron expression '%s': %s", settings.refresh_cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self.run_refresh,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.refresh_misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Refresh scheduler started (%s). Next catalog refresh: %s",
            settings.refresh_cron,
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        if self.running:
            self.scheduler.shutdown()
            logger.info("Refresh scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Next scheduled catalog refresh, or None when stopped"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None


refresh_scheduler = RefreshScheduler()
