"""Tests for the cron-driven background refresh."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from iptv_catalog.config import settings
from iptv_catalog.services.scheduler_service import JOB_ID, RefreshScheduler


class TestRunRefresh:

    @pytest.mark.asyncio
    async def test_refreshes_stale_configurations(self, aggregator, provider, config, clock):
        await aggregator.load_or_refresh(config)
        clock.advance(settings.refresh_grace_sec + 1)

        await RefreshScheduler(lambda: aggregator).run_refresh()

        assert provider.playlist_calls == 2

    @pytest.mark.asyncio
    async def test_fresh_configurations_are_left_alone(self, aggregator, provider, config):
        await aggregator.load_or_refresh(config)

        await RefreshScheduler(lambda: aggregator).run_refresh()

        assert provider.playlist_calls == 1

    @pytest.mark.asyncio
    async def test_empty_registry_skips_refresh(self):
        aggregator = MagicMock(registry=[], refresh_all=AsyncMock())

        await RefreshScheduler(lambda: aggregator).run_refresh()

        aggregator.refresh_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_errors_do_not_escape_the_job(self):
        aggregator = MagicMock(registry=["identity"], refresh_all=AsyncMock(side_effect=RuntimeError("boom")))

        await RefreshScheduler(lambda: aggregator).run_refresh()

        aggregator.refresh_all.assert_awaited_once()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self):
        scheduler = RefreshScheduler()
        assert scheduler.get_next_run_time() is None

        scheduler.start()
        try:
            assert scheduler.running
            assert scheduler.scheduler.get_job(JOB_ID) is not None
            assert scheduler.get_next_run_time() is not None
        finally:
            scheduler.shutdown()

        assert not scheduler.running
        assert scheduler.get_next_run_time() is None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_scheduler(self):
        scheduler = RefreshScheduler()
        scheduler.start()
        try:
            first = scheduler.scheduler
            scheduler.start()
            assert scheduler.scheduler is first
        finally:
            scheduler.shutdown()
