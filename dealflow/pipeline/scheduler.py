"""
DealFlow — Auto-Sync Scheduler

Checks every SCHEDULER_CHECK_INTERVAL_SECONDS whether SYNC_FREQUENCY_HOURS
have passed since the last completed sync and, if so, starts a non-forced
background job. A sync that is already running is left alone.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timedelta
from typing import Any

import structlog

from dealflow.config import settings
from dealflow.errors import AuthExchangeError, SyncInProgressError
from dealflow.pipeline.jobs import SyncJobRunner
from dealflow.schemas import SyncJob, utcnow
from dealflow.storage.gateway import StorageGateway

logger = structlog.get_logger(__name__)


class SyncScheduler:
    """
    Async scheduler for periodic marketplace syncs.

    The last sync time comes from the storage gateway, so a restart picks up
    the cadence where the previous process left it.
    """

    def __init__(self, runner: SyncJobRunner, storage: StorageGateway):
        self.runner = runner
        self.storage = storage
        self._shutdown_event = asyncio.Event()
        self._check_interval = settings.SCHEDULER_CHECK_INTERVAL_SECONDS

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    async def _should_sync(self, now: datetime | None = None) -> bool:
        if not settings.AUTO_SYNC_ENABLED:
            return False

        last_sync = await self.storage.get_last_sync_time()
        if last_sync is None:
            return True

        now = now or utcnow()
        return now - last_sync >= timedelta(hours=settings.SYNC_FREQUENCY_HOURS)

    async def tick(self, now: datetime | None = None) -> SyncJob | None:
        """
        Run one scheduling check.

        Returns:
            The started job, or None when no sync was due or one could not start.
        """
        if not await self._should_sync(now):
            return None

        try:
            job = await self.runner.start()
        except SyncInProgressError:
            logger.debug("scheduler_sync_skipped_in_progress")
            return None
        except AuthExchangeError as e:
            logger.warning(
                "scheduler_sync_auth_failed",
                error=str(e),
                requires_reauth=e.requires_reauth,
            )
            return None

        logger.info("scheduler_sync_started", job_id=job.job_id)
        return job

    async def run(self) -> None:
        """
        Main scheduler loop. Runs until shutdown is signaled.

        A failing check is logged and the loop carries on.
        """
        logger.info(
            "scheduler_started",
            auto_sync_enabled=settings.AUTO_SYNC_ENABLED,
            sync_frequency_hours=settings.SYNC_FREQUENCY_HOURS,
            check_interval_seconds=self._check_interval,
        )

        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.tick()

                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._check_interval,
                    )
                except asyncio.TimeoutError:
                    # No shutdown signal within the interval
                    continue
                except Exception as e:
                    logger.error(
                        "scheduler_unknown_error",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    await asyncio.sleep(self._check_interval)

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped")


async def run_scheduler(runner: SyncJobRunner, storage: StorageGateway) -> None:
    """
    Initialize and run the scheduler with graceful shutdown handling.

    Registers SIGTERM/SIGINT handlers to trigger shutdown.
    """
    scheduler = SyncScheduler(runner, storage)

    def handle_signal(_signum: int, _frame: Any) -> None:
        """Called by SIGTERM/SIGINT."""
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
