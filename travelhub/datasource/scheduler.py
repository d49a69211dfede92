"""
Cache maintenance scheduler - cache warm-up and expiry cleanup jobs.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from travelhub.settings import Settings
from travelhub.utils import log_call

if TYPE_CHECKING:
    from travelhub.datasource.base import BaseAmadeusService
    from travelhub.datasource.locations import LocationService


class CacheScheduler:
    """
    Runs cache maintenance off the request path.

    - Popular-destination warm-up: daily at an off-peak hour in production,
      once after a short delay elsewhere
    - Periodic removal of expired session entries and persisted rows
    """

    def __init__(
        self,
        settings: Settings,
        location_service: "LocationService",
        services: Iterable["BaseAmadeusService"],
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.settings = settings
        self.scheduler = scheduler or AsyncIOScheduler()
        self._is_running = False
        self._location_service = location_service
        self._services = list(services)
        self.last_warm_up: dict[str, int] | None = None

    # ── Job handlers ──────────────────────────────────────────────────────────

    @log_call
    async def warm_up_job(self) -> dict[str, int] | None:
        try:
            summary = await self._location_service.populate_popular_destinations_cache()
            self.last_warm_up = summary
            logger.info(f"Cache warm-up: {summary}")
            return summary
        except Exception as e:
            logger.error(f"Cache warm-up failed: {e}")
            return None

    @log_call
    async def cleanup_job(self) -> dict[str, int]:
        removed: dict[str, int] = {}
        for service in self._services:
            try:
                cleared = service.clear_expired_session_cache()
                purged = await service.purge_persisted_cache()
                removed[service.service_id] = cleared + purged
            except Exception as e:
                logger.error(f"Cache cleanup failed for {service.service_id}: {e}")
        logger.info(f"Cache cleanup: {removed}")
        return removed

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Register jobs and start the scheduler."""
        if self._is_running:
            logger.warning("CacheScheduler is already running")
            return

        settings = self.settings

        self.scheduler.add_job(
            self.cleanup_job,
            trigger="interval",
            minutes=settings.cache_cleanup_interval_minutes,
            id="cache_cleanup",
            name="Expired Cache Cleanup",
            replace_existing=True,
        )
        logger.info(
            f"Cache cleanup job: every {settings.cache_cleanup_interval_minutes} min"
        )

        if settings.cache_warm_enabled:
            if settings.is_production:
                # Off-peak, once a day
                self.scheduler.add_job(
                    self.warm_up_job,
                    trigger=CronTrigger(hour=settings.cache_warm_hour, minute=0),
                    id="cache_warm_up",
                    name="Popular Destinations Warm-up",
                    replace_existing=True,
                )
                logger.info(
                    f"Cache warm-up job: daily at {settings.cache_warm_hour:02d}:00"
                )
            else:
                run_at = datetime.now() + timedelta(
                    minutes=settings.cache_warm_dev_delay_minutes
                )
                self.scheduler.add_job(
                    self.warm_up_job,
                    trigger=DateTrigger(run_date=run_at),
                    id="cache_warm_up",
                    name="Popular Destinations Warm-up",
                    replace_existing=True,
                )
                logger.info(
                    f"Cache warm-up job: once in "
                    f"{settings.cache_warm_dev_delay_minutes} min"
                )

        self.scheduler.start()
        self._is_running = True
        logger.info("CacheScheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            return
        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("CacheScheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_status(self) -> dict[str, Any]:
        """Get scheduler status."""
        jobs = []
        if self._is_running:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                    }
                )
        return {
            "running": self._is_running,
            "jobs": jobs,
            "last_warm_up": self.last_warm_up,
        }
