import asyncio
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from livetv.config import CustomSettings, settings
from livetv.services.catalog_types import Feed
from livetv.services.refresh_service import CatalogRefresher, catalog_refresher


logger = logging.getLogger(__name__)


class CatalogScheduler:
    """Scheduler for periodic playlist and guide refreshes"""

    def __init__(self, refresher: CatalogRefresher, config: CustomSettings = settings):
        self.refresher = refresher
        self.config = config
        self.scheduler: AsyncIOScheduler | None = None
        self._lazy_guide_task: asyncio.Task | None = None
        self._lazy_guide_attempted_at: datetime | None = None

    async def _refresh_job(self, feed: Feed) -> None:
        """Background job that refreshes one feed and books a retry on failure"""
        logger.info("Scheduled %s refresh triggered", feed)
        try:
            result = await self.refresher.refresh(feed)
        except Exception as e:
            logger.error(f"Exception in scheduled {feed} refresh: {e}", exc_info=True)
            result = {"status": "failed", "error": str(e)}

        if result.get("status") == "failed":
            logger.error(f"Scheduled {feed} refresh failed: {result.get('error')}")
            self._schedule_retry(feed)

    def _retry_delay(self, feed: Feed) -> int:
        return self.config.playlist_retry_sec if feed == "playlist" else self.config.guide_retry_sec

    def _schedule_retry(self, feed: Feed) -> None:
        """Book a one-off retry after the feed's fixed back-off window"""
        if not self.scheduler or not self.scheduler.running:
            return
        delay = self._retry_delay(feed)
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self.scheduler.add_job(
            self._refresh_job,
            trigger=DateTrigger(run_date=run_date),
            args=[feed],
            id=f"{feed}_retry",
            replace_existing=True,
            max_instances=1,
        )
        logger.info("Retrying %s refresh in %ss", feed, delay)

    def _guide_trigger(self):
        if self.config.guide_refresh_cron:
            try:
                return CronTrigger.from_crontab(self.config.guide_refresh_cron, timezone='UTC')
            except (ValueError, KeyError) as exc:
                logger.error("Invalid cron expression '%s': %s", self.config.guide_refresh_cron, exc)
                raise
        return IntervalTrigger(seconds=self.config.guide_refresh_interval_sec)

    def start(self) -> None:
        """Start the scheduler with one refresh job per feed"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        now = datetime.now(timezone.utc)
        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._refresh_job,
            trigger=IntervalTrigger(seconds=self.config.playlist_refresh_interval_sec),
            args=["playlist"],
            id='playlist_refresh',
            max_instances=1,
            coalesce=True,
            next_run_time=now,
        )

        guide_job = {
            "trigger": self._guide_trigger(),
            "args": ["guide"],
            "id": 'guide_refresh',
            "max_instances": 1,
            "coalesce": True,
        }
        if not self.config.guide_lazy_load:
            guide_job["next_run_time"] = now
        self.scheduler.add_job(self._refresh_job, **guide_job)

        self.scheduler.start()
        logger.info(
            "Scheduler started. Next playlist refresh: %s, next guide refresh: %s",
            _isoformat(self.get_next_run_time("playlist")),
            _isoformat(self.get_next_run_time("guide")),
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler, cancelling pending jobs"""
        if self._lazy_guide_task and not self._lazy_guide_task.done():
            self._lazy_guide_task.cancel()
        self._lazy_guide_task = None

        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self, feed: Feed) -> datetime | None:
        """Get next scheduled refresh time of a feed, including a pending retry"""
        if not self.scheduler:
            return None
        times = [
            job.next_run_time
            for job in (self.scheduler.get_job(f'{feed}_refresh'), self.scheduler.get_job(f'{feed}_retry'))
            if job is not None and job.next_run_time is not None
        ]
        return min(times) if times else None

    def ensure_guide_loaded(self) -> bool:
        """
        Kick off the first guide load in the background when it was deferred.

        Returns True when a load was started by this call.
        """
        if not self.config.guide_lazy_load or not self.config.guide_url:
            return False
        if self.refresher.store.snapshot().guide_loaded or self.refresher.is_refreshing("guide"):
            return False
        if self._lazy_guide_task and not self._lazy_guide_task.done():
            return False
        now = datetime.now(timezone.utc)
        if self._lazy_guide_attempted_at and now - self._lazy_guide_attempted_at < timedelta(seconds=self.config.guide_retry_sec):
            return False

        self._lazy_guide_attempted_at = now
        logger.info("Guide requested before first load, fetching in background")
        self._lazy_guide_task = asyncio.create_task(self._refresh_job("guide"))
        return True


def _isoformat(moment: datetime | None) -> str:
    return moment.isoformat() if moment else "unknown"


catalog_scheduler = CatalogScheduler(catalog_refresher)
