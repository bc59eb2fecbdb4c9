import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from guide_engine.services.schedule_service import ScheduleService


logger = logging.getLogger(__name__)


class GuideRefreshScheduler:
    """Scheduler for periodic guide refreshes"""

    def __init__(self, schedule_service: ScheduleService, cron: str, misfire_grace_sec: int = 600):
        self.schedule_service = schedule_service
        self.cron = cron
        self.misfire_grace_sec = misfire_grace_sec
        self.scheduler: AsyncIOScheduler | None = None

    async def _refresh_job(self) -> None:
        """Background job that refreshes every configured source"""
        logger.info("Scheduled guide refresh triggered")
        try:
            outcomes = await self.schedule_service.refresh_all()
            empty = [outcome.source_url for outcome in outcomes if outcome.status == "empty"]
            if empty:
                logger.warning(f"Scheduled refresh left {len(empty)} source(s) without data")
        except Exception as e:
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)

    def start(self, run_now: bool = False) -> None:
        """Start the scheduler with the refresh job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._refresh_job,
            trigger=trigger,
            id='guide_refresh',
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec
        )
        if run_now:
            # No trigger means a one-off run as soon as the scheduler starts
            self.scheduler.add_job(self._refresh_job, id='guide_refresh_startup')

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job('guide_refresh')
        return job.next_run_time if job else None
