import logging
from typing import List, Dict, Any, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.triggers.interval import IntervalTrigger

from .expiration_sweeper import ExpirationSweeper
from ..models.subscription import SweepReport
from ..utils.time_utils import utc_now

logger = logging.getLogger(__name__)

EXPIRATION_SWEEP_JOB_ID = "subscription_expiration_sweep"


class SchedulerService:
    """Service for running the periodic subscription expiration sweep."""

    def __init__(self, sweeper: ExpirationSweeper, interval_hours: int = 6):
        self.sweeper = sweeper
        self.interval_hours = interval_hours
        self.scheduler = None
        self._initialize_scheduler()

    def _initialize_scheduler(self):
        """Initialize the APScheduler instance."""
        jobstores = {
            'default': MemoryJobStore(),
        }
        executors = {
            'default': ThreadPoolExecutor(4),
        }
        job_defaults = {
            'coalesce': True,
            'max_instances': 1
        }

        self.scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults
        )
        logger.info("Scheduler service initialized")

    def start(self):
        """Start the scheduler."""
        if self.scheduler and not self.scheduler.running:
            self.scheduler.start()
            self._setup_recurring_jobs()
            logger.info("Scheduler service started")

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler service stopped")

    def _setup_recurring_jobs(self):
        """Set up the recurring expiration sweep."""
        self.scheduler.add_job(
            func=self.run_expiration_sweep,
            trigger=IntervalTrigger(hours=self.interval_hours),
            id=EXPIRATION_SWEEP_JOB_ID,
            name='Subscription Expiration Sweep',
            replace_existing=True
        )

        logger.info(f"Expiration sweep scheduled every {self.interval_hours} hours")

    def get_scheduled_jobs(self) -> List[Dict[str, Any]]:
        """Get list of all scheduled jobs."""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })
        return jobs

    def run_expiration_sweep(self) -> Optional[SweepReport]:
        """Execute one batch expiration sweep. Failures are logged and re-raised."""
        try:
            logger.info("Running subscription expiration sweep")
            report = self.sweeper.sweep_all(utc_now())
            logger.info(f"Expiration sweep finished: {report.expired} expired, {report.failed} failed")
            return report

        except Exception as e:
            logger.error(f"Error checking subscription expiration: {e}", exc_info=True)
            raise
