"""
Heartbeat Scheduler

APScheduler-based recurring task that runs the late-job scanner.
"""

from __future__ import annotations

import structlog
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pingwarden.heartbeat.scanner import LateJobScanner, ScanReport

logger = structlog.get_logger(__name__)

SCAN_JOB_ID = "late-job-scan"


class HeartbeatScheduler:
    """
    Runs the scanner on a fixed tick.

    One instance per process, owned by the composition root. Ticks never
    overlap and missed ticks are coalesced into one.
    """

    def __init__(self, scanner: LateJobScanner, interval_seconds: int = 60) -> None:
        """
        Initialize the scheduler.

        Args:
            scanner: Scanner to run each tick
            interval_seconds: Seconds between ticks
        """
        self._scanner = scanner
        self._interval = interval_seconds
        self._scheduler: AsyncIOScheduler | None = None
        self._running = False
        self.last_report: ScanReport | None = None

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure the APScheduler instance."""
        jobstores = {
            "default": MemoryJobStore(),
        }
        executors = {
            "default": AsyncIOExecutor(),
        }
        job_defaults = {
            "coalesce": True,  # Combine missed ticks into one
            "max_instances": 1,  # Never two scans at once
            "misfire_grace_time": self._interval,
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone="UTC",
        )

    async def start(self) -> None:
        """Start ticking. Must be called from a running event loop."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting heartbeat scheduler", interval_seconds=self._interval)
        self._scheduler = self._create_scheduler()
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self._interval),
            id=SCAN_JOB_ID,
            name="scan:late-jobs",
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running or self._scheduler is None:
            return

        logger.info("Stopping heartbeat scheduler")
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._running = False
        logger.info("Heartbeat scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    async def run_now(self) -> ScanReport:
        """Run one scan immediately, outside the regular tick."""
        logger.info("Manually triggering scan")
        return await self._tick()

    async def _tick(self) -> ScanReport:
        """Called by APScheduler on every tick."""
        self.last_report = await self._scanner.scan()
        return self.last_report
