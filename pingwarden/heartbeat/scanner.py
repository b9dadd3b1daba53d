"""
Late-Job Scanner

One tick of lateness detection: find overdue jobs, classify each as late or
errored, persist the change, log an execution and notify.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from pingwarden.heartbeat.dispatcher import NotificationDispatcher
from pingwarden.heartbeat.errors import ScheduleError, StaleJobError
from pingwarden.heartbeat.models import (
    EventKind,
    ExecutionStatus,
    JobExecution,
    JobStatus,
    MonitoredJob,
    utcnow,
)
from pingwarden.heartbeat.schedule import nominal_period
from pingwarden.heartbeat.store import JobStore

logger = structlog.get_logger(__name__)

ESCALATION_MULTIPLIER = 3.0

_EVENT_FOR_STATUS = {
    JobStatus.LATE: EventKind.LATENESS,
    JobStatus.ERRORED: EventKind.FAILURE,
}

_EXECUTION_FOR_STATUS = {
    JobStatus.LATE: ExecutionStatus.LATE,
    JobStatus.ERRORED: ExecutionStatus.ERRORED,
}


@dataclass
class ScanReport:
    """Counters for one scanner tick."""

    started_at: datetime
    checked: int = 0
    marked_late: int = 0
    marked_errored: int = 0
    skipped: int = 0  # lost a race with a ping
    failed: int = 0

    @property
    def changed(self) -> int:
        return self.marked_late + self.marked_errored


def classify_overdue(
    job: MonitoredJob,
    now: datetime,
    multiplier: float = ESCALATION_MULTIPLIER,
) -> JobStatus:
    """
    Decide whether an overdue job is late or errored.

    A job is escalated to errored once it is overdue by more than
    ``multiplier * (grace + nominal period)``. If the period can't be
    computed the job stays late.
    """
    if job.expected_next_ping_at is None:
        return JobStatus.LATE

    try:
        period = nominal_period(job.schedule_type, job.schedule_value, now)
    except ScheduleError as e:
        logger.warning("Cannot estimate period, skipping escalation", job_id=job.id, error=str(e))
        return JobStatus.LATE

    overdue = now - job.expected_next_ping_at
    threshold = multiplier * (timedelta(seconds=job.grace_period_seconds) + period)
    if overdue > threshold:
        return JobStatus.ERRORED
    return JobStatus.LATE


class LateJobScanner:
    """
    Detects jobs that missed their window.

    The scan never raises: a failure on one job is logged and that job is
    retried on the next tick. Errored jobs are left out of the query, so
    repeated alerts stop once a job escalates.
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: NotificationDispatcher,
        escalation_multiplier: float = ESCALATION_MULTIPLIER,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._multiplier = escalation_multiplier
        self._clock = clock

    async def scan(self, now: datetime | None = None) -> ScanReport:
        """Run one tick."""
        now = now or self._clock()
        report = ScanReport(started_at=now)

        try:
            overdue = await self._store.find_overdue_jobs(now)
        except Exception as e:
            logger.error("Failed to query overdue jobs", error=str(e))
            return report

        if not overdue:
            logger.debug("No late jobs found")
            return report

        for job in overdue:
            report.checked += 1
            try:
                new_status = await self._process_job(job, now)
            except Exception as e:
                report.failed += 1
                logger.error("Failed to process overdue job", job_id=job.id, error=str(e))
                continue

            if new_status == JobStatus.LATE:
                report.marked_late += 1
            elif new_status == JobStatus.ERRORED:
                report.marked_errored += 1
            else:
                report.skipped += 1

        logger.info(
            "Late job scan complete",
            checked=report.checked,
            marked_late=report.marked_late,
            marked_errored=report.marked_errored,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def _process_job(self, job: MonitoredJob, now: datetime) -> JobStatus | None:
        """
        Classify and transition one job.

        A job that is still late is written, logged and notified again on
        every tick.

        Returns:
            The new status, or None if a concurrent write won
        """
        new_status = classify_overdue(job, now, self._multiplier)

        try:
            updated = await self._store.update_job(
                job.id,
                {"status": new_status},
                expected_version=job.version,
            )
        except StaleJobError:
            logger.info("Job changed during scan, skipping", job_id=job.id)
            return None

        expected = job.expected_next_ping_at.isoformat() if job.expected_next_ping_at else "unknown"
        logger.warning(
            "Job is overdue",
            job_id=job.id,
            job_name=job.name,
            status=new_status.value,
            expected_at=expected,
        )

        execution = await self._store.append_execution(
            JobExecution(
                job_id=job.id,
                status=_EXECUTION_FOR_STATUS[new_status],
                started_at=now,
                ended_at=now,
                output_log=(
                    f"Job detected as {new_status.value} by scanner. "
                    f"Expected at {expected}, now {now.isoformat()}."
                ),
            )
        )

        await self._dispatcher.dispatch(updated, _EVENT_FOR_STATUS[new_status], execution)
        return new_status
