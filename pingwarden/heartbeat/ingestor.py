"""
Ping Ingestor

Handles inbound pings: marks the job healthy, pushes its due time forward
and raises a recovery event when a late or errored job checks in again.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from pingwarden.heartbeat.dispatcher import NotificationDispatcher
from pingwarden.heartbeat.errors import NotFoundError, ScheduleError
from pingwarden.heartbeat.models import (
    RECOVERABLE_STATUSES,
    EventKind,
    ExecutionStatus,
    JobExecution,
    JobStatus,
    MonitoredJob,
    utcnow,
)
from pingwarden.heartbeat.schedule import next_ping
from pingwarden.heartbeat.store import JobStore

logger = structlog.get_logger(__name__)


class PingIngestor:
    """Processes pings arriving on a job's webhook token."""

    def __init__(
        self,
        store: JobStore,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock

    async def process_ping(self, webhook_token: str) -> MonitoredJob:
        """
        Register a ping for the job owning ``webhook_token``.

        Returns:
            The job as written after the ping

        Raises:
            NotFoundError: If no job owns the token
        """
        job = await self._store.get_job_by_token(webhook_token)
        if job is None:
            logger.warning("Ping received for unknown token", token_prefix=webhook_token[:8])
            raise NotFoundError("Job", "<webhook token>")

        now = self._clock()

        next_expected: datetime | None
        try:
            next_expected = next_ping(job.schedule_type, job.schedule_value, now)
        except ScheduleError as e:
            # Ping still counts; the job just can't be scheduled until its schedule is fixed
            logger.warning(
                "Could not compute next ping, leaving due time unset",
                job_id=job.id,
                schedule_type=job.schedule_type.value,
                schedule_value=job.schedule_value,
                error=str(e),
            )
            next_expected = None

        # Recovery uses the status this write replaced
        updated, previous_status = await self._store.record_ping(job.id, now, next_expected)

        execution = await self._store.append_execution(
            JobExecution(
                job_id=job.id,
                status=ExecutionStatus.SUCCESS,
                started_at=now,
                ended_at=now,
                output_log="Ping received.",
            )
        )

        logger.info(
            "Ping processed",
            job_id=job.id,
            previous_status=previous_status.value,
            expected_next_ping_at=updated.expected_next_ping_at.isoformat()
            if updated.expected_next_ping_at else None,
        )

        if previous_status in RECOVERABLE_STATUSES and updated.status == JobStatus.HEALTHY:
            logger.info("Job recovered", job_id=job.id, previous_status=previous_status.value)
            await self._dispatcher.dispatch(updated, EventKind.RECOVERY, execution)

        return updated
