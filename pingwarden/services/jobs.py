"""
Job Service

Owner-scoped management of monitored jobs. Keeps ``expected_next_ping_at``
in step with every schedule change.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from pingwarden.heartbeat.errors import NotFoundError, ValidationError
from pingwarden.heartbeat.models import (
    JobExecution,
    JobStatus,
    MonitoredJob,
    ScheduleType,
    utcnow,
)
from pingwarden.heartbeat.schedule import next_ping
from pingwarden.heartbeat.store import JobStore

logger = structlog.get_logger(__name__)


def generate_webhook_token() -> str:
    """Opaque, unguessable token identifying a job's ping endpoint."""
    return secrets.token_hex(32)


def _coerce_schedule_type(value: ScheduleType | str) -> ScheduleType:
    try:
        return ScheduleType(value)
    except ValueError:
        raise ValidationError(f"Invalid schedule type: {value!r}") from None


def _check_grace(grace_period_seconds: int) -> None:
    if grace_period_seconds < 0:
        raise ValidationError("grace_period_seconds must be >= 0")


class JobService:
    """Create, edit, pause and delete monitored jobs."""

    def __init__(self, store: JobStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def create_job(
        self,
        owner_id: str,
        name: str,
        schedule_type: ScheduleType | str,
        schedule_value: str,
        grace_period_seconds: int = 60,
    ) -> MonitoredJob:
        """
        Create a job in the active state.

        Raises:
            ValidationError: If the schedule or grace period is invalid
        """
        kind = _coerce_schedule_type(schedule_type)
        _check_grace(grace_period_seconds)

        created_at = self._clock()
        # ScheduleError is a ValidationError, nothing is stored on failure
        expected = next_ping(kind, schedule_value, created_at)

        job = MonitoredJob(
            owner_id=owner_id,
            name=name,
            schedule_type=kind,
            schedule_value=schedule_value,
            grace_period_seconds=grace_period_seconds,
            webhook_token=generate_webhook_token(),
            status=JobStatus.ACTIVE,
            expected_next_ping_at=expected,
            created_at=created_at,
        )
        stored = await self._store.create_job(job)
        logger.info("Job created", job_id=stored.id, owner_id=owner_id, schedule=schedule_value)
        return stored

    async def get_job(self, owner_id: str, job_id: str) -> MonitoredJob:
        """
        Fetch a job owned by ``owner_id``.

        Raises:
            NotFoundError: If missing or owned by someone else
        """
        job = await self._store.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFoundError("Job", job_id)
        return job

    async def list_jobs(self, owner_id: str) -> list[MonitoredJob]:
        return await self._store.list_jobs(owner_id=owner_id)

    async def update_job(
        self,
        owner_id: str,
        job_id: str,
        *,
        name: str | None = None,
        schedule_type: ScheduleType | str | None = None,
        schedule_value: str | None = None,
        grace_period_seconds: int | None = None,
    ) -> MonitoredJob:
        """
        Edit a job. Any schedule change recomputes the due time from the
        last ping, or from creation if the job was never pinged.
        """
        job = await self.get_job(owner_id, job_id)
        changes: dict[str, Any] = {}

        if name is not None:
            changes["name"] = name
        if grace_period_seconds is not None:
            _check_grace(grace_period_seconds)
            changes["grace_period_seconds"] = grace_period_seconds

        if schedule_type is not None or schedule_value is not None:
            kind = _coerce_schedule_type(schedule_type or job.schedule_type)
            value = schedule_value if schedule_value is not None else job.schedule_value
            changes["schedule_type"] = kind
            changes["schedule_value"] = value
            changes["expected_next_ping_at"] = next_ping(kind, value, job.schedule_reference)

        if not changes:
            return job

        updated = await self._store.update_job(job_id, changes)
        logger.info("Job updated", job_id=job_id, fields=sorted(changes))
        return updated

    async def pause_job(self, owner_id: str, job_id: str) -> MonitoredJob:
        """Stop lateness detection for a job."""
        await self.get_job(owner_id, job_id)
        updated = await self._store.update_job(job_id, {"status": JobStatus.PAUSED})
        logger.info("Job paused", job_id=job_id)
        return updated

    async def resume_job(self, owner_id: str, job_id: str) -> MonitoredJob:
        """
        Resume a paused job.

        The due time restarts from now so a long pause is not reported as lateness.
        """
        job = await self.get_job(owner_id, job_id)
        if not job.is_paused:
            return job

        changes: dict[str, Any] = {"status": JobStatus.ACTIVE}
        now = self._clock()
        try:
            changes["expected_next_ping_at"] = next_ping(job.schedule_type, job.schedule_value, now)
        except ValidationError as e:
            logger.warning("Resumed job has an uncomputable schedule", job_id=job_id, error=str(e))

        updated = await self._store.update_job(job_id, changes)
        logger.info("Job resumed", job_id=job_id)
        return updated

    async def delete_job(self, owner_id: str, job_id: str) -> None:
        """Delete a job, its executions and its channel bindings."""
        await self.get_job(owner_id, job_id)
        await self._store.delete_job(job_id)
        logger.info("Job deleted", job_id=job_id)

    async def list_executions(
        self,
        owner_id: str,
        job_id: str,
        limit: int = 50,
    ) -> list[JobExecution]:
        await self.get_job(owner_id, job_id)
        return await self._store.list_executions(job_id, limit=limit)
