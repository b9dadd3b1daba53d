"""
Heartbeat Store

Persistence layer for jobs, executions, channels and notification settings.

``JobStore`` is the interface the engine depends on. ``MemoryJobStore`` keeps
everything in memory with optional JSON file persistence.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog

from pingwarden.heartbeat.errors import NotFoundError, StaleJobError, StoreError
from pingwarden.heartbeat.models import (
    SCAN_EXCLUDED_STATUSES,
    ChannelBinding,
    JobExecution,
    JobNotificationSetting,
    JobStatus,
    MonitoredJob,
    NotificationChannel,
)

logger = structlog.get_logger(__name__)


class JobStore(ABC):
    """
    Storage interface used by the ingestor, scanner, dispatcher and services.

    Implementations must make each method atomic with respect to the others;
    no lock is held across calls.
    """

    # Jobs

    @abstractmethod
    async def create_job(self, job: MonitoredJob) -> MonitoredJob: ...

    @abstractmethod
    async def get_job(self, job_id: str) -> MonitoredJob | None: ...

    @abstractmethod
    async def get_job_by_token(self, webhook_token: str) -> MonitoredJob | None: ...

    @abstractmethod
    async def list_jobs(self, owner_id: str | None = None) -> list[MonitoredJob]: ...

    @abstractmethod
    async def update_job(
        self,
        job_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> MonitoredJob:
        """
        Apply field changes to a job.

        If ``expected_version`` is given the write only happens when the stored
        version still matches, otherwise StaleJobError is raised.
        """

    @abstractmethod
    async def record_ping(
        self,
        job_id: str,
        pinged_at: datetime,
        expected_next_ping_at: datetime | None,
    ) -> tuple[MonitoredJob, JobStatus]:
        """
        Mark a job healthy after a ping.

        A ping older than the stored ``last_pinged_at`` never moves the due
        time backwards.

        Returns:
            The job as written and the status it had just before the write
        """

    @abstractmethod
    async def delete_job(self, job_id: str) -> bool: ...

    @abstractmethod
    async def find_overdue_jobs(self, now: datetime) -> list[MonitoredJob]: ...

    # Executions

    @abstractmethod
    async def append_execution(self, execution: JobExecution) -> JobExecution: ...

    @abstractmethod
    async def list_executions(self, job_id: str, limit: int = 50) -> list[JobExecution]: ...

    # Channels

    @abstractmethod
    async def save_channel(self, channel: NotificationChannel) -> NotificationChannel: ...

    @abstractmethod
    async def get_channel(self, channel_id: str) -> NotificationChannel | None: ...

    @abstractmethod
    async def list_channels(self, owner_id: str | None = None) -> list[NotificationChannel]: ...

    @abstractmethod
    async def delete_channel(self, channel_id: str) -> bool: ...

    # Notification settings

    @abstractmethod
    async def upsert_setting(self, setting: JobNotificationSetting) -> JobNotificationSetting: ...

    @abstractmethod
    async def get_setting(self, setting_id: str) -> JobNotificationSetting | None: ...

    @abstractmethod
    async def list_settings(self, job_id: str) -> list[JobNotificationSetting]: ...

    @abstractmethod
    async def delete_setting(self, setting_id: str) -> bool: ...

    @abstractmethod
    async def get_bindings_with_channels(
        self,
        job_id: str,
        verified_only: bool = True,
    ) -> list[ChannelBinding]: ...


class MemoryJobStore(JobStore):
    """
    In-memory job store with optional file-based persistence.

    All mutations go through a single asyncio lock. Reads hand out deep
    copies so callers cannot change stored state without a write.
    """

    def __init__(
        self,
        persist_path: Path | str | None = None,
        execution_retention_days: int | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            persist_path: Path to persist state (None for memory-only)
            execution_retention_days: How long to keep execution log entries (None keeps all)
        """
        self._persist_path = Path(persist_path) if persist_path else None
        self._execution_retention = (
            timedelta(days=execution_retention_days) if execution_retention_days else None
        )

        self._jobs: dict[str, MonitoredJob] = {}
        self._executions: dict[str, list[JobExecution]] = {}  # job_id -> executions
        self._channels: dict[str, NotificationChannel] = {}
        self._settings: dict[str, JobNotificationSetting] = {}
        self._lock = asyncio.Lock()

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _load_from_file(self) -> None:
        """Load state from the persistence file."""
        if not self._persist_path:
            return

        try:
            with open(self._persist_path, "r") as f:
                data = json.load(f)

            for job_data in data.get("jobs", []):
                job = MonitoredJob.model_validate(job_data)
                self._jobs[job.id] = job
            for execution_data in data.get("executions", []):
                execution = JobExecution.model_validate(execution_data)
                self._executions.setdefault(execution.job_id, []).append(execution)
            for channel_data in data.get("channels", []):
                channel = NotificationChannel.model_validate(channel_data)
                self._channels[channel.id] = channel
            for setting_data in data.get("settings", []):
                setting = JobNotificationSetting.model_validate(setting_data)
                self._settings[setting.id] = setting

            logger.info(
                "Loaded store from file",
                path=str(self._persist_path),
                jobs=len(self._jobs),
                channels=len(self._channels),
            )

        except Exception as e:
            logger.error("Failed to load store from file", path=str(self._persist_path), error=str(e))

    def _save_to_file(self) -> None:
        """Save state to the persistence file."""
        if not self._persist_path:
            return

        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)

            data = {
                "jobs": [j.model_dump(mode="json") for j in self._jobs.values()],
                "executions": [
                    e.model_dump(mode="json")
                    for executions in self._executions.values()
                    for e in executions
                ],
                "channels": [c.model_dump(mode="json") for c in self._channels.values()],
                "settings": [s.model_dump(mode="json") for s in self._settings.values()],
                "saved_at": datetime.now(timezone.utc).isoformat(),
            }

            with open(self._persist_path, "w") as f:
                json.dump(data, f, indent=2, default=str)

        except Exception as e:
            logger.error("Failed to save store to file", path=str(self._persist_path), error=str(e))

    # Job operations

    async def create_job(self, job: MonitoredJob) -> MonitoredJob:
        async with self._lock:
            if any(j.webhook_token == job.webhook_token for j in self._jobs.values()):
                raise StoreError("Duplicate webhook token")
            stored = job.model_copy(deep=True)
            stored.version = 1
            self._jobs[stored.id] = stored
            self._save_to_file()
            return stored.model_copy(deep=True)

    async def get_job(self, job_id: str) -> MonitoredJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def get_job_by_token(self, webhook_token: str) -> MonitoredJob | None:
        for job in self._jobs.values():
            if job.webhook_token == webhook_token:
                return job.model_copy(deep=True)
        return None

    async def list_jobs(self, owner_id: str | None = None) -> list[MonitoredJob]:
        jobs = list(self._jobs.values())
        if owner_id is not None:
            jobs = [j for j in jobs if j.owner_id == owner_id]

        # Newest first
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [j.model_copy(deep=True) for j in jobs]

    async def update_job(
        self,
        job_id: str,
        changes: dict[str, Any],
        expected_version: int | None = None,
    ) -> MonitoredJob:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise NotFoundError("Job", job_id)
            if expected_version is not None and current.version != expected_version:
                raise StaleJobError(job_id, expected_version, current.version)

            updated = current.model_copy(update=changes, deep=True)
            updated.version = current.version + 1
            self._jobs[job_id] = MonitoredJob.model_validate(updated.model_dump())
            self._save_to_file()
            return self._jobs[job_id].model_copy(deep=True)

    async def record_ping(
        self,
        job_id: str,
        pinged_at: datetime,
        expected_next_ping_at: datetime | None,
    ) -> tuple[MonitoredJob, JobStatus]:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise NotFoundError("Job", job_id)

            changes: dict[str, Any] = {"status": JobStatus.HEALTHY}
            if current.last_pinged_at is None or pinged_at >= current.last_pinged_at:
                changes["last_pinged_at"] = pinged_at
                changes["expected_next_ping_at"] = expected_next_ping_at
            else:
                logger.debug(
                    "Out-of-order ping, keeping newer due time",
                    job_id=job_id,
                    pinged_at=pinged_at.isoformat(),
                    last_pinged_at=current.last_pinged_at.isoformat(),
                )

            updated = current.model_copy(update=changes, deep=True)
            updated.version = current.version + 1
            self._jobs[job_id] = updated
            self._save_to_file()
            return updated.model_copy(deep=True), current.status

    async def delete_job(self, job_id: str) -> bool:
        """Delete a job along with its executions and settings."""
        async with self._lock:
            if job_id not in self._jobs:
                return False

            del self._jobs[job_id]
            self._executions.pop(job_id, None)
            self._settings = {
                sid: s for sid, s in self._settings.items() if s.job_id != job_id
            }

            self._save_to_file()
            return True

    async def find_overdue_jobs(self, now: datetime) -> list[MonitoredJob]:
        """Jobs past their expected ping plus grace, excluding paused/errored ones."""
        overdue = [
            j for j in self._jobs.values()
            if j.status not in SCAN_EXCLUDED_STATUSES
            and j.expected_next_ping_at is not None
            and now > j.expected_next_ping_at + timedelta(seconds=j.grace_period_seconds)
        ]
        overdue.sort(key=lambda j: j.expected_next_ping_at)
        return [j.model_copy(deep=True) for j in overdue]

    # Execution operations

    async def append_execution(self, execution: JobExecution) -> JobExecution:
        async with self._lock:
            if execution.job_id not in self._jobs:
                raise NotFoundError("Job", execution.job_id)
            self._executions.setdefault(execution.job_id, []).append(
                execution.model_copy(deep=True)
            )

            self._cleanup_old_executions(execution.job_id)
            self._save_to_file()
            return execution.model_copy(deep=True)

    async def list_executions(self, job_id: str, limit: int = 50) -> list[JobExecution]:
        """Executions for a job, newest first."""
        executions = list(self._executions.get(job_id, []))
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in executions[:limit]]

    def _cleanup_old_executions(self, job_id: str) -> None:
        """Remove executions older than the retention period."""
        if self._execution_retention is None:
            return
        cutoff = datetime.now(timezone.utc) - self._execution_retention
        if job_id in self._executions:
            self._executions[job_id] = [
                e for e in self._executions[job_id]
                if e.started_at >= cutoff
            ]

    # Channel operations

    async def save_channel(self, channel: NotificationChannel) -> NotificationChannel:
        async with self._lock:
            self._channels[channel.id] = channel.model_copy(deep=True)
            self._save_to_file()
            return channel.model_copy(deep=True)

    async def get_channel(self, channel_id: str) -> NotificationChannel | None:
        channel = self._channels.get(channel_id)
        return channel.model_copy(deep=True) if channel else None

    async def list_channels(self, owner_id: str | None = None) -> list[NotificationChannel]:
        channels = list(self._channels.values())
        if owner_id is not None:
            channels = [c for c in channels if c.owner_id == owner_id]
        channels.sort(key=lambda c: c.created_at, reverse=True)
        return [c.model_copy(deep=True) for c in channels]

    async def delete_channel(self, channel_id: str) -> bool:
        """Delete a channel and every setting that points at it."""
        async with self._lock:
            if channel_id not in self._channels:
                return False

            del self._channels[channel_id]
            self._settings = {
                sid: s for sid, s in self._settings.items() if s.channel_id != channel_id
            }

            self._save_to_file()
            return True

    # Notification setting operations

    async def upsert_setting(self, setting: JobNotificationSetting) -> JobNotificationSetting:
        """Insert a setting, or update the existing one for the same job/channel pair."""
        async with self._lock:
            existing = next(
                (
                    s for s in self._settings.values()
                    if s.job_id == setting.job_id and s.channel_id == setting.channel_id
                ),
                None,
            )
            if existing is not None:
                stored = existing.model_copy(
                    update={
                        "notify_on_failure": setting.notify_on_failure,
                        "notify_on_lateness": setting.notify_on_lateness,
                        "notify_on_recovery": setting.notify_on_recovery,
                    }
                )
            else:
                stored = setting.model_copy(deep=True)

            self._settings[stored.id] = stored
            self._save_to_file()
            return stored.model_copy(deep=True)

    async def get_setting(self, setting_id: str) -> JobNotificationSetting | None:
        setting = self._settings.get(setting_id)
        return setting.model_copy(deep=True) if setting else None

    async def list_settings(self, job_id: str) -> list[JobNotificationSetting]:
        settings = [s for s in self._settings.values() if s.job_id == job_id]
        settings.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in settings]

    async def delete_setting(self, setting_id: str) -> bool:
        async with self._lock:
            if setting_id not in self._settings:
                return False
            del self._settings[setting_id]
            self._save_to_file()
            return True

    async def get_bindings_with_channels(
        self,
        job_id: str,
        verified_only: bool = True,
    ) -> list[ChannelBinding]:
        bindings = []
        for setting in self._settings.values():
            if setting.job_id != job_id:
                continue
            channel = self._channels.get(setting.channel_id)
            if channel is None:
                continue
            if verified_only and not channel.is_verified:
                continue
            bindings.append(
                ChannelBinding(
                    setting=setting.model_copy(deep=True),
                    channel=channel.model_copy(deep=True),
                )
            )
        return bindings
