"""
Heartbeat Models

Data models for monitored jobs, executions, notification channels and bindings.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class ScheduleType(str, Enum):
    """How a job's expected cadence is expressed."""

    CRON = "cron"  # Standard five/six-field cron expression
    INTERVAL = "interval"  # "<N><unit>" with unit in m, h, d


class JobStatus(str, Enum):
    """Status of a monitored job."""

    ACTIVE = "active"  # Created, no ping seen yet
    HEALTHY = "healthy"
    LATE = "late"
    ERRORED = "errored"
    PAUSED = "paused"


class ExecutionStatus(str, Enum):
    """Status recorded on an execution log entry."""

    SUCCESS = "success"
    FAILED = "failed"
    LATE = "late"
    SKIPPED = "skipped"
    ERRORED = "errored"


class ChannelType(str, Enum):
    """Available notification channel types."""

    EMAIL = "email"
    SLACK = "slack"
    PAGERDUTY = "pagerduty"
    WEBHOOK = "webhook"


class EventKind(str, Enum):
    """Kinds of events that can trigger a notification."""

    FAILURE = "failure"
    LATENESS = "lateness"
    RECOVERY = "recovery"


# Statuses a successful ping recovers from
RECOVERABLE_STATUSES = frozenset({JobStatus.LATE, JobStatus.ERRORED})

# Statuses the scanner never looks at
SCAN_EXCLUDED_STATUSES = frozenset({JobStatus.PAUSED, JobStatus.ERRORED})


class MonitoredJob(BaseModel):
    """
    A job whose heartbeat is being watched.

    The job itself never runs here; it only pings its webhook token and the
    monitor compares those pings with the schedule.
    """

    # Identity
    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    name: str

    # Schedule
    schedule_type: ScheduleType
    schedule_value: str
    grace_period_seconds: int = Field(default=60, ge=0)

    # Inbound pings are matched on this token
    webhook_token: str

    # State
    status: JobStatus = JobStatus.ACTIVE
    last_pinged_at: datetime | None = None
    expected_next_ping_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    # Row version, bumped by the store on every write
    version: int = 0

    @property
    def schedule_reference(self) -> datetime:
        """Time the next expected ping is computed from."""
        return self.last_pinged_at or self.created_at

    @property
    def is_paused(self) -> bool:
        return self.status == JobStatus.PAUSED


class JobExecution(BaseModel):
    """One append-only entry in a job's execution log."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    job_id: str
    status: ExecutionStatus
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: datetime | None = None
    output_log: str | None = None


class NotificationChannel(BaseModel):
    """A destination that alerts can be delivered to."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    type: ChannelType
    name: str
    configuration_details: dict[str, Any] = Field(default_factory=dict)
    is_verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class JobNotificationSetting(BaseModel):
    """Binds one job to one channel, with per-event trigger flags."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    job_id: str
    channel_id: str
    notify_on_failure: bool = True
    notify_on_lateness: bool = True
    notify_on_recovery: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    def wants(self, event_kind: EventKind) -> bool:
        """Check whether this binding subscribes to an event kind."""
        if event_kind == EventKind.FAILURE:
            return self.notify_on_failure
        if event_kind == EventKind.LATENESS:
            return self.notify_on_lateness
        if event_kind == EventKind.RECOVERY:
            return self.notify_on_recovery
        return False


class ChannelBinding(BaseModel):
    """A notification setting joined with the channel it points at."""

    setting: JobNotificationSetting
    channel: NotificationChannel


class NotificationPayload(BaseModel):
    """
    Normalized message handed to every channel sender.

    Senders format this for their transport; they never see the raw job.
    """

    job_id: str
    job_name: str
    schedule_type: ScheduleType
    schedule_value: str
    current_status: JobStatus
    event_kind: EventKind
    last_pinged_at: datetime | None = None
    expected_next_ping_at: datetime | None = None
    execution_log: str | None = None
    occurred_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def build(
        cls,
        job: MonitoredJob,
        event_kind: EventKind,
        execution: JobExecution | None = None,
    ) -> "NotificationPayload":
        """Build a payload from a job snapshot and an optional execution."""
        return cls(
            job_id=job.id,
            job_name=job.name,
            schedule_type=job.schedule_type,
            schedule_value=job.schedule_value,
            current_status=job.status,
            event_kind=event_kind,
            last_pinged_at=job.last_pinged_at,
            expected_next_ping_at=job.expected_next_ping_at,
            execution_log=execution.output_log if execution else None,
        )

    @property
    def schedule_label(self) -> str:
        return f"{self.schedule_type.value} ({self.schedule_value})"

    @property
    def title(self) -> str:
        return f'Job "{self.job_name}" - {self.event_kind.value.upper()}'
