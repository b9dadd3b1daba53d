"""
Heartbeat Engine

Dead-man's-switch monitoring for pingwarden.

Provides:
- Schedule calculation for cron and interval jobs
- Ping ingestion with recovery detection
- A late-job scanner with escalation to errored
- Notification fan-out to email, Slack, PagerDuty and webhooks
"""

from pingwarden.heartbeat.models import (
    ChannelBinding,
    ChannelType,
    EventKind,
    ExecutionStatus,
    JobExecution,
    JobNotificationSetting,
    JobStatus,
    MonitoredJob,
    NotificationChannel,
    NotificationPayload,
    ScheduleType,
)
from pingwarden.heartbeat.errors import (
    DeliveryError,
    NotFoundError,
    PingwardenError,
    ScheduleError,
    StaleJobError,
    StoreError,
    ValidationError,
)
from pingwarden.heartbeat.schedule import (
    next_ping,
    nominal_period,
    validate_schedule,
)
from pingwarden.heartbeat.store import (
    JobStore,
    MemoryJobStore,
)
from pingwarden.heartbeat.dispatcher import (
    DispatchReport,
    NotificationDispatcher,
)
from pingwarden.heartbeat.ingestor import PingIngestor
from pingwarden.heartbeat.scanner import (
    ESCALATION_MULTIPLIER,
    LateJobScanner,
    ScanReport,
    classify_overdue,
)
from pingwarden.heartbeat.scheduler import HeartbeatScheduler

__all__ = [
    # Models
    "ChannelBinding",
    "ChannelType",
    "EventKind",
    "ExecutionStatus",
    "JobExecution",
    "JobNotificationSetting",
    "JobStatus",
    "MonitoredJob",
    "NotificationChannel",
    "NotificationPayload",
    "ScheduleType",
    # Errors
    "DeliveryError",
    "NotFoundError",
    "PingwardenError",
    "ScheduleError",
    "StaleJobError",
    "StoreError",
    "ValidationError",
    # Schedule
    "next_ping",
    "nominal_period",
    "validate_schedule",
    # Store
    "JobStore",
    "MemoryJobStore",
    # Dispatch
    "DispatchReport",
    "NotificationDispatcher",
    # Ingest / scan
    "PingIngestor",
    "ESCALATION_MULTIPLIER",
    "LateJobScanner",
    "ScanReport",
    "classify_overdue",
    "HeartbeatScheduler",
]
