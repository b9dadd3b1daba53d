"""
Tests for the Late-Job Scanner.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from pingwarden.heartbeat.dispatcher import NotificationDispatcher
from pingwarden.heartbeat.errors import StoreError
from pingwarden.heartbeat.models import (
    ChannelType,
    ExecutionStatus,
    JobStatus,
    MonitoredJob,
    ScheduleType,
)
from pingwarden.heartbeat.scanner import LateJobScanner, classify_overdue
from pingwarden.heartbeat.store import MemoryJobStore
from pingwarden.services.channels import ChannelService
from pingwarden.services.jobs import JobService

from tests.conftest import T0, FrozenClock, RecordingSender


def overdue_job(**overrides) -> MonitoredJob:
    fields = {
        "owner_id": "owner-1",
        "name": "backup",
        "schedule_type": ScheduleType.INTERVAL,
        "schedule_value": "5m",
        "grace_period_seconds": 60,
        "webhook_token": "tok",
        "expected_next_ping_at": T0 + timedelta(minutes=5),
    }
    fields.update(overrides)
    return MonitoredJob(**fields)


class TestClassifyOverdue:
    """Tests for the late/errored decision."""

    def test_late_within_threshold(self) -> None:
        # threshold = 3 * (60s + 300s) = 1080s past the due time
        job = overdue_job()
        now = job.expected_next_ping_at + timedelta(seconds=1080)
        assert classify_overdue(job, now) == JobStatus.LATE

    def test_errored_past_threshold(self) -> None:
        job = overdue_job()
        now = job.expected_next_ping_at + timedelta(seconds=1081)
        assert classify_overdue(job, now) == JobStatus.ERRORED

    def test_custom_multiplier(self) -> None:
        job = overdue_job()
        now = job.expected_next_ping_at + timedelta(seconds=400)
        assert classify_overdue(job, now, multiplier=1.0) == JobStatus.ERRORED

    def test_uncomputable_period_stays_late(self) -> None:
        """Test a broken schedule never escalates."""
        job = overdue_job(schedule_value="whenever")
        now = job.expected_next_ping_at + timedelta(days=30)
        assert classify_overdue(job, now) == JobStatus.LATE

    def test_cron_uses_nominal_period(self) -> None:
        job = overdue_job(schedule_type=ScheduleType.CRON, schedule_value="*/10 * * * *")
        # threshold = 3 * (60s + 600s) = 1980s
        assert classify_overdue(job, job.expected_next_ping_at + timedelta(seconds=1900)) == JobStatus.LATE
        assert classify_overdue(job, job.expected_next_ping_at + timedelta(seconds=2000)) == JobStatus.ERRORED


class TestLateJobScanner:
    """Tests for LateJobScanner.scan."""

    @pytest_asyncio.fixture
    async def bound_job(
        self,
        job_service: JobService,
        channel_service: ChannelService,
        slack_config: dict[str, str],
    ) -> MonitoredJob:
        """5m interval job with 60s grace, bound to a Slack channel."""
        job = await job_service.create_job("owner-1", "backup", ScheduleType.INTERVAL, "5m", 60)
        channel = await channel_service.create_channel("owner-1", "slack", "ops", slack_config)
        await channel_service.bind("owner-1", job.id, channel.id)
        return job

    @pytest.mark.asyncio
    async def test_nothing_due(self, scanner: LateJobScanner, bound_job: MonitoredJob) -> None:
        report = await scanner.scan(T0 + timedelta(minutes=6))
        assert report.checked == 0
        assert report.changed == 0

    @pytest.mark.asyncio
    async def test_escalation_timeline(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        store: MemoryJobStore,
        senders: dict[ChannelType, RecordingSender],
    ) -> None:
        """
        Test the 5m interval / 60s grace scenario.

        The job turns late just after t0+6m. The documented scenario expects
        errored at t0+20m, but overdue time is measured from the expected
        ping (t0+5m): at t0+20m the job is 900s overdue, inside the
        3 x (60s + 300s) = 1080s threshold, so it is still late there and
        only escalates after t0+23m.
        """
        slack = senders[ChannelType.SLACK]

        report = await scanner.scan(T0 + timedelta(minutes=6, seconds=1))
        assert report.marked_late == 1
        assert (await store.get_job(bound_job.id)).status == JobStatus.LATE
        assert slack.events == ["lateness"]

        # Still late: detected, recorded and notified again
        report = await scanner.scan(T0 + timedelta(minutes=20))
        assert report.checked == 1
        assert report.marked_late == 1
        assert slack.events == ["lateness", "lateness"]

        report = await scanner.scan(T0 + timedelta(minutes=24))
        assert report.marked_errored == 1
        assert (await store.get_job(bound_job.id)).status == JobStatus.ERRORED
        assert slack.events == ["lateness", "lateness", "failure"]

        # Errored jobs are left alone until a ping arrives
        report = await scanner.scan(T0 + timedelta(hours=5))
        assert report.checked == 0
        assert slack.events == ["lateness", "lateness", "failure"]

    @pytest.mark.asyncio
    async def test_late_job_detected_every_tick(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        store: MemoryJobStore,
        senders: dict[ChannelType, RecordingSender],
    ) -> None:
        """Test each tick on a still-late job logs one execution and sends one alert."""
        await scanner.scan(T0 + timedelta(minutes=7))
        await scanner.scan(T0 + timedelta(minutes=8))

        executions = await store.list_executions(bound_job.id)
        assert [e.status for e in executions] == [ExecutionStatus.LATE, ExecutionStatus.LATE]
        assert [e.started_at for e in executions] == [
            T0 + timedelta(minutes=8),
            T0 + timedelta(minutes=7),
        ]
        assert senders[ChannelType.SLACK].events == ["lateness", "lateness"]
        assert (await store.get_job(bound_job.id)).version == bound_job.version + 2

    @pytest.mark.asyncio
    async def test_execution_logged(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        store: MemoryJobStore,
    ) -> None:
        now = T0 + timedelta(minutes=7)
        await scanner.scan(now)

        executions = await store.list_executions(bound_job.id)
        assert len(executions) == 1
        assert executions[0].status == ExecutionStatus.LATE
        assert executions[0].started_at == now
        assert executions[0].output_log.startswith("Job detected as late by scanner.")

    @pytest.mark.asyncio
    async def test_notification_payload(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        senders: dict[ChannelType, RecordingSender],
    ) -> None:
        await scanner.scan(T0 + timedelta(minutes=7))

        channel, payload = senders[ChannelType.SLACK].sent[0]
        assert channel.name == "ops"
        assert payload.job_id == bound_job.id
        assert payload.current_status == JobStatus.LATE
        assert payload.expected_next_ping_at == T0 + timedelta(minutes=5)
        assert "Job detected as late" in payload.execution_log

    @pytest.mark.asyncio
    async def test_directly_errored(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        senders: dict[ChannelType, RecordingSender],
    ) -> None:
        """Test a job first seen far past its threshold goes straight to errored."""
        report = await scanner.scan(T0 + timedelta(hours=1))
        assert report.marked_errored == 1
        assert senders[ChannelType.SLACK].events == ["failure"]

    @pytest.mark.asyncio
    async def test_paused_job_ignored(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        job_service: JobService,
        senders: dict[ChannelType, RecordingSender],
    ) -> None:
        await job_service.pause_job("owner-1", bound_job.id)

        report = await scanner.scan(T0 + timedelta(hours=1))

        assert report.checked == 0
        assert senders[ChannelType.SLACK].sent == []

    @pytest.mark.asyncio
    async def test_uses_clock_by_default(
        self,
        scanner: LateJobScanner,
        bound_job: MonitoredJob,
        clock: FrozenClock,
    ) -> None:
        clock.advance(minutes=7)
        report = await scanner.scan()
        assert report.started_at == clock()
        assert report.marked_late == 1

    @pytest.mark.asyncio
    async def test_failing_sender_does_not_stop_scan(
        self,
        store: MemoryJobStore,
        bound_job: MonitoredJob,
    ) -> None:
        """Test a delivery error still leaves the job marked late."""
        failing = RecordingSender(fail=True)
        scanner = LateJobScanner(store, NotificationDispatcher(store, {ChannelType.SLACK: failing}))

        report = await scanner.scan(T0 + timedelta(minutes=7))

        assert report.marked_late == 1
        assert report.failed == 0
        assert len(failing.sent) == 1
        assert (await store.get_job(bound_job.id)).status == JobStatus.LATE


class FlakyStore(MemoryJobStore):
    """Store whose writes fail for one chosen job."""

    def __init__(self, broken_job_id: str | None = None) -> None:
        super().__init__()
        self.broken_job_id = broken_job_id

    async def update_job(self, job_id, changes, expected_version=None):
        if job_id == self.broken_job_id:
            raise StoreError("connection reset")
        return await super().update_job(job_id, changes, expected_version)


class BrokenQueryStore(MemoryJobStore):
    async def find_overdue_jobs(self, now):
        raise StoreError("database unavailable")


class TestScannerIsolation:
    """Tests for per-job failure isolation."""

    @pytest.mark.asyncio
    async def test_one_failing_job_does_not_block_others(self, clock: FrozenClock) -> None:
        store = FlakyStore()
        senders = {ChannelType.SLACK: RecordingSender()}
        scanner = LateJobScanner(store, NotificationDispatcher(store, senders), clock=clock)
        jobs = JobService(store, clock=clock)

        first = await jobs.create_job("owner-1", "first", ScheduleType.INTERVAL, "5m")
        second = await jobs.create_job("owner-1", "second", ScheduleType.INTERVAL, "5m")
        store.broken_job_id = first.id

        report = await scanner.scan(T0 + timedelta(minutes=7))

        assert report.checked == 2
        assert report.failed == 1
        assert report.marked_late == 1
        assert (await store.get_job(first.id)).status == JobStatus.ACTIVE
        assert (await store.get_job(second.id)).status == JobStatus.LATE

        # The broken job is retried on the next tick alongside the still-late one
        store.broken_job_id = None
        report = await scanner.scan(T0 + timedelta(minutes=8))
        assert report.marked_late == 2
        assert report.failed == 0
        assert (await store.get_job(first.id)).status == JobStatus.LATE

    @pytest.mark.asyncio
    async def test_query_failure_returns_empty_report(self) -> None:
        store = BrokenQueryStore()
        scanner = LateJobScanner(store, NotificationDispatcher(store, {}))

        report = await scanner.scan(T0)

        assert report.checked == 0
        assert report.failed == 0
