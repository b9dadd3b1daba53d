"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone

import pytest

from pingwarden.heartbeat.dispatcher import NotificationDispatcher
from pingwarden.heartbeat.errors import DeliveryError
from pingwarden.heartbeat.ingestor import PingIngestor
from pingwarden.heartbeat.models import (
    ChannelType,
    NotificationChannel,
    NotificationPayload,
)
from pingwarden.heartbeat.scanner import LateJobScanner
from pingwarden.heartbeat.store import MemoryJobStore
from pingwarden.services.channels import ChannelService
from pingwarden.services.jobs import JobService

T0 = datetime(2023, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Controllable clock for deterministic tests."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSender:
    """Channel sender that records every call instead of delivering."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[NotificationChannel, NotificationPayload]] = []

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        self.sent.append((channel, payload))
        if self.fail:
            raise DeliveryError("transport down")

    @property
    def events(self) -> list[str]:
        return [payload.event_kind.value for _, payload in self.sent]


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at 2023-01-01T10:00:00Z."""
    return FrozenClock()


@pytest.fixture
def store() -> MemoryJobStore:
    """Fresh in-memory store for each test."""
    return MemoryJobStore()


@pytest.fixture
def senders() -> dict[ChannelType, RecordingSender]:
    """One recording sender per channel type."""
    return {channel_type: RecordingSender() for channel_type in ChannelType}


@pytest.fixture
def dispatcher(store: MemoryJobStore, senders: dict[ChannelType, RecordingSender]) -> NotificationDispatcher:
    return NotificationDispatcher(store, senders, timeout_seconds=1.0)


@pytest.fixture
def ingestor(store: MemoryJobStore, dispatcher: NotificationDispatcher, clock: FrozenClock) -> PingIngestor:
    return PingIngestor(store, dispatcher, clock=clock)


@pytest.fixture
def scanner(store: MemoryJobStore, dispatcher: NotificationDispatcher, clock: FrozenClock) -> LateJobScanner:
    return LateJobScanner(store, dispatcher, clock=clock)


@pytest.fixture
def job_service(store: MemoryJobStore, clock: FrozenClock) -> JobService:
    return JobService(store, clock=clock)


@pytest.fixture
def channel_service(store: MemoryJobStore) -> ChannelService:
    return ChannelService(store)


@pytest.fixture
def slack_config() -> dict[str, str]:
    """Valid Slack channel configuration."""
    return {"webhookUrl": "https://hooks.slack.com/services/T000/B000/XXXX"}
