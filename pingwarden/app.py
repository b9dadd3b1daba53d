"""
Composition root.

Builds the store, dispatcher, ingestor, scanner and scheduler once and wires
them together explicitly.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime

import structlog

from pingwarden.config import MonitorSettings, get_settings
from pingwarden.heartbeat.dispatcher import NotificationDispatcher
from pingwarden.heartbeat.ingestor import PingIngestor
from pingwarden.heartbeat.models import ChannelType, utcnow
from pingwarden.heartbeat.scanner import LateJobScanner
from pingwarden.heartbeat.scheduler import HeartbeatScheduler
from pingwarden.heartbeat.senders import ChannelSender, close_senders, default_senders
from pingwarden.heartbeat.store import JobStore, MemoryJobStore
from pingwarden.services.channels import ChannelService
from pingwarden.services.jobs import JobService

logger = structlog.get_logger(__name__)


class Monitor:
    """Everything one pingwarden process needs, wired together."""

    def __init__(
        self,
        settings: MonitorSettings | None = None,
        store: JobStore | None = None,
        senders: Mapping[ChannelType, ChannelSender] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or MemoryJobStore(persist_path=self.settings.store_path)
        self.senders = dict(senders) if senders is not None else default_senders(self.settings)

        self.dispatcher = NotificationDispatcher(
            self.store,
            self.senders,
            timeout_seconds=self.settings.sender_timeout_seconds,
        )
        self.ingestor = PingIngestor(self.store, self.dispatcher, clock=clock)
        self.scanner = LateJobScanner(
            self.store,
            self.dispatcher,
            escalation_multiplier=self.settings.escalation_multiplier,
            clock=clock,
        )
        self.scheduler = HeartbeatScheduler(
            self.scanner,
            interval_seconds=self.settings.scan_interval_seconds,
        )

        self.jobs = JobService(self.store, clock=clock)
        self.channels = ChannelService(self.store)

    async def start(self) -> None:
        """Start the recurring scan."""
        await self.scheduler.start()
        logger.info("Monitor started")

    async def stop(self) -> None:
        """Stop scanning and release sender connections."""
        await self.scheduler.stop()
        await close_senders(self.senders)
        logger.info("Monitor stopped")
