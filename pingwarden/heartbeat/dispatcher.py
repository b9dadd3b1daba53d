"""
Notification Dispatcher

Fans a job event out to every verified channel bound to the job whose
trigger flag matches the event.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from pingwarden.heartbeat.models import (
    ChannelBinding,
    ChannelType,
    EventKind,
    JobExecution,
    MonitoredJob,
    NotificationPayload,
)
from pingwarden.heartbeat.senders import ChannelSender
from pingwarden.heartbeat.store import JobStore

logger = structlog.get_logger(__name__)


@dataclass
class DispatchReport:
    """Outcome of one dispatch call."""

    event_kind: EventKind
    delivered: list[str] = field(default_factory=list)  # channel ids
    failed: dict[str, str] = field(default_factory=dict)  # channel id -> error
    skipped: int = 0  # bindings whose trigger flag was off

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


class NotificationDispatcher:
    """
    Routes job events to channel senders.

    Only verified channels are ever loaded. Each send carries its own timeout
    and its own error handling; dispatch itself never raises.
    """

    def __init__(
        self,
        store: JobStore,
        senders: Mapping[ChannelType, ChannelSender],
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            store: Source of channel bindings
            senders: Sender registry keyed by channel type
            timeout_seconds: Upper bound for a single channel send
        """
        self._store = store
        self._senders = dict(senders)
        self._timeout = timeout_seconds

    async def dispatch(
        self,
        job: MonitoredJob,
        event_kind: EventKind,
        execution: JobExecution | None = None,
    ) -> DispatchReport:
        """
        Send an event for a job to all subscribed channels.

        Args:
            job: Job snapshot after the status change
            event_kind: failure, lateness or recovery
            execution: Execution record that triggered the event, if any

        Returns:
            Report of delivered and failed channels
        """
        report = DispatchReport(event_kind=event_kind)

        try:
            bindings = await self._store.get_bindings_with_channels(job.id, verified_only=True)
        except Exception as e:
            logger.error(
                "Failed to load notification settings",
                job_id=job.id,
                event_kind=event_kind.value,
                error=str(e),
            )
            return report

        targets: list[ChannelBinding] = []
        for binding in bindings:
            # Custom stores may ignore verified_only
            if not binding.channel.is_verified:
                continue
            if not binding.setting.wants(event_kind):
                report.skipped += 1
                continue
            targets.append(binding)

        if not targets:
            logger.debug("No channels subscribed to event", job_id=job.id, event_kind=event_kind.value)
            return report

        payload = NotificationPayload.build(job, event_kind, execution)

        results = await asyncio.gather(
            *(self._send_one(binding, payload) for binding in targets),
            return_exceptions=True,
        )

        for binding, result in zip(targets, results):
            channel_id = binding.channel.id
            if result is None:
                report.delivered.append(channel_id)
            else:
                report.failed[channel_id] = str(result) or type(result).__name__

        logger.info(
            "Dispatched notifications",
            job_id=job.id,
            event_kind=event_kind.value,
            delivered=len(report.delivered),
            failed=len(report.failed),
            skipped=report.skipped,
        )
        return report

    async def _send_one(self, binding: ChannelBinding, payload: NotificationPayload) -> Exception | None:
        """Send to one channel; return the error instead of raising it."""
        channel = binding.channel
        sender = self._senders.get(channel.type)
        if sender is None:
            logger.warning("No sender registered for channel type", channel_type=channel.type.value)
            return LookupError(f"No sender for channel type {channel.type.value}")

        try:
            await asyncio.wait_for(sender.send(channel, payload), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Notification send timed out",
                channel_id=channel.id,
                channel_type=channel.type.value,
                job_id=payload.job_id,
                timeout=self._timeout,
            )
            return TimeoutError(f"Timed out after {self._timeout}s")
        except Exception as e:
            logger.error(
                "Failed to send notification",
                channel_id=channel.id,
                channel_type=channel.type.value,
                job_id=payload.job_id,
                event_kind=payload.event_kind.value,
                error=str(e),
            )
            return e
        return None
