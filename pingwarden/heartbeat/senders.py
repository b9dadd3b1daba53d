"""
Channel Senders

Thin adapters that deliver a NotificationPayload over one transport each:
- Email (SMTP)
- Slack (incoming webhook)
- PagerDuty (Events API v2)
- Generic webhooks
"""

from __future__ import annotations

import asyncio
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Protocol

import httpx
import structlog

from pingwarden.config import MonitorSettings
from pingwarden.heartbeat.errors import DeliveryError
from pingwarden.heartbeat.models import (
    ChannelType,
    EventKind,
    NotificationChannel,
    NotificationPayload,
)

logger = structlog.get_logger(__name__)


class ChannelSender(Protocol):
    """Delivers one payload to one channel. Raises DeliveryError on failure."""

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None: ...


def _require(channel: NotificationChannel, key: str) -> Any:
    """Fetch a required configuration value or fail delivery."""
    value = channel.configuration_details.get(key)
    if not value:
        raise DeliveryError(f"Missing {key} in configuration for {channel.type.value} channel {channel.id}")
    return value


def _fmt_time(value: datetime | None, default: str = "N/A") -> str:
    return value.isoformat() if value else default


def _is_alarm(event_kind: EventKind) -> bool:
    return event_kind in (EventKind.FAILURE, EventKind.LATENESS)


class _HttpSender:
    """Shared lazy httpx client for the HTTP-based senders."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None) -> None:
        client = await self._get_client()
        try:
            response = await client.post(url, json=payload, headers=headers or {})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(f"POST to {url} failed: {e}") from e


class SlackSender(_HttpSender):
    """Send alerts to Slack via an incoming webhook."""

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        webhook_url = _require(channel, "webhookUrl")

        if _is_alarm(payload.event_kind):
            color = "danger"
        elif payload.event_kind == EventKind.RECOVERY:
            color = "good"
        else:
            color = "warning"

        text = (
            f'Job "{payload.job_name}" (ID: {payload.job_id}) reported event: '
            f"{payload.event_kind.value.upper()}."
        )
        if payload.execution_log:
            text += f"\n```\n{payload.execution_log}\n```"
        text += (
            f"\nExpected at: {_fmt_time(payload.expected_next_ping_at)}"
            f"\nLast pinged: {_fmt_time(payload.last_pinged_at, 'Never')}"
        )

        message = {
            "text": f"pingwarden: {payload.title}",  # Fallback
            "attachments": [
                {
                    "color": color,
                    "title": f"pingwarden: {payload.title}",
                    "text": text,
                    "fields": [
                        {"title": "Job ID", "value": payload.job_id, "short": True},
                        {"title": "Schedule", "value": payload.schedule_label, "short": True},
                        {"title": "Status", "value": payload.current_status.value, "short": True},
                        {"title": "Event Type", "value": payload.event_kind.value.upper(), "short": True},
                    ],
                    "footer": "pingwarden",
                    "ts": int(payload.occurred_at.timestamp()),
                }
            ],
        }

        await self._post(webhook_url, message)
        logger.info("Slack notification sent", job_id=payload.job_id, event_kind=payload.event_kind.value)


class PagerDutySender(_HttpSender):
    """Trigger and resolve PagerDuty incidents via the Events API v2."""

    def __init__(
        self,
        events_url: str = "https://events.pagerduty.com/v2/enqueue",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds, client=client)
        self._events_url = events_url

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        routing_key = _require(channel, "routingKey")
        recovery = payload.event_kind == EventKind.RECOVERY

        event = {
            "routing_key": routing_key,
            "event_action": "resolve" if recovery else "trigger",
            # Same key for trigger and resolve so PagerDuty pairs them up
            "dedup_key": f"pingwarden_job_{payload.job_id}",
            "payload": {
                "summary": f'pingwarden: Job "{payload.job_name}" (ID: {payload.job_id}) '
                           f"{payload.event_kind.value.upper()}",
                "timestamp": payload.occurred_at.isoformat(),
                "severity": "info" if recovery else "critical",
                "source": f"pingwarden_job_{payload.job_id}",
                "component": "pingwarden",
                "group": f"pingwarden_job_{payload.job_id}",
                "class": "job_recovery" if recovery else "job_failure_or_late",
                "custom_details": {
                    "job_id": payload.job_id,
                    "job_name": payload.job_name,
                    "schedule": payload.schedule_label,
                    "status": payload.current_status.value,
                    "event_type": payload.event_kind.value,
                    "last_pinged_at": _fmt_time(payload.last_pinged_at, None),
                    "expected_next_ping_at": _fmt_time(payload.expected_next_ping_at, None),
                    "output_log": payload.execution_log,
                },
            },
        }

        await self._post(self._events_url, event)
        logger.info("PagerDuty event sent", job_id=payload.job_id, action=event["event_action"])


class WebhookSender(_HttpSender):
    """Send alerts to a generic webhook as JSON."""

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        url = _require(channel, "url")
        headers = {"Content-Type": "application/json"}
        headers.update(channel.configuration_details.get("headers") or {})

        await self._post(url, payload.model_dump(mode="json"), headers=headers)
        logger.info("Webhook notification sent", job_id=payload.job_id, url=url)


class EmailSender:
    """Send alerts by email over SMTP."""

    def __init__(
        self,
        smtp_host: str,
        from_address: str,
        *,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool = True,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._from_address = from_address
        self._use_tls = use_tls
        self._timeout = timeout_seconds

    def build_message(self, recipient: str, payload: NotificationPayload) -> MIMEMultipart:
        """Build a plain-text + HTML alert email."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"pingwarden alert: {payload.title}"
        msg["From"] = self._from_address
        msg["To"] = recipient

        text = f"""
This is an alert from pingwarden.

Job Name: {payload.job_name} (ID: {payload.job_id})
Event Type: {payload.event_kind.value.upper()}
Current Status: {payload.current_status.value}
Schedule: {payload.schedule_label}
Expected Next Ping: {_fmt_time(payload.expected_next_ping_at)}
Last Pinged At: {_fmt_time(payload.last_pinged_at, 'Never')}

Log: {payload.execution_log or 'N/A'}
"""
        html = (
            "<p>This is an alert from pingwarden.</p><ul>"
            f"<li><strong>Job Name:</strong> {escape(payload.job_name)} (ID: {escape(payload.job_id)})</li>"
            f"<li><strong>Event Type:</strong> {payload.event_kind.value.upper()}</li>"
            f"<li><strong>Current Status:</strong> {payload.current_status.value}</li>"
            f"<li><strong>Schedule:</strong> {escape(payload.schedule_label)}</li>"
            f"<li><strong>Expected Next Ping:</strong> {_fmt_time(payload.expected_next_ping_at)}</li>"
            f"<li><strong>Last Pinged At:</strong> {_fmt_time(payload.last_pinged_at, 'Never')}</li>"
            "</ul>"
        )
        if payload.execution_log:
            html += f"<p><strong>Execution Log:</strong></p><pre>{escape(payload.execution_log)}</pre>"

        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def _deliver(self, recipient: str, message: MIMEMultipart) -> None:
        with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._smtp_user and self._smtp_password:
                server.login(self._smtp_user, self._smtp_password)
            server.sendmail(self._from_address, [recipient], message.as_string())

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        recipient = _require(channel, "email")
        message = self.build_message(recipient, payload)

        try:
            await asyncio.to_thread(self._deliver, recipient, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery to {recipient} failed: {e}") from e

        logger.info("Email notification sent", job_id=payload.job_id, recipient=recipient)


def default_senders(
    settings: MonitorSettings,
    client: httpx.AsyncClient | None = None,
) -> dict[ChannelType, ChannelSender]:
    """Build the sender registry keyed by channel type."""
    return {
        ChannelType.EMAIL: EmailSender(
            settings.smtp_host,
            settings.email_from,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout_seconds=settings.sender_timeout_seconds,
        ),
        ChannelType.SLACK: SlackSender(settings.sender_timeout_seconds, client=client),
        ChannelType.PAGERDUTY: PagerDutySender(
            settings.pagerduty_events_url,
            settings.sender_timeout_seconds,
            client=client,
        ),
        ChannelType.WEBHOOK: WebhookSender(settings.sender_timeout_seconds, client=client),
    }


async def close_senders(senders: dict[ChannelType, ChannelSender]) -> None:
    """Close any sender that holds a connection pool."""
    for sender in senders.values():
        if isinstance(sender, _HttpSender):
            await sender.aclose()
