"""
Tests for the channel senders.
"""

import json
import smtplib
from datetime import timedelta

import httpx
import pytest

from pingwarden.config import MonitorSettings
from pingwarden.heartbeat.errors import DeliveryError
from pingwarden.heartbeat.models import (
    ChannelType,
    EventKind,
    JobStatus,
    NotificationChannel,
    NotificationPayload,
    ScheduleType,
)
from pingwarden.heartbeat.senders import (
    EmailSender,
    PagerDutySender,
    SlackSender,
    WebhookSender,
    close_senders,
    default_senders,
)

from tests.conftest import T0


def make_payload(event_kind: EventKind = EventKind.LATENESS, **overrides) -> NotificationPayload:
    fields = {
        "job_id": "job-123",
        "job_name": "nightly <backup>",
        "schedule_type": ScheduleType.CRON,
        "schedule_value": "0 0 * * *",
        "current_status": JobStatus.LATE,
        "event_kind": event_kind,
        "last_pinged_at": T0,
        "expected_next_ping_at": T0 + timedelta(days=1),
        "execution_log": "Job detected as late by scanner.",
        "occurred_at": T0 + timedelta(days=1, minutes=2),
    }
    fields.update(overrides)
    return NotificationPayload(**fields)


def make_channel(channel_type: ChannelType, **config) -> NotificationChannel:
    return NotificationChannel(
        owner_id="owner-1",
        type=channel_type,
        name="test",
        configuration_details=config,
        is_verified=True,
    )


class Recorder:
    """Captures requests sent through an httpx.MockTransport."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


class TestSlackSender:
    """Tests for SlackSender."""

    @pytest.mark.asyncio
    async def test_posts_attachment(self) -> None:
        recorder = Recorder()
        sender = SlackSender(client=recorder.client())
        url = "https://hooks.slack.com/services/T/B/X"

        await sender.send(make_channel(ChannelType.SLACK, webhookUrl=url), make_payload())

        assert str(recorder.requests[0].url) == url
        body = recorder.last_json
        attachment = body["attachments"][0]
        assert attachment["color"] == "danger"
        assert "LATENESS" in attachment["title"]
        assert "Job detected as late" in attachment["text"]
        fields = {f["title"]: f["value"] for f in attachment["fields"]}
        assert fields["Status"] == "late"
        assert fields["Schedule"] == "cron (0 0 * * *)"
        await sender.aclose()

    @pytest.mark.asyncio
    async def test_recovery_is_green(self) -> None:
        recorder = Recorder()
        sender = SlackSender(client=recorder.client())

        await sender.send(
            make_channel(ChannelType.SLACK, webhookUrl="https://hooks.slack.com/x"),
            make_payload(EventKind.RECOVERY, current_status=JobStatus.HEALTHY),
        )

        assert recorder.last_json["attachments"][0]["color"] == "good"

    @pytest.mark.asyncio
    async def test_http_error_raises_delivery_error(self) -> None:
        sender = SlackSender(client=Recorder(status_code=500).client())
        with pytest.raises(DeliveryError):
            await sender.send(
                make_channel(ChannelType.SLACK, webhookUrl="https://hooks.slack.com/x"),
                make_payload(),
            )

    @pytest.mark.asyncio
    async def test_missing_url(self) -> None:
        sender = SlackSender(client=Recorder().client())
        with pytest.raises(DeliveryError):
            await sender.send(make_channel(ChannelType.SLACK), make_payload())


class TestPagerDutySender:
    """Tests for PagerDutySender."""

    @pytest.mark.asyncio
    async def test_trigger(self) -> None:
        recorder = Recorder(status_code=202)
        sender = PagerDutySender(events_url="https://pd.test/enqueue", client=recorder.client())
        key = "a" * 32

        await sender.send(make_channel(ChannelType.PAGERDUTY, routingKey=key), make_payload(EventKind.FAILURE))

        assert str(recorder.requests[0].url) == "https://pd.test/enqueue"
        event = recorder.last_json
        assert event["routing_key"] == key
        assert event["event_action"] == "trigger"
        assert event["dedup_key"] == "pingwarden_job_job-123"
        assert event["payload"]["severity"] == "critical"
        assert event["payload"]["custom_details"]["event_type"] == "failure"

    @pytest.mark.asyncio
    async def test_recovery_resolves_same_incident(self) -> None:
        recorder = Recorder(status_code=202)
        sender = PagerDutySender(client=recorder.client())

        await sender.send(
            make_channel(ChannelType.PAGERDUTY, routingKey="b" * 32),
            make_payload(EventKind.RECOVERY, current_status=JobStatus.HEALTHY),
        )

        event = recorder.last_json
        assert event["event_action"] == "resolve"
        assert event["dedup_key"] == "pingwarden_job_job-123"
        assert event["payload"]["severity"] == "info"


class TestWebhookSender:
    """Tests for WebhookSender."""

    @pytest.mark.asyncio
    async def test_posts_payload_with_headers(self) -> None:
        recorder = Recorder()
        sender = WebhookSender(client=recorder.client())
        channel = make_channel(
            ChannelType.WEBHOOK,
            url="https://example.test/hook",
            headers={"X-Token": "secret"},
        )

        await sender.send(channel, make_payload())

        request = recorder.requests[0]
        assert request.headers["X-Token"] == "secret"
        assert request.headers["Content-Type"] == "application/json"
        body = recorder.last_json
        assert body["job_id"] == "job-123"
        assert body["event_kind"] == "lateness"
        assert body["current_status"] == "late"


class TestEmailSender:
    """Tests for EmailSender."""

    def test_build_message(self) -> None:
        sender = EmailSender("smtp.test", "alerts@example.com")
        message = sender.build_message("ops@example.com", make_payload())

        assert message["To"] == "ops@example.com"
        assert message["From"] == "alerts@example.com"
        assert "LATENESS" in message["Subject"]

        plain, html = message.get_payload()
        assert "Job detected as late" in plain.get_payload(decode=True).decode()
        # Job names are escaped in the HTML part
        assert "nightly &lt;backup&gt;" in html.get_payload(decode=True).decode()

    @pytest.mark.asyncio
    async def test_send_uses_recipient(self, monkeypatch: pytest.MonkeyPatch) -> None:
        sender = EmailSender("smtp.test", "alerts@example.com")
        delivered = []
        monkeypatch.setattr(sender, "_deliver", lambda recipient, message: delivered.append(recipient))

        await sender.send(make_channel(ChannelType.EMAIL, email="ops@example.com"), make_payload())

        assert delivered == ["ops@example.com"]

    @pytest.mark.asyncio
    async def test_smtp_error_raises_delivery_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        sender = EmailSender("smtp.test", "alerts@example.com")

        def refuse(recipient, message):
            raise smtplib.SMTPRecipientsRefused({recipient: (550, b"no such user")})

        monkeypatch.setattr(sender, "_deliver", refuse)

        with pytest.raises(DeliveryError):
            await sender.send(make_channel(ChannelType.EMAIL, email="ops@example.com"), make_payload())


class TestSenderRegistry:
    """Tests for default_senders."""

    @pytest.mark.asyncio
    async def test_one_sender_per_type(self) -> None:
        senders = default_senders(MonitorSettings())
        assert set(senders) == set(ChannelType)
        assert isinstance(senders[ChannelType.EMAIL], EmailSender)
        await close_senders(senders)
