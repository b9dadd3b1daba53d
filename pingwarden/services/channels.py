"""
Channel Service

Owner-scoped management of notification channels and of the settings that
bind channels to jobs.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

from pingwarden.heartbeat.errors import NotFoundError, ValidationError
from pingwarden.heartbeat.models import (
    ChannelType,
    JobNotificationSetting,
    NotificationChannel,
)
from pingwarden.heartbeat.store import JobStore

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com/"
ROUTING_KEY_PATTERN = re.compile(r"^[A-Za-z0-9]{32}$")
HTTP_URL_PATTERN = re.compile(r"^https?://\S+$")


def _require_str(config: dict[str, Any], key: str, channel_type: ChannelType) -> str:
    value = config.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{channel_type.value} channel requires a string '{key}'")
    return value


def validate_configuration(channel_type: ChannelType | str, config: Any) -> None:
    """
    Check ``configuration_details`` against the schema for a channel type.

    Raises:
        ValidationError: If the configuration does not match
    """
    try:
        kind = ChannelType(channel_type)
    except ValueError:
        raise ValidationError(f"Invalid channel type: {channel_type!r}") from None

    if not isinstance(config, dict):
        raise ValidationError(f"Invalid configuration_details for type {kind.value}")

    if kind == ChannelType.EMAIL:
        if not EMAIL_PATTERN.match(_require_str(config, "email", kind)):
            raise ValidationError("email must be a valid address")

    elif kind == ChannelType.SLACK:
        if not _require_str(config, "webhookUrl", kind).startswith(SLACK_WEBHOOK_PREFIX):
            raise ValidationError(f"webhookUrl must start with {SLACK_WEBHOOK_PREFIX}")

    elif kind == ChannelType.PAGERDUTY:
        if not ROUTING_KEY_PATTERN.match(_require_str(config, "routingKey", kind)):
            raise ValidationError("routingKey must be 32 alphanumeric characters")

    elif kind == ChannelType.WEBHOOK:
        if not HTTP_URL_PATTERN.match(_require_str(config, "url", kind)):
            raise ValidationError("url must be an http(s) URL")
        headers = config.get("headers")
        if headers is not None:
            if not isinstance(headers, dict):
                raise ValidationError("headers must be a mapping of strings")
            for key, value in headers.items():
                if not isinstance(key, str) or not isinstance(value, str):
                    raise ValidationError("headers must be a mapping of strings")


class ChannelService:
    """Create, edit, verify and bind notification channels."""

    def __init__(self, store: JobStore) -> None:
        self._store = store

    async def create_channel(
        self,
        owner_id: str,
        channel_type: ChannelType | str,
        name: str,
        configuration_details: dict[str, Any],
    ) -> NotificationChannel:
        """
        Create a channel. Email channels start unverified, all others verified.

        Raises:
            ValidationError: If the configuration is invalid
        """
        validate_configuration(channel_type, configuration_details)
        kind = ChannelType(channel_type)

        channel = NotificationChannel(
            owner_id=owner_id,
            type=kind,
            name=name,
            configuration_details=dict(configuration_details),
            is_verified=kind != ChannelType.EMAIL,
        )
        stored = await self._store.save_channel(channel)
        logger.info(
            "Channel created",
            channel_id=stored.id,
            channel_type=kind.value,
            verified=stored.is_verified,
        )
        return stored

    async def get_channel(self, owner_id: str, channel_id: str) -> NotificationChannel:
        channel = await self._store.get_channel(channel_id)
        if channel is None or channel.owner_id != owner_id:
            raise NotFoundError("Channel", channel_id)
        return channel

    async def list_channels(self, owner_id: str) -> list[NotificationChannel]:
        return await self._store.list_channels(owner_id=owner_id)

    async def update_channel(
        self,
        owner_id: str,
        channel_id: str,
        *,
        name: str | None = None,
        configuration_details: dict[str, Any] | None = None,
    ) -> NotificationChannel:
        """
        Edit a channel's name and/or configuration.

        Changing an email channel's configuration drops its verification.
        The type can never change.
        """
        channel = await self.get_channel(owner_id, channel_id)
        changes: dict[str, Any] = {}

        if name is not None:
            changes["name"] = name
        if configuration_details is not None:
            validate_configuration(channel.type, configuration_details)
            changes["configuration_details"] = dict(configuration_details)
            if channel.type == ChannelType.EMAIL:
                changes["is_verified"] = False

        if not changes:
            return channel

        updated = await self._store.save_channel(channel.model_copy(update=changes))
        logger.info("Channel updated", channel_id=channel_id, fields=sorted(changes))
        return updated

    async def verify_channel(self, owner_id: str, channel_id: str) -> NotificationChannel:
        """Mark a channel as verified so it can receive notifications."""
        channel = await self.get_channel(owner_id, channel_id)
        if channel.is_verified:
            return channel
        updated = await self._store.save_channel(channel.model_copy(update={"is_verified": True}))
        logger.info("Channel verified", channel_id=channel_id)
        return updated

    async def delete_channel(self, owner_id: str, channel_id: str) -> None:
        """Delete a channel and every binding that uses it."""
        await self.get_channel(owner_id, channel_id)
        await self._store.delete_channel(channel_id)
        logger.info("Channel deleted", channel_id=channel_id)

    # Bindings

    async def _owned_job(self, owner_id: str, job_id: str) -> None:
        job = await self._store.get_job(job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFoundError("Job", job_id)

    async def bind(
        self,
        owner_id: str,
        job_id: str,
        channel_id: str,
        *,
        notify_on_failure: bool = True,
        notify_on_lateness: bool = True,
        notify_on_recovery: bool = False,
    ) -> JobNotificationSetting:
        """
        Bind a channel to a job, or update the flags of the existing binding.

        Both the job and the channel must belong to ``owner_id``.
        """
        await self._owned_job(owner_id, job_id)
        await self.get_channel(owner_id, channel_id)

        setting = await self._store.upsert_setting(
            JobNotificationSetting(
                job_id=job_id,
                channel_id=channel_id,
                notify_on_failure=notify_on_failure,
                notify_on_lateness=notify_on_lateness,
                notify_on_recovery=notify_on_recovery,
            )
        )
        logger.info("Channel bound to job", job_id=job_id, channel_id=channel_id, setting_id=setting.id)
        return setting

    async def unbind(self, owner_id: str, setting_id: str) -> None:
        setting = await self._store.get_setting(setting_id)
        if setting is None:
            raise NotFoundError("Notification setting", setting_id)
        job = await self._store.get_job(setting.job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFoundError("Notification setting", setting_id)
        await self._store.delete_setting(setting_id)
        logger.info("Channel unbound", setting_id=setting_id)

    async def list_bindings(self, owner_id: str, job_id: str) -> list[JobNotificationSetting]:
        await self._owned_job(owner_id, job_id)
        return await self._store.list_settings(job_id)
