"""
pingwarden Services Layer

Owner-scoped management of jobs, channels and bindings, shared by the CLI
and the API.
"""

from pingwarden.services.channels import ChannelService, validate_configuration
from pingwarden.services.jobs import JobService, generate_webhook_token

__all__ = [
    "ChannelService",
    "validate_configuration",
    "JobService",
    "generate_webhook_token",
]
