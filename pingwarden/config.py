"""pingwarden configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_STORE_PATH = Path.home() / ".pingwarden" / "state.json"


class MonitorSettings(BaseSettings):
    """Settings for the monitor, its API and its notification senders."""

    # Scanner
    scan_interval_seconds: int = 60
    escalation_multiplier: float = 3.0  # errored once overdue by N x (grace + period)

    # Store
    store_path: Path | None = None  # None keeps state in memory only

    # Senders
    sender_timeout_seconds: float = 10.0
    pagerduty_events_url: str = "https://events.pagerduty.com/v2/enqueue"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    email_from: str = "pingwarden@localhost"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    title: str = "pingwarden"
    description: str = "Dead-man's-switch heartbeat monitoring"
    version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    class Config:
        env_prefix = "PINGWARDEN_"


def get_settings() -> MonitorSettings:
    """Load settings from the environment."""
    return MonitorSettings()


def get_persistent_settings() -> MonitorSettings:
    """Settings with the store file defaulted, shared by the CLI and the server."""
    settings = get_settings()
    if settings.store_path is None:
        settings.store_path = DEFAULT_STORE_PATH
    return settings
