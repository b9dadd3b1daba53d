"""
Heartbeat Errors

Exception taxonomy shared by the monitoring engine and the management services.
"""


class PingwardenError(Exception):
    """Base class for all pingwarden errors."""

    pass


class ValidationError(PingwardenError):
    """Raised when user-supplied input (schedule, channel config) is malformed."""

    pass


class ScheduleError(ValidationError):
    """Raised when a schedule definition cannot be parsed or computed."""

    pass


class NotFoundError(PingwardenError):
    """
    Raised when an entity does not exist or belongs to another owner.

    Both cases produce the same error so existence is never leaked.
    """

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class StoreError(PingwardenError):
    """Raised on a (possibly transient) job store failure."""

    pass


class StaleJobError(StoreError):
    """Raised when a conditional write loses a race against a newer write."""

    def __init__(self, job_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            f"Job {job_id} changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.job_id = job_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class DeliveryError(PingwardenError):
    """Raised by a channel sender when a notification cannot be delivered."""

    pass
