"""
Schedule Calculator

Pure functions that turn a schedule definition into expected ping times.

Two schedule flavours are supported:
- cron: a standard five or six field expression, evaluated in UTC via croniter
- interval: "<N><unit>" where unit is m (minutes), h (hours) or d (days)
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from croniter import CroniterError, croniter

from pingwarden.heartbeat.errors import ScheduleError
from pingwarden.heartbeat.models import ScheduleType

INTERVAL_PATTERN = re.compile(r"^(\d+)([mhd])$")

INTERVAL_UNITS: dict[str, timedelta] = {
    "m": timedelta(seconds=60),
    "h": timedelta(seconds=3600),
    "d": timedelta(seconds=86400),
}


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_type(schedule_type: ScheduleType | str) -> ScheduleType:
    try:
        return ScheduleType(schedule_type)
    except ValueError:
        raise ScheduleError(f"Unknown schedule type: {schedule_type!r}") from None


def parse_interval(schedule_value: str) -> timedelta:
    """
    Parse an interval string such as "5m", "1h" or "2d".

    Raises:
        ScheduleError: If the value is not of the form <N><unit>
    """
    match = INTERVAL_PATTERN.match(schedule_value or "")
    if not match:
        raise ScheduleError(
            f'Invalid interval format: {schedule_value!r}. Expected e.g. "5m", "1h", "2d".'
        )
    return int(match.group(1)) * INTERVAL_UNITS[match.group(2)]


def _cron_iter(expression: str, start: datetime) -> croniter:
    try:
        return croniter(expression, start)
    except (CroniterError, ValueError, KeyError) as e:
        raise ScheduleError(f"Invalid cron expression {expression!r}: {e}") from e


def next_ping(
    schedule_type: ScheduleType | str,
    schedule_value: str,
    from_time: datetime,
) -> datetime:
    """
    Compute when the next ping is due.

    Args:
        schedule_type: cron or interval
        schedule_value: Cron expression or interval string
        from_time: Reference time (last ping or job creation)

    Returns:
        The next expected ping time, strictly after from_time, in UTC

    Raises:
        ScheduleError: If the schedule cannot be parsed
    """
    kind = _coerce_type(schedule_type)
    start = _as_utc(from_time)

    if kind == ScheduleType.INTERVAL:
        return start + parse_interval(schedule_value)

    try:
        upcoming = _cron_iter(schedule_value, start).get_next(datetime)
    except (CroniterError, ValueError) as e:
        raise ScheduleError(f"Cannot compute next run for {schedule_value!r}: {e}") from e
    return _as_utc(upcoming)


def nominal_period(
    schedule_type: ScheduleType | str,
    schedule_value: str,
    now: datetime | None = None,
) -> timedelta:
    """
    Estimate the typical gap between two expected pings.

    For intervals this is exact. For cron it is the gap between the first two
    occurrences after ``now``, which is only an approximation for irregular
    expressions (monthly jobs, weekday-only jobs). Use it for escalation
    heuristics, never for due-time correctness.

    Raises:
        ScheduleError: If the schedule cannot be parsed
    """
    kind = _coerce_type(schedule_type)

    if kind == ScheduleType.INTERVAL:
        return parse_interval(schedule_value)

    start = _as_utc(now or datetime.now(timezone.utc))
    iterator = _cron_iter(schedule_value, start)
    try:
        first = iterator.get_next(datetime)
        second = iterator.get_next(datetime)
    except (CroniterError, ValueError) as e:
        raise ScheduleError(f"Cannot compute period for {schedule_value!r}: {e}") from e
    return second - first


def validate_schedule(schedule_type: ScheduleType | str, schedule_value: str) -> None:
    """Raise ScheduleError unless the schedule can produce a next ping time."""
    next_ping(schedule_type, schedule_value, datetime.now(timezone.utc))
