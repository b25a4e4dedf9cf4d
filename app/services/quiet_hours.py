"""Quiet-hours gate and local-time helpers for the reminder passes."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from config import settings


def service_tz() -> ZoneInfo:
    return ZoneInfo(settings.REMINDER_TIMEZONE)


def to_local(now: datetime) -> datetime:
    """Express ``now`` in the service time zone.

    Naive datetimes are assumed to already be local wall-clock time.
    """
    tz = service_tz()
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_within_allowed_window(now: datetime) -> bool:
    """True iff the local hour is in [start, end); no reminder goes out otherwise."""
    hour = to_local(now).hour
    return settings.REMINDER_ALLOWED_START_HOUR <= hour < settings.REMINDER_ALLOWED_END_HOUR
