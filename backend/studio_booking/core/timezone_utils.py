"""
Timezone utilities for the booking engine.

Class schedules are stored as studio-local wall-clock date/time; every
comparison against "now" happens in UTC after localizing with the studio's
IANA timezone.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytz


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def get_studio_timezone(tz_name: str | None) -> pytz.BaseTzInfo:
    """
    Resolve a studio timezone name.

    Unknown or empty names fall back to UTC rather than failing the request.
    """
    if not tz_name:
        return pytz.UTC
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def localize_class_start(class_date: date, start_time: time, tz_name: str | None) -> datetime:
    """
    Convert a studio-local class start to an aware UTC datetime.

    Ambiguous or non-existent wall-clock times around DST transitions resolve
    to the standard-time reading.
    """
    studio_tz = get_studio_timezone(tz_name)
    naive = datetime.combine(class_date, start_time)
    local = studio_tz.localize(naive, is_dst=False)
    return local.astimezone(pytz.UTC)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt


def cancellation_deadline(class_start_utc: datetime, window_hours: int) -> datetime:
    """Last instant at which a cancellation still earns a refund."""
    return class_start_utc - timedelta(hours=window_hours)


def is_within_cancellation_window(now: datetime, deadline: datetime) -> bool:
    """Inclusive: cancelling exactly at the deadline still counts as on time."""
    return ensure_aware(now) <= ensure_aware(deadline)
