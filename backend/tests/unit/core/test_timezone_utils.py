from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytz

from studio_booking.core.timezone_utils import (
    cancellation_deadline,
    ensure_aware,
    get_studio_timezone,
    is_within_cancellation_window,
    localize_class_start,
)


def test_class_start_is_localized_with_the_studio_zone():
    start = localize_class_start(date(2026, 1, 15), time(18, 0), "America/New_York")

    assert start == datetime(2026, 1, 15, 23, 0, tzinfo=timezone.utc)


def test_class_start_respects_daylight_saving():
    start = localize_class_start(date(2026, 7, 15), time(18, 0), "America/New_York")

    assert start == datetime(2026, 7, 15, 22, 0, tzinfo=timezone.utc)


def test_unknown_or_missing_zone_falls_back_to_utc():
    assert get_studio_timezone("Mars/Olympus_Mons") is pytz.UTC
    assert get_studio_timezone(None) is pytz.UTC
    assert localize_class_start(date(2026, 1, 15), time(9, 30), None) == datetime(
        2026, 1, 15, 9, 30, tzinfo=timezone.utc
    )


def test_naive_datetimes_are_read_as_utc():
    naive = datetime(2026, 3, 1, 12, 0)

    assert ensure_aware(naive) == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    aware = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert ensure_aware(aware) is aware


def test_cancellation_window_is_inclusive():
    start = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
    deadline = cancellation_deadline(start, 12)

    assert deadline == datetime(2026, 4, 30, 22, 0, tzinfo=timezone.utc)
    assert is_within_cancellation_window(deadline, deadline) is True
    assert is_within_cancellation_window(deadline - timedelta(seconds=1), deadline) is True
    assert is_within_cancellation_window(deadline + timedelta(seconds=1), deadline) is False


def test_zero_hour_window_allows_refund_until_start():
    start = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)

    assert is_within_cancellation_window(start, cancellation_deadline(start, 0)) is True
