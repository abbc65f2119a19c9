"""Timezone helpers shared by the evaluator and the booking services."""

from datetime import datetime

import pytz


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are taken to already be UTC; this is how SQLite hands back
    ``DateTime(timezone=True)`` columns.
    """
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value.astimezone(pytz.utc)


def is_valid_timezone(name: str) -> bool:
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return False
    return True


def to_local(instant: datetime, timezone_name: str) -> datetime:
    return ensure_utc(instant).astimezone(pytz.timezone(timezone_name))


def sunday_based_weekday(local_dt: datetime) -> int:
    # Python counts Monday as 0; rules count Sunday as 0.
    return (local_dt.weekday() + 1) % 7


def is_on_slot_grid(instant: datetime, increment_minutes: int) -> bool:
    instant = ensure_utc(instant)
    if instant.second or instant.microsecond:
        return False
    return (instant.hour * 60 + instant.minute) % increment_minutes == 0
