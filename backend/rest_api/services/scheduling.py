"""
Shift schedule resolution.

Turns the weekly shift calendar into the bookable time slots of one date.
Pure functions over Shift rows (or anything exposing the same attributes);
the caller supplies "now" already expressed in the restaurant's timezone.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from zoneinfo import ZoneInfo

from rest_api.models import Shift
from shared.settings import settings


MINUTES_PER_DAY = 24 * 60


def parse_time(value: str) -> int:
    """
    Minutes since midnight for an "HH:MM" string.

    Raises:
        ValueError: If the value is not a valid 24h time.
    """
    try:
        hours_str, minutes_str = value.split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


def format_time(minutes: int) -> str:
    """Inverse of parse_time."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Canonical zero-padded form, e.g. "9:30" -> "09:30"."""
    return format_time(parse_time(value))


def weekday_index(target_date: date) -> int:
    """Weekday with 0=Sunday ... 6=Saturday (Python uses 0=Monday)."""
    return (target_date.weekday() + 1) % 7


def validate_shift_window(start_time: str, end_time: str) -> None:
    """
    Raises:
        ValueError: If start is not strictly before end (no overnight shifts).
    """
    if parse_time(start_time) >= parse_time(end_time):
        raise ValueError(f"Shift must end after it starts ({start_time}-{end_time})")


def shift_applies(shift: Shift, target_date: date) -> bool:
    """True if the shift is active and covers the date's weekday."""
    return bool(shift.is_active) and weekday_index(target_date) in set(shift.days_of_week or [])


def shift_slots(shift: Shift, interval_minutes: int | None = None) -> list[str]:
    """
    Slots of one shift: start inclusive, stepping by the interval, strictly
    before end. A remainder shorter than one step yields no slot.
    """
    step = interval_minutes or settings.slot_interval_minutes
    start = parse_time(shift.start_time)
    end = parse_time(shift.end_time)
    return [format_time(m) for m in range(start, end, step)]


def local_now(tz_name: str | None = None) -> datetime:
    """Current wall-clock time in the restaurant's timezone."""
    return datetime.now(ZoneInfo(tz_name or settings.default_timezone))


def generate_slots(
    target_date: date,
    shifts: Iterable[Shift],
    now: datetime | None = None,
    interval_minutes: int | None = None,
) -> list[str]:
    """
    Bookable slots for a date, ascending and without duplicates.

    Overlapping shifts producing the same time yield it once. When the date
    is today (according to `now`), slots at or before the current time are
    dropped.

    Args:
        target_date: Calendar date being booked.
        shifts: The tenant's shifts; inactive ones and other weekdays are ignored.
        now: Current time in the restaurant's timezone. Defaults to the
            configured default timezone.
        interval_minutes: Slot granularity, defaults to settings.
    """
    slots: set[str] = set()
    for shift in shifts:
        if shift_applies(shift, target_date):
            slots.update(shift_slots(shift, interval_minutes))

    ordered = sorted(slots, key=parse_time)

    if now is None:
        now = local_now()
    if target_date == now.date():
        elapsed_seconds = now.hour * 3600 + now.minute * 60 + now.second
        ordered = [s for s in ordered if parse_time(s) * 60 > elapsed_seconds]

    return ordered


def is_slot_offered(
    target_date: date,
    time_of_day: str,
    shifts: Iterable[Shift],
    now: datetime | None = None,
    interval_minutes: int | None = None,
) -> bool:
    """True if `time_of_day` is among the slots currently offered for the date."""
    try:
        wanted = normalize_time(time_of_day)
    except ValueError:
        return False
    return wanted in generate_slots(target_date, shifts, now=now, interval_minutes=interval_minutes)
