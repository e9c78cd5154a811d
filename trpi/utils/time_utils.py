"""
Date and time helpers for availability and booking.

Slot times are clinic wall-clock strings ("HH:MM") paired with a calendar date.
All comparisons against "now" happen in naive clinic-local datetimes so that
server timezone never leaks into slot filtering.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from ..config import CLINIC_TIMEZONE

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

MINUTES_PER_DAY = 24 * 60


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string"""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValueError(f"Invalid date format: {value!r}. Use YYYY-MM-DD format.")
    return date.fromisoformat(value)


def parse_time(value: str) -> time:
    """Parse HH:MM or HH:MM:SS"""
    match = _TIME_RE.match(value or "") if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM format.")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time format: {value!r}. Use HH:MM format.")
    return time(hours, minutes)


def normalize_time(value: str) -> str:
    """Return the canonical zero-padded HH:MM form"""
    return parse_time(value).strftime("%H:%M")


def time_to_minutes(value: str) -> int:
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def minutes_to_time(minutes: int) -> str:
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a single day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    """Add minutes to an HH:MM string without wrapping past midnight (24:00 max)"""
    return minutes_to_time(time_to_minutes(value) + minutes)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return start_a < end_b and start_b < end_a


def day_name(value: date) -> str:
    return DAY_NAMES[value.weekday()]


def date_range(start: date, end: date) -> Iterator[date]:
    """Inclusive date iterator"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def clinic_now() -> datetime:
    """Current wall-clock time in the clinic timezone, as a naive datetime"""
    return datetime.now(ZoneInfo(CLINIC_TIMEZONE)).replace(tzinfo=None, microsecond=0)


def slot_datetime(slot_date: date, start_time: str) -> datetime:
    """Combine a date and an HH:MM string (24:00 rolls over to the next day)"""
    minutes = time_to_minutes(start_time) if start_time != "24:00" else MINUTES_PER_DAY
    return datetime.combine(slot_date, time(0, 0)) + timedelta(minutes=minutes)


def is_past_slot(
    slot_date: date, start_time: str, now: Optional[datetime] = None, lead_minutes: int = 0
) -> bool:
    """A slot is past when it starts at or before now + lead time"""
    now = now or clinic_now()
    return slot_datetime(slot_date, start_time) <= now + timedelta(minutes=lead_minutes)


def filter_out_past_slots(
    slots: Iterable[dict], now: Optional[datetime] = None, lead_minutes: int = 0
) -> list[dict]:
    now = now or clinic_now()
    return [
        slot
        for slot in slots
        if not is_past_slot(parse_date(slot["date"]), slot["start_time"], now, lead_minutes)
    ]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if month < 1 or month > 12:
        raise ValueError("Month must be between 1 and 12")
    first = date(year, month, 1)
    next_month = date(year + (month // 12), (month % 12) + 1, 1)
    return first, next_month - timedelta(days=1)


def utcnow() -> datetime:
    """Naive UTC timestamp for audit columns (auth records, notifications)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
