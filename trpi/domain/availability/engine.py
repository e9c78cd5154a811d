"""
Availability resolution.

Pure functions that turn a therapist's weekly schedule, an optional override for
a date and the day's bookings into bookable slots. Nothing here touches the
database or the clock; callers pass `now` explicitly where it matters.
"""

import copy
import logging
from datetime import date
from typing import Any, Iterable, Optional

from ...models import BLOCKING_SESSION_STATUSES
from ...utils.time_utils import (
    DAY_NAMES,
    MINUTES_PER_DAY,
    day_name,
    intervals_overlap,
    minutes_to_time,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_SETTINGS = {
    "sessionDuration": 60,
    "bufferTime": 0,
    "maxSessionsPerDay": None,
}

DEFAULT_OVERRIDE_DURATION = 45

# Legacy timeSlots entries that open bookable time
BOOKABLE_SLOT_TYPES = ("available", "individual")

_WORKING_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")


def default_weekly_availability() -> dict[str, Any]:
    """Schedule handed to therapists who have not saved one yet"""
    standard_hours = {}
    for name in DAY_NAMES:
        enabled = name in _WORKING_DAYS
        standard_hours[name] = {
            "enabled": enabled,
            "generalHours": {"start": "09:00", "end": "17:00", "sessionDuration": 60} if enabled else None,
            "timeSlots": [],
            "customSlots": [],
        }
    return {
        "standardHours": standard_hours,
        "sessionSettings": {"sessionDuration": 60, "bufferTime": 15, "maxSessionsPerDay": 8},
    }


def session_settings(weekly: Optional[dict]) -> dict[str, Any]:
    settings = dict(DEFAULT_SESSION_SETTINGS)
    if weekly and isinstance(weekly.get("sessionSettings"), dict):
        settings.update({k: v for k, v in weekly["sessionSettings"].items() if v is not None})
    return settings


def generate_time_slots(
    slot_date: date,
    start: str,
    end: str,
    duration: int,
    buffer: int = 0,
    is_override: bool = False,
) -> list[dict[str, Any]]:
    """Cut [start, end) into consecutive slots stepping by duration + buffer.

    A slot is emitted only when it ends at or before `end`.
    """
    if duration is None or duration <= 0:
        raise ValueError("Session duration must be greater than 0")
    if buffer is None or buffer < 0:
        raise ValueError("Buffer time cannot be negative")

    start_minutes = time_to_minutes(start)
    end_minutes = MINUTES_PER_DAY if end == "24:00" else time_to_minutes(end)
    step = duration + buffer
    date_str = slot_date.isoformat()

    slots = []
    current = start_minutes
    while current + duration <= end_minutes:
        slot_start = minutes_to_time(current)
        slots.append(
            {
                "id": f"{date_str}-{slot_start}",
                "date": date_str,
                "start_time": slot_start,
                "end_time": minutes_to_time(current + duration),
                "duration": duration,
                "is_override": is_override,
                "is_available": True,
            }
        )
        current += step
    return slots


def positive_int(value: Any) -> Optional[int]:
    """The value as a positive whole number, or None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value > 0:
        return value
    return None


def _clock_minutes(value: str) -> int:
    return MINUTES_PER_DAY if value == "24:00" else time_to_minutes(value)


def _slot_entries(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _window(start: Optional[str], end: Optional[str], duration: Any) -> Optional[dict[str, Any]]:
    if not start or not end:
        return None
    minutes = positive_int(duration)
    try:
        valid_times = _clock_minutes(start) < _clock_minutes(end)
    except ValueError:
        valid_times = False
    # Stored schedules predating validation must not break public availability
    if minutes is None or not valid_times:
        logger.warning(f"⚠️ Skipping unusable availability window {start!r}-{end!r} ({duration!r} min)")
        return None
    return {"start": start, "end": end, "duration": minutes}


def resolve_day_windows(
    weekly: Optional[dict], override: Optional[dict], slot_date: date
) -> tuple[list[dict[str, Any]], bool]:
    """Return (windows, is_override) for a date.

    An override for the date replaces the weekly schedule outright. Without
    one, custom slots win over general hours, which win over legacy timeSlots.
    """
    settings = session_settings(weekly)
    default_duration = settings["sessionDuration"]

    if override is not None:
        if not override.get("is_available"):
            return [], True
        window = _window(
            override.get("start_time"),
            override.get("end_time"),
            override.get("session_duration") or DEFAULT_OVERRIDE_DURATION,
        )
        return ([window] if window else []), True

    day = ((weekly or {}).get("standardHours") or {}).get(day_name(slot_date))
    if not isinstance(day, dict) or not day.get("enabled"):
        return [], False

    custom_slots = [s for s in _slot_entries(day.get("customSlots")) if s.get("isAvailable", True) is not False]
    if custom_slots:
        windows = [
            _window(s.get("start"), s.get("end"), s.get("duration") or default_duration) for s in custom_slots
        ]
        return [w for w in windows if w], True

    general = day.get("generalHours") or {}
    if isinstance(general, dict) and general.get("start") and general.get("end"):
        window = _window(general["start"], general["end"], general.get("sessionDuration") or default_duration)
        return ([window] if window else []), False

    windows = [
        _window(s.get("start"), s.get("end"), s.get("duration") or default_duration)
        for s in _slot_entries(day.get("timeSlots"))
        if (s.get("type") or "available") in BOOKABLE_SLOT_TYPES
    ]
    return [w for w in windows if w], False


def daily_cap(weekly: Optional[dict], override: Optional[dict]) -> Optional[int]:
    """Maximum blocking bookings for the day, None when unlimited"""
    if override is not None:
        return positive_int(override.get("max_sessions"))
    return positive_int(session_settings(weekly).get("maxSessionsPerDay"))


def generate_slots_for_date(weekly: Optional[dict], override: Optional[dict], slot_date: date) -> list[dict[str, Any]]:
    windows, is_override = resolve_day_windows(weekly, override, slot_date)
    raw_buffer = session_settings(weekly)["bufferTime"]
    buffer = 0 if raw_buffer == 0 else positive_int(raw_buffer)
    if buffer is None:
        logger.warning(f"⚠️ Ignoring invalid buffer time {raw_buffer!r}")
        buffer = 0

    slots: list[dict[str, Any]] = []
    seen = set()
    for window in windows:
        for slot in generate_time_slots(
            slot_date, window["start"], window["end"], window["duration"], buffer, is_override
        ):
            # Overlapping custom windows can produce the same start twice
            if slot["start_time"] in seen:
                continue
            seen.add(slot["start_time"])
            slots.append(slot)
    return sorted(slots, key=lambda s: s["start_time"])


def _is_blocking(booking: dict) -> bool:
    return booking.get("status", "scheduled") in BLOCKING_SESSION_STATUSES


def _booking_interval(booking: dict) -> tuple[int, int]:
    start = time_to_minutes(booking["start_time"])
    end_time = booking.get("end_time")
    if end_time:
        end = MINUTES_PER_DAY if end_time == "24:00" else time_to_minutes(end_time)
    else:
        end = start + int(booking.get("duration_minutes") or DEFAULT_SESSION_SETTINGS["sessionDuration"])
    return start, end


def remove_booked_slots(slots: Iterable[dict], bookings: Iterable[dict]) -> list[dict]:
    """Drop every slot that overlaps a blocking booking"""
    intervals = [_booking_interval(b) for b in bookings if _is_blocking(b)]
    if not intervals:
        return list(slots)

    remaining = []
    for slot in slots:
        start = time_to_minutes(slot["start_time"])
        end = start + int(slot["duration"])
        if any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end in intervals):
            continue
        remaining.append(slot)
    return remaining


def apply_daily_cap(slots: list[dict], bookings: Iterable[dict], max_per_day: Optional[int]) -> list[dict]:
    if not max_per_day:
        return slots
    booked = sum(1 for b in bookings if _is_blocking(b))
    return [] if booked >= max_per_day else slots


def check_slot_conflicts(
    weekly: Optional[dict],
    override: Optional[dict],
    bookings: Iterable[dict],
    slot_date: date,
    start_time: str,
    duration: int,
) -> list[dict[str, str]]:
    """Explain why [start_time, start_time + duration) cannot be booked"""
    conflicts = []
    start = time_to_minutes(start_time)
    end = start + int(duration)

    windows, _ = resolve_day_windows(weekly, override, slot_date)
    if not windows:
        conflicts.append({"type": "unavailable_time", "message": "Therapist is not available on this date"})
    elif end > MINUTES_PER_DAY or not any(
        time_to_minutes(w["start"]) <= start and end <= (MINUTES_PER_DAY if w["end"] == "24:00" else time_to_minutes(w["end"]))
        for w in windows
    ):
        conflicts.append(
            {"type": "unavailable_time", "message": "Requested time is outside the therapist's available hours"}
        )

    blocking = [b for b in bookings if _is_blocking(b)]
    for booking in blocking:
        b_start, b_end = _booking_interval(booking)
        if intervals_overlap(start, end, b_start, b_end):
            conflicts.append(
                {
                    "type": "double_booking",
                    "message": f"Conflicts with an existing session at {booking['start_time']}",
                }
            )
            break

    cap = daily_cap(weekly, override)
    if windows and cap and len(blocking) >= cap and not any(c["type"] == "double_booking" for c in conflicts):
        conflicts.append({"type": "unavailable_time", "message": "Therapist is fully booked on this date"})

    return conflicts


def _check_interval(label: str, start: Any, end: Any, errors: list[str]) -> None:
    if not start or not end:
        errors.append(f"{label} is missing start or end time")
        return
    try:
        start_minutes = time_to_minutes(start)
        end_minutes = MINUTES_PER_DAY if end == "24:00" else time_to_minutes(end)
    except ValueError:
        errors.append(f"{label} has an invalid time format")
        return
    if start_minutes >= end_minutes:
        errors.append(f"{label} start time must be before end time")


def _check_positive(label: str, value: Any, errors: list[str]) -> None:
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool):
        errors.append(f"{label} must be a whole number")
    elif value <= 0:
        errors.append(f"{label} must be greater than 0")


def validate_weekly_availability(weekly: Any) -> dict[str, Any]:
    """Structural validation of a weekly schedule payload"""
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(weekly, dict):
        return {"is_valid": False, "errors": ["Availability must be an object"], "warnings": []}

    standard_hours = weekly.get("standardHours")
    if not isinstance(standard_hours, dict):
        errors.append("Standard hours are required")
        standard_hours = {}

    for name, day in standard_hours.items():
        if name not in DAY_NAMES:
            errors.append(f"Unknown day: {name}")
            continue
        if not isinstance(day, dict):
            errors.append(f"{name} must be an object")
            continue

        general = day.get("generalHours")
        if general and not isinstance(general, dict):
            errors.append(f"{name} general hours must be an object")
        elif general:
            _check_interval(f"{name} general hours", general.get("start"), general.get("end"), errors)
            _check_positive(f"{name} general hours session duration", general.get("sessionDuration"), errors)

        for key, label in (("timeSlots", "slot"), ("customSlots", "custom slot")):
            entries = day.get(key) or []
            if not isinstance(entries, list):
                errors.append(f"{name} {key} must be a list")
                continue
            for index, slot in enumerate(entries):
                slot_label = f"{name} {label} {index + 1}"
                if not isinstance(slot, dict):
                    errors.append(f"{slot_label} must be an object")
                    continue
                _check_interval(slot_label, slot.get("start"), slot.get("end"), errors)
                _check_positive(f"{slot_label} duration", slot.get("duration"), errors)
                _check_positive(f"{slot_label} max sessions", slot.get("maxSessions"), errors)

        has_hours = bool(general) or bool(day.get("timeSlots")) or bool(day.get("customSlots"))
        if day.get("enabled") and not has_hours:
            warnings.append(f"{name} is enabled but has no time slots")

    settings = weekly.get("sessionSettings")
    if not isinstance(settings, dict):
        errors.append("Session settings are required")
    else:
        duration = settings.get("sessionDuration")
        if duration is None:
            errors.append("Session duration is required")
        else:
            _check_positive("Session duration", duration, errors)
        buffer = settings.get("bufferTime", 0)
        if not isinstance(buffer, int) or isinstance(buffer, bool):
            errors.append("Buffer time must be a whole number")
        elif buffer < 0:
            errors.append("Buffer time cannot be negative")
        _check_positive("Max sessions per day", settings.get("maxSessionsPerDay"), errors)

    return {"is_valid": not errors, "errors": errors, "warnings": warnings}


def normalize_weekly_availability(weekly: dict) -> dict[str, Any]:
    """Fill in every weekday so stored schedules share one shape"""
    normalized = copy.deepcopy(weekly)
    hours = normalized.setdefault("standardHours", {})
    for name in DAY_NAMES:
        day = hours.setdefault(name, {"enabled": False})
        day.setdefault("enabled", False)
        day.setdefault("timeSlots", [])
        day.setdefault("customSlots", [])
    normalized["sessionSettings"] = session_settings(normalized)
    return normalized
