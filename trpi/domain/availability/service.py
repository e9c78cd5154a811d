"""Availability service - Slot resolution and schedule management"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import AvailabilityCache, availability_cache
from ...config import BOOKING_LEAD_TIME_MINUTES, MAX_AVAILABILITY_RANGE_DAYS
from ...models import AvailabilityOverride, TherapySession, User
from ...utils.sanitization import sanitize_string
from ...utils.time_utils import (
    clinic_now,
    date_range,
    filter_out_past_slots,
    normalize_time,
    parse_date,
    time_to_minutes,
)
from . import engine
from .repository import AvailabilityRepository
from .schemas import OverrideRequest

logger = logging.getLogger(__name__)


def parse_date_param(value: Optional[str], field: str = "date") -> date:
    """Parse a required date query value, mapping failures to 400"""
    if not value:
        raise HTTPException(status_code=400, detail=f"{field} is required")
    try:
        return parse_date(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def parse_time_param(value: Optional[str], field: str = "start_time") -> str:
    if not value:
        raise HTTPException(status_code=400, detail=f"{field} is required")
    try:
        return normalize_time(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def serialize_override(override: AvailabilityOverride) -> dict[str, Any]:
    return {
        "id": override.id,
        "therapist_id": override.therapist_id,
        "date": override.override_date.isoformat(),
        "is_available": override.is_available,
        "start_time": override.start_time,
        "end_time": override.end_time,
        "session_duration": override.session_duration,
        "session_type": override.session_type,
        "max_sessions": override.max_sessions,
        "reason": override.reason,
    }


def booking_view(session: TherapySession) -> dict[str, Any]:
    return {
        "start_time": session.start_time,
        "end_time": session.end_time,
        "duration_minutes": session.duration_minutes,
        "status": session.status,
    }


class AvailabilityService:
    """Service layer for availability resolution"""

    def __init__(self, db: Session, cache: AvailabilityCache = availability_cache):
        self.db = db
        self.repo = AvailabilityRepository()
        self.cache = cache

    # ------------------------------------------------------------------
    # Configuration loading
    # ------------------------------------------------------------------

    def load_configuration(self, therapist_id: int) -> dict[str, Any]:
        """Weekly schedule plus override map, served from the cache when fresh"""
        bundle = self.cache.get(therapist_id)
        if bundle is not None:
            return bundle

        schedule = self.repo.get_weekly_schedule(self.db, therapist_id)
        overrides = self.repo.get_overrides(self.db, therapist_id)
        bundle = {
            "weekly": schedule.weekly_availability if schedule else None,
            "overrides": {o.override_date.isoformat(): serialize_override(o) for o in overrides},
        }
        self.cache.set(therapist_id, bundle)
        return bundle

    def get_bookable_therapist(self, therapist_id: int) -> User:
        therapist = self.repo.get_bookable_therapist(self.db, therapist_id)
        if not therapist:
            raise HTTPException(status_code=404, detail="Therapist not found or not available for bookings")
        return therapist

    # ------------------------------------------------------------------
    # Slot resolution
    # ------------------------------------------------------------------

    def _resolve_slots(
        self,
        bundle: dict[str, Any],
        slot_date: date,
        bookings: list[dict[str, Any]],
        now: datetime,
    ) -> list[dict[str, Any]]:
        weekly = bundle["weekly"]
        override = bundle["overrides"].get(slot_date.isoformat())
        slots = engine.generate_slots_for_date(weekly, override, slot_date)
        slots = engine.remove_booked_slots(slots, bookings)
        slots = engine.apply_daily_cap(slots, bookings, engine.daily_cap(weekly, override))
        return filter_out_past_slots(slots, now, BOOKING_LEAD_TIME_MINUTES)

    def get_available_slots(self, therapist_id: int, slot_date: date, now: Optional[datetime] = None) -> dict:
        self.get_bookable_therapist(therapist_id)
        now = now or clinic_now()

        bundle = self.load_configuration(therapist_id)
        bookings = [booking_view(s) for s in self.repo.get_blocking_sessions(self.db, therapist_id, slot_date)]
        slots = self._resolve_slots(bundle, slot_date, bookings, now)

        logger.info(f"📅 Therapist {therapist_id} on {slot_date}: {len(slots)} slots ({len(bookings)} booked)")
        return {
            "success": True,
            "date": slot_date.isoformat(),
            "therapist_id": therapist_id,
            "slots": slots,
            "total_slots": len(slots),
            "message": f"Found {len(slots)} available slots" if slots else "No available slots for this date",
        }

    def _bookings_by_date(self, therapist_id: int, start: date, end: date) -> dict[str, list[dict]]:
        grouped: dict[str, list[dict]] = defaultdict(list)
        for session in self.repo.get_blocking_sessions(self.db, therapist_id, start, end):
            grouped[session.session_date.isoformat()].append(booking_view(session))
        return grouped

    def get_available_days(
        self, therapist_id: int, start: date, end: date, now: Optional[datetime] = None
    ) -> dict:
        if end < start:
            raise HTTPException(status_code=400, detail="end_date must be on or after start_date")
        self.get_bookable_therapist(therapist_id)
        now = now or clinic_now()

        max_end = start + timedelta(days=MAX_AVAILABILITY_RANGE_DAYS - 1)
        if end > max_end:
            logger.info(f"✂️ Capping availability range {start}..{end} to {max_end}")
            end = max_end

        # Nothing before today can be booked
        first_day = max(start, now.date())
        bundle = self.load_configuration(therapist_id)
        bookings = self._bookings_by_date(therapist_id, first_day, end) if first_day <= end else {}

        available_days = [
            day.isoformat()
            for day in date_range(first_day, end)
            if self._resolve_slots(bundle, day, bookings.get(day.isoformat(), []), now)
        ]
        return {
            "success": True,
            "therapist_id": therapist_id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "available_days": available_days,
            "total_days": len(available_days),
        }

    def get_next_available_slot(
        self, therapist_id: int, start: Optional[date] = None, days: int = 14, now: Optional[datetime] = None
    ) -> dict:
        self.get_bookable_therapist(therapist_id)
        now = now or clinic_now()
        days = max(1, min(days, MAX_AVAILABILITY_RANGE_DAYS))

        first_day = max(start or now.date(), now.date())
        end = first_day + timedelta(days=days - 1)
        bundle = self.load_configuration(therapist_id)
        bookings = self._bookings_by_date(therapist_id, first_day, end)

        for day in date_range(first_day, end):
            slots = self._resolve_slots(bundle, day, bookings.get(day.isoformat(), []), now)
            if slots:
                return {"success": True, "therapist_id": therapist_id, "next_slot": slots[0]}
        return {"success": True, "therapist_id": therapist_id, "next_slot": None}

    def check_slot(
        self,
        therapist_id: int,
        slot_date: date,
        start_time: str,
        duration: int,
        exclude_session_id: Optional[int] = None,
    ) -> list[dict[str, str]]:
        """Conflicts for a proposed booking, always against live sessions"""
        bundle = self.load_configuration(therapist_id)
        override = bundle["overrides"].get(slot_date.isoformat())
        bookings = [
            booking_view(s)
            for s in self.repo.get_blocking_sessions(self.db, therapist_id, slot_date, exclude_session_id=exclude_session_id)
        ]
        return engine.check_slot_conflicts(bundle["weekly"], override, bookings, slot_date, start_time, duration)

    def check_availability(self, therapist_id: int, slot_date: date, start_time: str, duration: int) -> dict:
        if duration <= 0:
            raise HTTPException(status_code=400, detail="Duration must be greater than 0")
        conflicts = self.check_slot(therapist_id, slot_date, start_time, duration)
        return {"available": not conflicts, "conflicts": conflicts}

    def default_session_duration(self, therapist_id: int) -> int:
        bundle = self.load_configuration(therapist_id)
        duration = engine.session_settings(bundle["weekly"])["sessionDuration"]
        return engine.positive_int(duration) or engine.DEFAULT_SESSION_SETTINGS["sessionDuration"]

    # ------------------------------------------------------------------
    # Therapist management
    # ------------------------------------------------------------------

    def ensure_can_manage(self, therapist: User) -> None:
        profile = self.repo.get_profile(self.db, therapist.id)
        if not profile:
            raise HTTPException(
                status_code=404,
                detail={"code": "PROFILE_MISSING", "message": "Complete your therapist enrollment first"},
            )
        if not therapist.is_active or not therapist.is_verified:
            raise HTTPException(
                status_code=403,
                detail={"code": "NOT_APPROVED", "message": "Your account must be verified to manage availability"},
            )

    def get_weekly_availability(self, therapist: User) -> dict:
        schedule = self.repo.get_weekly_schedule(self.db, therapist.id)
        if not schedule:
            return {"success": True, "availability": engine.default_weekly_availability(), "is_default": True}
        return {
            "success": True,
            "availability": schedule.weekly_availability,
            "is_default": False,
            "updated_at": schedule.updated_at,
        }

    def save_weekly_availability(self, therapist: User, availability: dict) -> dict:
        validation = engine.validate_weekly_availability(availability)
        if not validation["is_valid"]:
            logger.warning(f"⚠️ Invalid weekly availability from therapist {therapist.id}: {validation['errors']}")
            raise HTTPException(
                status_code=400,
                detail={"message": "Invalid availability", "errors": validation["errors"]},
            )

        self.ensure_can_manage(therapist)
        schedule = self.repo.upsert_weekly_schedule(
            self.db, therapist.id, engine.normalize_weekly_availability(availability)
        )
        self.cache.invalidate_therapist_availability(therapist.id)

        logger.info(f"✅ Weekly availability saved for therapist {therapist.id}")
        return {
            "success": True,
            "message": "Availability saved",
            "availability": schedule.weekly_availability,
            "warnings": validation["warnings"],
        }

    def list_overrides(self, therapist_id: int, start: Optional[date] = None, end: Optional[date] = None) -> list:
        return [serialize_override(o) for o in self.repo.get_overrides(self.db, therapist_id, start, end)]

    def save_override(self, therapist: User, data: OverrideRequest) -> dict:
        override_date = parse_date_param(data.date)

        if data.is_available:
            start_time = parse_time_param(data.start_time, "start_time")
            end_time = parse_time_param(data.end_time, "end_time")
            if time_to_minutes(start_time) >= time_to_minutes(end_time):
                raise HTTPException(status_code=400, detail="start_time must be before end_time")
            fields = {
                "is_available": True,
                "start_time": start_time,
                "end_time": end_time,
                "session_duration": data.session_duration or engine.DEFAULT_OVERRIDE_DURATION,
                "session_type": data.session_type or "individual",
                "max_sessions": data.max_sessions or 1,
            }
        else:
            fields = {
                "is_available": False,
                "start_time": None,
                "end_time": None,
                "session_duration": data.session_duration or engine.DEFAULT_OVERRIDE_DURATION,
                "session_type": data.session_type or "individual",
                "max_sessions": data.max_sessions or 1,
            }
        fields["reason"] = sanitize_string(data.reason)

        self.ensure_can_manage(therapist)
        override = self.repo.save_override(self.db, therapist.id, override_date, **fields)
        self.cache.invalidate_therapist_availability(therapist.id)

        state = "available" if override.is_available else "blocked"
        logger.info(f"✅ Override saved for therapist {therapist.id} on {override_date} ({state})")
        return {"success": True, "override": serialize_override(override)}

    def delete_override(self, therapist: User, override_id: int) -> dict:
        override = self.repo.get_override_by_id(self.db, override_id)
        if not override:
            raise HTTPException(status_code=404, detail="Override not found")
        if override.therapist_id != therapist.id:
            raise HTTPException(status_code=403, detail="You can only delete your own overrides")

        self.repo.delete_override(self.db, override)
        self.cache.invalidate_therapist_availability(therapist.id)
        logger.info(f"🗑️ Override {override_id} deleted for therapist {therapist.id}")
        return {"success": True, "message": "Override deleted"}
