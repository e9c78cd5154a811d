"""Availability router - public slot lookup and therapist schedule management"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ...auth import require_therapist
from ...database import get_db
from ...models import User
from ...rate_limiter import rate_limit_public_availability
from ...utils.time_utils import month_bounds
from .schemas import (
    AvailableDaysResponse,
    CheckAvailabilityResponse,
    NextSlotResponse,
    OverrideRequest,
    SlotsResponse,
    WeeklyAvailabilityRequest,
)
from .service import AvailabilityService, parse_date_param, parse_time_param

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])
therapist_router = APIRouter(prefix="/therapist", tags=["Therapist Availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


def _no_store(response: Response) -> None:
    # Slot lists change with every booking
    response.headers["Cache-Control"] = "no-store"


# ============================================================================
# PUBLIC LOOKUPS
# ============================================================================


@router.get("/slots", response_model=SlotsResponse)
async def get_available_slots(
    response: Response,
    therapist_id: int = Query(...),
    date: Optional[str] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(rate_limit_public_availability),
):
    """Bookable slots for one therapist on one date"""
    _no_store(response)
    slot_date = parse_date_param(date)
    return service.get_available_slots(therapist_id, slot_date)


@router.get("/days", response_model=AvailableDaysResponse)
async def get_available_days(
    response: Response,
    therapist_id: int = Query(...),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    month: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(rate_limit_public_availability),
):
    """Dates in a range (or a calendar month) that still have at least one slot"""
    _no_store(response)
    if month is not None and year is not None:
        try:
            start, end = month_bounds(year, month)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    else:
        start = parse_date_param(start_date, "start_date")
        end = parse_date_param(end_date, "end_date")
    return service.get_available_days(therapist_id, start, end)


@router.get("/next-slot", response_model=NextSlotResponse)
async def get_next_available_slot(
    response: Response,
    therapist_id: int = Query(...),
    start_date: Optional[str] = Query(None),
    days: int = Query(14, ge=1, le=62),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(rate_limit_public_availability),
):
    _no_store(response)
    start = parse_date_param(start_date, "start_date") if start_date else None
    return service.get_next_available_slot(therapist_id, start, days)


@router.get("/overrides")
async def get_public_overrides(
    therapist_id: int = Query(...),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(rate_limit_public_availability),
):
    service.get_bookable_therapist(therapist_id)
    start = parse_date_param(start_date, "start_date") if start_date else None
    end = parse_date_param(end_date, "end_date") if end_date else None
    return {"success": True, "overrides": service.list_overrides(therapist_id, start, end)}


# ============================================================================
# THERAPIST SCHEDULE MANAGEMENT
# ============================================================================


@therapist_router.get("/availability/weekly")
async def get_weekly_availability(
    current_user: User = Depends(require_therapist),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_weekly_availability(current_user)


@therapist_router.post("/availability/weekly")
async def save_weekly_availability(
    data: WeeklyAvailabilityRequest,
    current_user: User = Depends(require_therapist),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Replace the therapist's weekly schedule"""
    return service.save_weekly_availability(current_user, data.availability)


@therapist_router.get("/availability/override")
async def list_overrides(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    current_user: User = Depends(require_therapist),
    service: AvailabilityService = Depends(get_availability_service),
):
    start = parse_date_param(start_date, "start_date") if start_date else None
    end = parse_date_param(end_date, "end_date") if end_date else None
    return {"success": True, "overrides": service.list_overrides(current_user.id, start, end)}


@therapist_router.post("/availability/override")
async def save_override(
    data: OverrideRequest,
    current_user: User = Depends(require_therapist),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Create or update the override for a single date"""
    return service.save_override(current_user, data)


@therapist_router.delete("/availability/override/{override_id}")
async def delete_override(
    override_id: int,
    current_user: User = Depends(require_therapist),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.delete_override(current_user, override_id)


@therapist_router.get("/check-availability", response_model=CheckAvailabilityResponse)
async def check_availability(
    date: Optional[str] = Query(None),
    start_time: Optional[str] = Query(None),
    duration: int = Query(60),
    current_user: User = Depends(require_therapist),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Would a session at this time conflict with the schedule or existing bookings?"""
    slot_date = parse_date_param(date)
    start = parse_time_param(start_time)
    return service.check_availability(current_user.id, slot_date, start, duration)
