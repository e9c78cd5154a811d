"""Availability domain schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class WeeklyAvailabilityRequest(BaseModel):
    """Weekly schedule payload, validated structurally by the engine"""

    availability: dict[str, Any]


class OverrideRequest(BaseModel):
    """Create or update the override for one date"""

    date: str
    is_available: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    session_duration: Optional[int] = Field(None, gt=0, le=480)
    session_type: Optional[str] = None
    max_sessions: Optional[int] = Field(None, gt=0, le=50)
    reason: Optional[str] = Field(None, max_length=500)


class OverrideResponse(BaseModel):
    id: int
    therapist_id: int
    date: str
    is_available: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    session_duration: int
    session_type: str
    max_sessions: int
    reason: Optional[str] = None


class SlotResponse(BaseModel):
    id: str
    date: str
    start_time: str
    end_time: str
    duration: int
    is_override: bool = False
    is_available: bool = True


class SlotsResponse(BaseModel):
    success: bool = True
    date: str
    therapist_id: int
    slots: list[SlotResponse]
    total_slots: int
    message: str


class AvailableDaysResponse(BaseModel):
    success: bool = True
    therapist_id: int
    start_date: str
    end_date: str
    available_days: list[str]
    total_days: int


class NextSlotResponse(BaseModel):
    success: bool = True
    therapist_id: int
    next_slot: Optional[SlotResponse] = None


class ConflictResponse(BaseModel):
    type: str
    message: str


class CheckAvailabilityResponse(BaseModel):
    available: bool
    conflicts: list[ConflictResponse]
