"""Session domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

SESSION_TYPES = ("video", "audio", "chat")


class BookSessionRequest(BaseModel):
    """Schema for a patient booking a slot"""

    therapist_id: int
    session_date: str
    start_time: str
    duration: Optional[int] = Field(None, gt=0, le=240)
    session_type: str = "video"
    title: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("session_type")
    @classmethod
    def validate_session_type(cls, v):
        if v not in SESSION_TYPES:
            raise ValueError(f"session_type must be one of {', '.join(SESSION_TYPES)}")
        return v


class ScheduleNextSessionRequest(BaseModel):
    """Therapist proposes a follow-up session for an existing patient"""

    user_id: int
    session_date: str
    start_time: str
    duration: Optional[int] = Field(None, gt=0, le=240)
    session_type: str = "video"
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("session_type")
    @classmethod
    def validate_session_type(cls, v):
        if v not in SESSION_TYPES:
            raise ValueError(f"session_type must be one of {', '.join(SESSION_TYPES)}")
        return v


class ApproveSessionRequest(BaseModel):
    session_id: int


class CancelSessionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CompleteSessionRequest(BaseModel):
    therapist_notes: Optional[str] = Field(None, max_length=5000)


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class SessionStatusResponse(BaseModel):
    session_id: int
    status: str
    effective_status: str
    can_join: bool
    seconds_until_start: int
    seconds_remaining: Optional[int] = None
    label: str
