"""Credit domain schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class GrantCreditsRequest(BaseModel):
    """Admin grant, the manual stand-in for a completed payment"""

    user_id: int
    count: int = Field(1, ge=1, le=100)
    is_free_credit: bool = False
    expires_in_days: Optional[int] = Field(None, ge=1, le=730)
    session_duration_minutes: int = Field(60, gt=0, le=240)


class AddMemberRequest(BaseModel):
    email: str
    full_name: Optional[str] = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email address")
        return v


class AssignCreditsRequest(BaseModel):
    member_id: int
    count: int = Field(..., ge=1, le=100)


class CreditSummaryResponse(BaseModel):
    total_credits: int
    free_credits: int
    paid_credits: int
    credits_used: int
    credits_available: int
    next_expiring_credit: Optional[dict] = None


class MemberImportRow(AddMemberRequest):
    """One row of a bulk member import; unknown columns are kept as onboarding data"""

    phone: Optional[str] = Field(None, max_length=50)
    credits: Optional[int] = Field(None, ge=0, le=100)


class BulkMembersRequest(BaseModel):
    members: list[dict[str, Any]] = Field(..., min_length=1)
