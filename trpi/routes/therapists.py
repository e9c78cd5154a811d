"""
Therapist Routes
Enrollment, own profile and the public directory of bookable therapists
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import require_therapist
from ..database import get_db
from ..domain.sessions.repository import SessionRepository
from ..models import TherapistProfile, User
from ..utils.sanitization import sanitize_list, sanitize_string
from ..utils.time_utils import clinic_now, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Therapists"])


class EnrollRequest(BaseModel):
    bio: Optional[str] = Field(None, max_length=5000)
    specializations: list[str] = Field(default_factory=list, max_length=20)
    licence_number: Optional[str] = Field(None, max_length=100)
    session_rate: Optional[float] = Field(None, ge=0)
    full_name: Optional[str] = Field(None, max_length=255)


def serialize_profile(user: User, profile: Optional[TherapistProfile]) -> dict:
    return {
        "id": user.id,
        "full_name": user.full_name,
        "email": user.email,
        "is_verified": user.is_verified,
        "is_active": user.is_active,
        "verification_status": profile.verification_status if profile else None,
        "bio": profile.bio if profile else None,
        "specializations": (profile.specializations or []) if profile else [],
        "licence_number": profile.licence_number if profile else None,
        "session_rate": profile.session_rate if profile else None,
        "phone": profile.phone if profile else None,
        "languages": (profile.languages or []) if profile else [],
        "gender": profile.gender if profile else None,
        "marital_status": profile.marital_status if profile else None,
        "age": profile.age if profile else None,
        "approved_at": profile.approved_at if profile else None,
    }


@router.post("/therapist/enroll")
async def enroll_therapist(
    data: EnrollRequest,
    current_user: User = Depends(require_therapist),
    db: Session = Depends(get_db),
):
    """Create or update the therapist profile; every submission goes back to review"""
    profile = db.query(TherapistProfile).filter(TherapistProfile.user_id == current_user.id).first()
    if profile is None:
        profile = TherapistProfile(user_id=current_user.id)
        db.add(profile)

    profile.bio = sanitize_string(data.bio)
    profile.specializations = sanitize_list(data.specializations)
    profile.licence_number = sanitize_string(data.licence_number)
    profile.session_rate = data.session_rate
    profile.verification_status = "pending"
    profile.approved_at = None
    if data.full_name:
        current_user.full_name = sanitize_string(data.full_name)

    db.commit()
    db.refresh(profile)
    logger.info(f"📝 Therapist {current_user.id} submitted enrollment for review")
    return {"success": True, "message": "Enrollment submitted for review", "profile": serialize_profile(current_user, profile)}


@router.get("/therapist/me")
async def get_my_profile(current_user: User = Depends(require_therapist), db: Session = Depends(get_db)):
    profile = db.query(TherapistProfile).filter(TherapistProfile.user_id == current_user.id).first()
    upcoming = SessionRepository.count_upcoming_for_therapist(db, current_user.id, clinic_now().date())
    return {
        "success": True,
        "profile": serialize_profile(current_user, profile),
        "is_approved": bool(profile and profile.verification_status == "approved"),
        "upcoming_sessions": upcoming,
    }


PROFILE_FIELDS = ("phone", "licence_number", "bio", "specializations", "languages", "gender", "marital_status", "age")


class ProfileUpdateRequest(BaseModel):
    """Post-enrollment edits; empty values leave the stored field untouched"""

    phone: Optional[str] = Field(None, max_length=50)
    licence_number: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=5000)
    specializations: Optional[list[str]] = Field(None, max_length=20)
    languages: Optional[list[str]] = Field(None, max_length=20)
    gender: Optional[Literal["male", "female", "other"]] = None
    marital_status: Optional[Literal["single", "married", "divorced", "widowed", "separated"]] = None
    age: Optional[int] = Field(None, ge=18, le=100)


def _comparable(value):
    if isinstance(value, list):
        return sorted(str(item) for item in value)
    return value


def _edit_tracking(profile: TherapistProfile) -> dict:
    return {
        "edited_fields": profile.edited_fields or [],
        "has_edits": bool(profile.edited_fields),
        "profile_updated_at": profile.profile_updated_at,
    }


@router.get("/therapist/profile")
async def get_profile(current_user: User = Depends(require_therapist), db: Session = Depends(get_db)):
    profile = db.query(TherapistProfile).filter(TherapistProfile.user_id == current_user.id).first()
    if profile is None:
        raise HTTPException(status_code=404, detail="Therapist profile not found. Complete enrollment first.")
    return {
        "success": True,
        "profile": serialize_profile(current_user, profile),
        "edit_tracking": _edit_tracking(profile),
        "original_enrollment_data": profile.original_enrollment_data,
    }


@router.put("/therapist/profile")
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(require_therapist),
    db: Session = Depends(get_db),
):
    """
    Edit an enrolled profile without sending it back to review.
    The profile as first enrolled is snapshotted on the first edit and
    edited_fields lists every field that now differs from that snapshot.
    """
    profile = db.query(TherapistProfile).filter(TherapistProfile.user_id == current_user.id).first()
    if profile is None:
        raise HTTPException(status_code=404, detail="Therapist profile not found. Complete enrollment first.")

    if profile.original_enrollment_data is None:
        profile.original_enrollment_data = {field: getattr(profile, field) for field in PROFILE_FIELDS}

    updated = []
    for field, value in data.model_dump(exclude_unset=True).items():
        if isinstance(value, str):
            value = sanitize_string(value)
        elif isinstance(value, list):
            value = sanitize_list(value)
        if value is None or value == "" or value == []:
            continue
        setattr(profile, field, value)
        updated.append(field)

    original = profile.original_enrollment_data
    profile.edited_fields = [
        field for field in PROFILE_FIELDS if _comparable(getattr(profile, field)) != _comparable(original.get(field))
    ]
    profile.profile_updated_at = utcnow()
    db.commit()
    db.refresh(profile)

    logger.info(f"📝 Therapist {current_user.id} updated profile fields {updated}")
    return {
        "success": True,
        "message": "Profile updated",
        "updated_fields": updated,
        "profile": serialize_profile(current_user, profile),
        "edit_tracking": _edit_tracking(profile),
    }


@router.get("/therapists")
async def list_therapists(db: Session = Depends(get_db)):
    """Public directory: active, verified therapists with an approved profile"""
    rows = (
        db.query(User, TherapistProfile)
        .join(TherapistProfile, TherapistProfile.user_id == User.id)
        .filter(
            User.user_type == "therapist",
            User.is_active.is_(True),
            User.is_verified.is_(True),
            TherapistProfile.verification_status == "approved",
        )
        .order_by(User.full_name.asc(), User.id.asc())
        .all()
    )
    therapists = []
    for user, profile in rows:
        entry = serialize_profile(user, profile)
        # Directory entries never expose contact or licence details
        entry.pop("email")
        entry.pop("licence_number")
        entry.pop("phone")
        therapists.append(entry)
    return {"success": True, "therapists": therapists, "total": len(therapists)}


def get_therapist_or_404(db: Session, therapist_id: int) -> tuple[User, TherapistProfile]:
    user = db.query(User).filter(User.id == therapist_id, User.user_type == "therapist").first()
    if not user:
        raise HTTPException(status_code=404, detail="Therapist not found")
    profile = db.query(TherapistProfile).filter(TherapistProfile.user_id == user.id).first()
    if not profile:
        raise HTTPException(status_code=404, detail="Therapist has not enrolled yet")
    return user, profile
