"""
Admin Routes
Therapist approval workflow
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..cache import invalidate_therapist_availability
from ..database import get_db
from ..models import User
from ..services.notification_service import notify
from ..utils.time_utils import utcnow
from .therapists import get_therapist_or_404, serialize_profile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/therapists/{therapist_id}/approve")
async def approve_therapist(
    therapist_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Approve a therapist so they appear in the directory and can be booked"""
    user, profile = get_therapist_or_404(db, therapist_id)
    profile.verification_status = "approved"
    profile.approved_at = utcnow()
    user.is_verified = True
    user.is_active = True
    db.commit()
    invalidate_therapist_availability(user.id)
    logger.info(f"✅ Admin {current_user.id} approved therapist {user.id}")

    notify(
        db,
        user.id,
        "Profile approved",
        "Your therapist profile has been approved. Patients can now book sessions with you.",
        "therapist_approved",
    )
    return {"success": True, "message": "Therapist approved", "therapist": serialize_profile(user, profile)}


@router.post("/therapists/{therapist_id}/unapprove")
async def unapprove_therapist(
    therapist_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user, profile = get_therapist_or_404(db, therapist_id)
    profile.verification_status = "rejected"
    profile.approved_at = None
    db.commit()
    invalidate_therapist_availability(user.id)
    logger.info(f"🚫 Admin {current_user.id} unapproved therapist {user.id}")

    notify(
        db,
        user.id,
        "Profile approval withdrawn",
        "Your therapist profile is no longer approved for bookings. Please contact support.",
        "therapist_unapproved",
    )
    return {"success": True, "message": "Therapist unapproved", "therapist": serialize_profile(user, profile)}
