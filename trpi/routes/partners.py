"""
Partner Routes
Organisations that buy credits in bulk and hand them to their members
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..auth import require_partner
from ..config import MEMBER_IMPORT_MAX_BYTES
from ..database import get_db
from ..domain.credits.repository import CreditRepository
from ..domain.credits.schemas import AddMemberRequest, AssignCreditsRequest, BulkMembersRequest
from ..domain.credits.service import CreditService, serialize_credit
from ..models import User
from ..services.partner_member_service import attach_member, import_members, read_member_csv, serialize_member
from ..utils.time_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/partner", tags=["Partners"])


@router.post("/members", status_code=201)
async def add_member(
    data: AddMemberRequest,
    current_user: User = Depends(require_partner),
    db: Session = Depends(get_db),
):
    """Create a member account, or attach an existing individual account"""
    member, created = attach_member(db, current_user, data.email, data.full_name)
    return {"success": True, "created": created, "member": serialize_member(db, member)}


@router.post("/members/bulk")
async def add_members_bulk(
    data: BulkMembersRequest,
    current_user: User = Depends(require_partner),
    db: Session = Depends(get_db),
):
    """Add many members at once; invalid rows are reported, not fatal"""
    return {"success": True, **import_members(db, current_user, data.members)}


@router.post("/members/upload")
async def upload_members(
    file: UploadFile = File(...),
    current_user: User = Depends(require_partner),
    db: Session = Depends(get_db),
):
    """Add members from a CSV roster with an `email` column"""
    content = await file.read(MEMBER_IMPORT_MAX_BYTES + 1)
    if len(content) > MEMBER_IMPORT_MAX_BYTES:
        raise HTTPException(status_code=400, detail=f"File too large: limit is {MEMBER_IMPORT_MAX_BYTES} bytes")
    rows = read_member_csv(content)
    logger.info(f"📥 Partner {current_user.id} uploaded {file.filename} with {len(rows)} row(s)")
    return {"success": True, **import_members(db, current_user, rows)}


@router.get("/me")
async def get_partner_profile(current_user: User = Depends(require_partner), db: Session = Depends(get_db)):
    members = (
        db.query(User)
        .filter(User.partner_id == current_user.id)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    unassigned = CreditRepository.get_available_credits(db, current_user.id, utcnow())
    return {
        "success": True,
        "partner": {
            "id": current_user.id,
            "email": current_user.email,
            "full_name": current_user.full_name,
            "organization_name": current_user.organization_name,
        },
        "members": [serialize_member(db, m) for m in members],
        "total_members": len(members),
        "unassigned_credits": len(unassigned),
        "credits": [serialize_credit(c) for c in unassigned],
    }


@router.post("/assign-credits")
async def assign_credits(
    data: AssignCreditsRequest,
    current_user: User = Depends(require_partner),
    db: Session = Depends(get_db),
):
    """Move unused partner credits to a member"""
    result = CreditService(db).assign_to_member(current_user, data.member_id, data.count)
    return {"success": True, **result}
