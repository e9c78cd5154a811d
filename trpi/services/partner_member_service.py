"""
Partner member service
Adds individual accounts to a partner organisation, one at a time or from
an uploaded roster, optionally handing each new member some credits.
"""

import csv
import io
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import MEMBER_IMPORT_MAX_ROWS
from ..domain.credits.repository import CreditRepository
from ..domain.credits.schemas import MemberImportRow
from ..models import User
from ..utils.sanitization import sanitize_string
from ..utils.time_utils import utcnow
from .notification_service import notify

logger = logging.getLogger(__name__)

IMPORT_FIELDS = set(MemberImportRow.model_fields)


def serialize_member(db: Session, member: User) -> dict:
    return {
        "id": member.id,
        "email": member.email,
        "full_name": member.full_name,
        "phone": member.phone,
        "is_verified": member.is_verified,
        "credits_available": len(CreditRepository.get_available_credits(db, member.id, utcnow())),
        "created_at": member.created_at,
    }


def _organisation(partner: User) -> str:
    return partner.organization_name or partner.full_name or "a partner organisation"


def attach_member(
    db: Session,
    partner: User,
    email: str,
    full_name: Optional[str] = None,
    phone: Optional[str] = None,
    onboarding_data: Optional[dict] = None,
) -> tuple[User, bool]:
    """Create a member account, or attach an existing individual account. Returns (member, created)"""
    member = db.query(User).filter(User.email == email).first()

    if member:
        if member.user_type != "individual":
            raise HTTPException(status_code=409, detail="This email belongs to a non-individual account")
        if member.partner_id and member.partner_id != partner.id:
            raise HTTPException(status_code=409, detail="This user is already a member of another partner")
        member.partner_id = partner.id
        if full_name and not member.full_name:
            member.full_name = sanitize_string(full_name)
        if phone and not member.phone:
            member.phone = sanitize_string(phone)
        created = False
    else:
        member = User(
            email=email,
            full_name=sanitize_string(full_name),
            phone=sanitize_string(phone),
            onboarding_data=onboarding_data or None,
            user_type="individual",
            is_active=True,
            is_verified=False,
            partner_id=partner.id,
        )
        db.add(member)
        created = True

    db.commit()
    db.refresh(member)
    logger.info(f"🤝 Partner {partner.id} {'created' if created else 'attached'} member {member.id}")

    notify(
        db,
        member.id,
        "Welcome",
        f"You were added as a member of {_organisation(partner)}.",
        "partner_member_added",
        {"partner_id": partner.id},
    )
    return member, created


def _clean_row(raw: dict[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for key, value in raw.items():
        # DictReader files surplus cells under a None key
        if not isinstance(key, str) or not key.strip():
            continue
        if isinstance(value, str):
            value = value.strip()
        if value in ("", None):
            continue
        cleaned[key.strip().lower().replace(" ", "_")] = value
    return cleaned


def _row_error(row_number: int, field: str, message: str) -> dict:
    return {"row": row_number, "field": field, "message": message}


def import_members(db: Session, partner: User, rows: list[dict[str, Any]], now: Optional[datetime] = None) -> dict:
    """
    Add every valid row as a member of `partner`.

    Rows are numbered as they appear in a spreadsheet with a header line, so
    the first data row is row 2. A row whose credits cannot be assigned is
    still imported; the shortfall is reported as an error for that row.
    """
    if len(rows) > MEMBER_IMPORT_MAX_ROWS:
        raise HTTPException(status_code=400, detail=f"Too many rows: at most {MEMBER_IMPORT_MAX_ROWS} members per import")

    now = now or utcnow()
    errors: list[dict] = []
    members: list[dict] = []
    seen: set[str] = set()
    created_count = 0
    credits_assigned = 0

    for index, raw in enumerate(rows):
        row_number = index + 2
        cleaned = _clean_row(raw)
        try:
            row = MemberImportRow.model_validate(cleaned)
        except ValidationError as e:
            for err in e.errors():
                field = str(err["loc"][0]) if err.get("loc") else "row"
                errors.append(_row_error(row_number, field, err["msg"]))
            continue

        if row.email in seen:
            errors.append(_row_error(row_number, "email", "Duplicate email in this import"))
            continue
        seen.add(row.email)

        existing = db.query(User).filter(User.email == row.email).first()
        if existing and existing.partner_id == partner.id:
            errors.append(_row_error(row_number, "email", "Already a member of your organisation"))
            continue

        extra = {key: value for key, value in cleaned.items() if key not in IMPORT_FIELDS}
        try:
            member, created = attach_member(db, partner, row.email, row.full_name, row.phone, extra)
        except HTTPException as e:
            errors.append(_row_error(row_number, "email", e.detail))
            continue
        created_count += int(created)

        if row.credits:
            if CreditRepository.transfer_credits(db, partner.id, member.id, row.credits, now):
                db.commit()
                credits_assigned += row.credits
                notify(
                    db,
                    member.id,
                    "Credits assigned",
                    f"{_organisation(partner)} assigned you {row.credits} session credit(s).",
                    "credits_assigned",
                    {"count": row.credits, "partner_id": partner.id},
                )
            else:
                db.rollback()
                errors.append(_row_error(row_number, "credits", f"Not enough partner credits to assign {row.credits}"))

        members.append(serialize_member(db, member))

    logger.info(
        f"📥 Partner {partner.id} imported {len(members)}/{len(rows)} member(s), {len(errors)} error(s)"
    )
    return {
        "total_rows": len(rows),
        "imported": len(members),
        "created": created_count,
        "attached": len(members) - created_count,
        "credits_assigned": credits_assigned,
        "errors": errors,
        "members": members,
    }


def read_member_csv(content: bytes) -> list[dict[str, Any]]:
    """Parse an uploaded roster. Raises HTTPException(400) for unreadable files"""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded CSV") from e

    try:
        reader = csv.DictReader(io.StringIO(text))
        headers = [h.strip().lower() for h in (reader.fieldnames or []) if h]
        if "email" not in headers:
            raise HTTPException(status_code=400, detail="CSV must have an 'email' column")
        rows = list(reader)
    except csv.Error as e:
        raise HTTPException(status_code=400, detail=f"Could not parse CSV: {e}") from e

    if not rows:
        raise HTTPException(status_code=400, detail="CSV has no member rows")
    return rows
