"""Credit service - Credit balances, grants and partner allocation"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import SessionCredit, User
from ...services.notification_service import notify
from ...utils.time_utils import utcnow
from .repository import CreditRepository
from .schemas import GrantCreditsRequest

logger = logging.getLogger(__name__)


def serialize_credit(credit: SessionCredit) -> dict:
    return {
        "id": credit.id,
        "is_free_credit": credit.is_free_credit,
        "session_duration_minutes": credit.session_duration_minutes,
        "expires_at": credit.expires_at,
        "used_at": credit.used_at,
        "session_id": credit.session_id,
        "partner_id": credit.partner_id,
    }


class CreditService:
    """Service layer for credit business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CreditRepository()

    def get_summary(self, user: User, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        all_credits = self.repo.get_all_credits(self.db, user.id)
        available = self.repo.get_available_credits(self.db, user.id, now)
        expiring = [c for c in available if c.expires_at is not None]
        next_expiring = min(expiring, key=lambda c: c.expires_at) if expiring else None

        return {
            "total_credits": len(all_credits),
            "free_credits": sum(1 for c in available if c.is_free_credit),
            "paid_credits": sum(1 for c in available if not c.is_free_credit),
            "credits_used": sum(1 for c in all_credits if c.used_at is not None),
            "credits_available": len(available),
            "next_expiring_credit": serialize_credit(next_expiring) if next_expiring else None,
        }

    def get_usage(self, user: User, limit: int = 20) -> list[dict]:
        usage = []
        for credit in self.repo.get_used_credits(self.db, user.id, limit):
            entry = serialize_credit(credit)
            session = credit.session
            entry["session"] = (
                {
                    "id": session.id,
                    "therapist_id": session.therapist_id,
                    "session_date": session.session_date.isoformat(),
                    "start_time": session.start_time,
                    "status": session.status,
                }
                if session
                else None
            )
            usage.append(entry)
        return usage

    def grant_credits(self, admin: User, data: GrantCreditsRequest) -> list[SessionCredit]:
        user = self.db.query(User).filter(User.id == data.user_id).first()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        if user.user_type not in ("individual", "partner"):
            raise HTTPException(status_code=400, detail="Credits can only be granted to individuals or partners")

        expires_at = utcnow() + timedelta(days=data.expires_in_days) if data.expires_in_days else None
        credits = self.repo.create_credits(
            self.db,
            user.id,
            data.count,
            is_free_credit=data.is_free_credit,
            expires_at=expires_at,
            session_duration_minutes=data.session_duration_minutes,
            # Credits bought by a partner remember their issuer through reassignment
            partner_id=user.id if user.user_type == "partner" else None,
        )
        logger.info(f"💳 Admin {admin.id} granted {data.count} credit(s) to user {user.id}")
        notify(
            self.db,
            user.id,
            "Credits added",
            f"{data.count} session credit(s) were added to your account.",
            "credits_granted",
            {"count": data.count},
        )
        return credits

    def assign_to_member(self, partner: User, member_id: int, count: int, now: Optional[datetime] = None) -> dict:
        """Move a partner's unused credits, soonest-expiring first, to one of its members"""
        now = now or utcnow()
        member = (
            self.db.query(User)
            .filter(User.id == member_id, User.partner_id == partner.id, User.user_type == "individual")
            .first()
        )
        if not member:
            raise HTTPException(status_code=404, detail="Member not found for this partner")

        available = len(self.repo.get_available_credits(self.db, partner.id, now))
        if available < count or not self.repo.transfer_credits(self.db, partner.id, member.id, count, now):
            self.db.rollback()
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient credits: {available} available, {count} requested",
            )
        self.db.commit()
        logger.info(f"🤝 Partner {partner.id} assigned {count} credit(s) to member {member.id}")

        notify(
            self.db,
            member.id,
            "Credits assigned",
            f"{partner.organization_name or partner.full_name or 'Your organisation'} assigned you {count} session credit(s).",
            "credits_assigned",
            {"count": count, "partner_id": partner.id},
        )
        return {
            "member_id": member.id,
            "assigned": count,
            "partner_credits_remaining": available - count,
        }
