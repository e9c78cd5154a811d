"""Credit repository - Database operations for session credits"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session, joinedload

from ...models import SessionCredit, TherapySession

logger = logging.getLogger(__name__)


def _available_filter(query, now: datetime):
    return query.filter(
        SessionCredit.used_at.is_(None),
        or_(SessionCredit.expires_at.is_(None), SessionCredit.expires_at > now),
    )


# Soonest-expiring first, non-expiring last
_EXPIRY_ORDER = (
    case((SessionCredit.expires_at.is_(None), 1), else_=0),
    SessionCredit.expires_at.asc(),
    SessionCredit.id.asc(),
)

# Free credits first, then by expiry
_CONSUMPTION_ORDER = (SessionCredit.is_free_credit.desc(), *_EXPIRY_ORDER)


class CreditRepository:
    """Repository for credit database operations"""

    @staticmethod
    def get_available_credits(db: Session, user_id: int, now: datetime) -> list[SessionCredit]:
        query = db.query(SessionCredit).filter(SessionCredit.user_id == user_id)
        return _available_filter(query, now).order_by(*_CONSUMPTION_ORDER).all()

    @staticmethod
    def get_all_credits(db: Session, user_id: int) -> list[SessionCredit]:
        return db.query(SessionCredit).filter(SessionCredit.user_id == user_id).all()

    @staticmethod
    def get_used_credits(db: Session, user_id: int, limit: int = 20) -> list[SessionCredit]:
        return (
            db.query(SessionCredit)
            .options(joinedload(SessionCredit.session))
            .filter(SessionCredit.user_id == user_id, SessionCredit.used_at.isnot(None))
            .order_by(SessionCredit.used_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_credit(db: Session, credit_id: int) -> Optional[SessionCredit]:
        return db.query(SessionCredit).filter(SessionCredit.id == credit_id).first()

    @staticmethod
    def claim_next_credit(db: Session, user_id: int, now: datetime) -> Optional[SessionCredit]:
        """Mark the user's next available credit used, or return None when none is left.

        The conditional UPDATE only matches an unused row, so a credit taken by a
        concurrent booking is skipped and the next one is tried. Caller commits.
        """
        skipped: list[int] = []
        while True:
            query = db.query(SessionCredit).filter(SessionCredit.user_id == user_id)
            if skipped:
                query = query.filter(SessionCredit.id.notin_(skipped))
            credit = (
                _available_filter(query, now)
                .order_by(*_CONSUMPTION_ORDER)
                .with_for_update(skip_locked=True)
                .first()
            )
            if credit is None:
                return None

            claimed = (
                db.query(SessionCredit)
                .filter(SessionCredit.id == credit.id, SessionCredit.used_at.is_(None))
                .update({SessionCredit.used_at: now}, synchronize_session=False)
            )
            if claimed == 1:
                db.expire(credit, ["used_at"])
                return credit
            logger.warning(f"⚠️ Credit {credit.id} was claimed concurrently, trying the next one")
            skipped.append(credit.id)

    @staticmethod
    def attach_credit(credit: SessionCredit, session: TherapySession) -> None:
        """Link a claimed credit and the session it paid for (caller commits)"""
        credit.session_id = session.id
        session.credit_id = credit.id

    @staticmethod
    def transfer_credits(db: Session, owner_id: int, recipient_id: int, count: int, now: datetime) -> list[int]:
        """Move `count` unused credits, soonest-expiring first, to another user.

        Returns the moved ids, or an empty list when fewer than `count` could be
        moved. Caller commits, or rolls back on an empty result.
        """
        query = db.query(SessionCredit.id).filter(SessionCredit.user_id == owner_id)
        ids = [
            row.id
            for row in _available_filter(query, now).order_by(*_EXPIRY_ORDER).limit(count).with_for_update().all()
        ]
        if len(ids) < count:
            return []
        moved = (
            db.query(SessionCredit)
            .filter(
                SessionCredit.id.in_(ids),
                SessionCredit.user_id == owner_id,
                SessionCredit.used_at.is_(None),
            )
            .update({SessionCredit.user_id: recipient_id, SessionCredit.partner_id: owner_id}, synchronize_session=False)
        )
        return ids if moved == count else []

    @staticmethod
    def restore_credit(credit: SessionCredit, session: TherapySession) -> None:
        """Return a consumed credit to its owner (caller commits)"""
        credit.used_at = None
        credit.session_id = None
        session.credit_id = None

    @staticmethod
    def create_credits(
        db: Session,
        user_id: int,
        count: int,
        is_free_credit: bool = False,
        expires_at: Optional[datetime] = None,
        session_duration_minutes: int = 60,
        partner_id: Optional[int] = None,
    ) -> list[SessionCredit]:
        credits = [
            SessionCredit(
                user_id=user_id,
                partner_id=partner_id,
                is_free_credit=is_free_credit,
                expires_at=expires_at,
                session_duration_minutes=session_duration_minutes,
            )
            for _ in range(count)
        ]
        db.add_all(credits)
        db.commit()
        for credit in credits:
            db.refresh(credit)
        return credits
