"""Earnings repository - Database operations for earnings transactions"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import EarningsTransaction, TherapistProfile


class EarningsRepository:
    """Repository for earnings database operations"""

    @staticmethod
    def get_profile(db: Session, therapist_id: int) -> Optional[TherapistProfile]:
        return db.query(TherapistProfile).filter(TherapistProfile.user_id == therapist_id).first()

    @staticmethod
    def has_session_earnings(db: Session, session_id: int) -> bool:
        return (
            db.query(EarningsTransaction.id)
            .filter(
                EarningsTransaction.session_id == session_id,
                EarningsTransaction.transaction_type == "session_completion",
            )
            .first()
            is not None
        )

    @staticmethod
    def list_transactions(
        db: Session, therapist_id: int, start: datetime, end: datetime
    ) -> list[EarningsTransaction]:
        """Confirmed transactions calculated in [start, end)"""
        return (
            db.query(EarningsTransaction)
            .filter(
                EarningsTransaction.therapist_id == therapist_id,
                EarningsTransaction.status == "confirmed",
                EarningsTransaction.calculated_at >= start,
                EarningsTransaction.calculated_at < end,
            )
            .order_by(EarningsTransaction.calculated_at.asc(), EarningsTransaction.id.asc())
            .all()
        )
