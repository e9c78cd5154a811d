"""Earnings service - per-session therapist earnings and period reports"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import DEFAULT_SESSION_RATE_NGN, PLATFORM_FEE_RATE
from ...models import EarningsTransaction, User
from ...utils.time_utils import month_bounds, utcnow
from ..sessions.repository import SessionRepository
from .repository import EarningsRepository

logger = logging.getLogger(__name__)

# Added to the therapist's net earnings as-is
ADJUSTMENT_TYPES = ("adjustment", "bonus", "refund")


def _to_kobo(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_session_amount(session_rate: Optional[float], fee_rate: float = PLATFORM_FEE_RATE) -> dict:
    """
    Split a session's price into the platform fee and the therapist's share.
    All amounts are integer kobo; the fee rounds half up.
    """
    amount = _to_kobo(session_rate if session_rate else DEFAULT_SESSION_RATE_NGN)
    fee = int((Decimal(amount) * Decimal(str(fee_rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return {"session_amount_kobo": amount, "platform_fee_kobo": fee, "therapist_earnings_kobo": amount - fee}


def serialize_transaction(tx: EarningsTransaction) -> dict:
    return {
        "id": tx.id,
        "session_id": tx.session_id,
        "transaction_type": tx.transaction_type,
        "amount_kobo": tx.amount_kobo,
        "currency": tx.currency,
        "status": tx.status,
        "calculated_at": tx.calculated_at,
    }


class EarningsService:
    """Service layer for therapist earnings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EarningsRepository()
        self.sessions = SessionRepository()

    def calculate_session_earnings(self, actor: User, session_id: int) -> dict:
        session = self.sessions.get_session(self.db, session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Session not found")
        if actor.user_type != "admin" and session.therapist_id != actor.id:
            raise HTTPException(status_code=403, detail="You can only calculate earnings for your own sessions")
        if session.status != "completed":
            raise HTTPException(status_code=409, detail="Earnings can only be calculated for completed sessions")
        if self.repo.has_session_earnings(self.db, session.id):
            raise HTTPException(status_code=409, detail="Earnings were already calculated for this session")

        profile = self.repo.get_profile(self.db, session.therapist_id)
        split = split_session_amount(profile.session_rate if profile else None)
        now = utcnow()
        audit = {
            "session_rate_ngn": profile.session_rate if profile and profile.session_rate else DEFAULT_SESSION_RATE_NGN,
            "platform_fee_rate": PLATFORM_FEE_RATE,
            "duration_minutes": session.duration_minutes,
            **split,
        }
        transactions = [
            EarningsTransaction(
                therapist_id=session.therapist_id,
                session_id=session.id,
                transaction_type="session_completion",
                amount_kobo=split["therapist_earnings_kobo"],
                calculated_at=now,
                calculated_by=actor.id,
                audit_data=audit,
            ),
            EarningsTransaction(
                therapist_id=session.therapist_id,
                session_id=session.id,
                transaction_type="platform_fee",
                amount_kobo=-split["platform_fee_kobo"],
                calculated_at=now,
                calculated_by=actor.id,
                audit_data=audit,
            ),
        ]
        self.db.add_all(transactions)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Earnings were already calculated for this session") from e

        logger.info(
            f"💰 Session {session.id} earnings: {split['therapist_earnings_kobo']} kobo to therapist {session.therapist_id}"
        )
        return {
            "session_id": session.id,
            "therapist_id": session.therapist_id,
            **split,
            "transactions": [serialize_transaction(tx) for tx in transactions],
        }

    def get_report(self, therapist_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None) -> dict:
        """Totals for transactions calculated between the two dates, inclusive; defaults to this month"""
        if start_date is None or end_date is None:
            today = utcnow().date()
            first, last = month_bounds(today.year, today.month)
            start_date = start_date or first
            end_date = end_date or last
        if start_date > end_date:
            raise HTTPException(status_code=400, detail="start_date must be on or before end_date")

        start = datetime.combine(start_date, time.min)
        end = datetime.combine(end_date + timedelta(days=1), time.min)
        transactions = self.repo.list_transactions(self.db, therapist_id, start, end)

        session_earnings = sum(t.amount_kobo for t in transactions if t.transaction_type == "session_completion")
        platform_fees = -sum(t.amount_kobo for t in transactions if t.transaction_type == "platform_fee")
        adjustments = sum(t.amount_kobo for t in transactions if t.transaction_type in ADJUSTMENT_TYPES)
        sessions = {t.session_id for t in transactions if t.transaction_type == "session_completion"}

        return {
            "therapist_id": therapist_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "currency": "NGN",
            "total_sessions": len(sessions),
            "gross_earnings_kobo": session_earnings + platform_fees,
            "platform_fees_kobo": platform_fees,
            "adjustments_kobo": adjustments,
            # Session rows are already net of the fee
            "net_earnings_kobo": session_earnings + adjustments,
            "transactions": [serialize_transaction(t) for t in transactions],
        }
