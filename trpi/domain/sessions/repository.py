"""Session repository - Database operations for therapy sessions"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import SessionFeedback, TherapySession, User


class SessionRepository:
    """Repository for session database operations"""

    @staticmethod
    def get_session(db: Session, session_id: int) -> Optional[TherapySession]:
        return (
            db.query(TherapySession)
            .options(joinedload(TherapySession.patient), joinedload(TherapySession.therapist))
            .filter(TherapySession.id == session_id)
            .first()
        )

    @staticmethod
    def get_session_by_room(db: Session, room_name: str) -> Optional[TherapySession]:
        return db.query(TherapySession).filter(TherapySession.room_name == room_name).first()

    @staticmethod
    def list_sessions(
        db: Session,
        patient_id: Optional[int] = None,
        therapist_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> list[TherapySession]:
        query = db.query(TherapySession).options(
            joinedload(TherapySession.patient), joinedload(TherapySession.therapist)
        )
        if patient_id is not None:
            query = query.filter(TherapySession.user_id == patient_id)
        if therapist_id is not None:
            query = query.filter(TherapySession.therapist_id == therapist_id)
        if status:
            query = query.filter(TherapySession.status == status)
        return (
            query.order_by(TherapySession.session_date.desc(), TherapySession.start_time.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def has_previous_session(db: Session, patient_id: int, therapist_id: int) -> bool:
        return (
            db.query(TherapySession.id)
            .filter(
                TherapySession.user_id == patient_id,
                TherapySession.therapist_id == therapist_id,
                TherapySession.status != "cancelled",
            )
            .first()
            is not None
        )

    @staticmethod
    def count_upcoming_for_therapist(db: Session, therapist_id: int, today: date) -> int:
        return (
            db.query(TherapySession)
            .filter(
                TherapySession.therapist_id == therapist_id,
                TherapySession.session_date >= today,
                TherapySession.status.in_(("scheduled", "confirmed", "pending_approval")),
            )
            .count()
        )

    @staticmethod
    def get_feedback(db: Session, session_id: int) -> Optional[SessionFeedback]:
        return db.query(SessionFeedback).filter(SessionFeedback.session_id == session_id).first()

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()
