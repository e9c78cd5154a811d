"""Session service - Booking lifecycle business logic"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import BOOKING_LEAD_TIME_MINUTES, CANCELLATION_REFUND_HOURS
from ...models import BLOCKING_SESSION_STATUSES, SessionFeedback, TherapySession, User
from ...services.notification_service import notify
from ...utils.sanitization import sanitize_string
from ...utils.time_utils import add_minutes, clinic_now, is_past_slot, utcnow
from ..availability.service import AvailabilityService, parse_date_param, parse_time_param
from ..credits.repository import CreditRepository
from .repository import SessionRepository
from .schemas import BookSessionRequest, ScheduleNextSessionRequest
from .status import session_timing, session_window

logger = logging.getLogger(__name__)

COMPLETABLE_STATUSES = ("scheduled", "confirmed", "in_progress")


def _display_name(user: Optional[User]) -> str:
    if not user:
        return "Unknown"
    return user.full_name or user.email.split("@")[0]


def serialize_session(session: TherapySession, viewer: Optional[User] = None, now: Optional[datetime] = None) -> dict:
    timing = session_timing(session, now)
    data = {
        "id": session.id,
        "user_id": session.user_id,
        "therapist_id": session.therapist_id,
        "patient_name": _display_name(session.patient),
        "therapist_name": _display_name(session.therapist),
        "session_date": session.session_date.isoformat(),
        "start_time": session.start_time,
        "end_time": session.end_time,
        "duration_minutes": session.duration_minutes,
        "session_type": session.session_type,
        "status": session.status,
        "effective_status": timing["effective_status"],
        "can_join": timing["can_join"],
        "title": session.title,
        "notes": session.notes,
        "room_name": session.room_name,
        "session_url": session.session_url,
        "credit_id": session.credit_id,
        "cancelled_at": session.cancelled_at,
        "cancellation_reason": session.cancellation_reason,
        "completed_at": session.completed_at,
        "created_at": session.created_at,
    }
    if viewer is not None and viewer.id == session.therapist_id:
        data["therapist_notes"] = session.therapist_notes
    return data


class SessionService:
    """Service layer for session business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SessionRepository()
        self.credits = CreditRepository()
        self.availability = AvailabilityService(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_session_for(self, session_id: int, user: User) -> TherapySession:
        session = self.repo.get_session(self.db, session_id)
        if not session:
            raise HTTPException(status_code=404, detail="Session not found")
        if user.user_type != "admin" and user.id not in (session.user_id, session.therapist_id):
            raise HTTPException(status_code=403, detail="You do not have access to this session")
        return session

    def _validate_slot(
        self, therapist_id: int, session_date: str, start_time: str, duration: Optional[int], now: datetime
    ) -> tuple[Any, str, int]:
        slot_date = parse_date_param(session_date, "session_date")
        start = parse_time_param(start_time, "start_time")

        if is_past_slot(slot_date, start, now, BOOKING_LEAD_TIME_MINUTES):
            raise HTTPException(
                status_code=400,
                detail=f"Sessions must be booked at least {BOOKING_LEAD_TIME_MINUTES} minutes in advance",
            )

        duration = duration or self.availability.default_session_duration(therapist_id)
        conflicts = self.availability.check_slot(therapist_id, slot_date, start, duration)
        if any(c["type"] == "double_booking" for c in conflicts):
            logger.warning(f"⚠️ Double booking attempt for therapist {therapist_id} at {slot_date} {start}")
            raise HTTPException(
                status_code=409, detail={"message": "This time slot is no longer available", "conflicts": conflicts}
            )
        if conflicts:
            raise HTTPException(
                status_code=400, detail={"message": "Therapist is not available at this time", "conflicts": conflicts}
            )
        return slot_date, start, duration

    def _insert_session(self, session: TherapySession, credit=None) -> TherapySession:
        """Insert a session and link its claimed credit in one transaction"""
        try:
            self.db.add(session)
            self.db.flush()
            if credit is not None:
                self.credits.attach_credit(credit, session)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Slot taken concurrently for therapist {session.therapist_id}: {e.orig}")
            raise HTTPException(status_code=409, detail="This time slot is no longer available") from e
        self.db.refresh(session)
        return session

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book_session(self, user: User, data: BookSessionRequest, now: Optional[datetime] = None) -> TherapySession:
        now = now or clinic_now()
        logger.info(f"📥 Booking request from user {user.id} for therapist {data.therapist_id}")

        # Format errors come before therapist lookup
        parse_date_param(data.session_date, "session_date")
        parse_time_param(data.start_time, "start_time")

        therapist = self.availability.get_bookable_therapist(data.therapist_id)
        slot_date, start, duration = self._validate_slot(
            therapist.id, data.session_date, data.start_time, data.duration, now
        )

        # Claimed atomically; rolled back with the insert if the slot is taken
        credit = self.credits.claim_next_credit(self.db, user.id, utcnow())
        if not credit:
            raise HTTPException(status_code=402, detail="No session credits available. Please purchase credits to book.")

        session = TherapySession(
            user_id=user.id,
            therapist_id=therapist.id,
            session_date=slot_date,
            start_time=start,
            end_time=add_minutes(start, duration),
            duration_minutes=duration,
            session_type=data.session_type,
            status="scheduled",
            title=sanitize_string(data.title) or f"Session with {_display_name(therapist)}",
            notes=sanitize_string(data.notes),
        )
        session = self._insert_session(session, credit)
        logger.info(f"✅ Session {session.id} booked for {slot_date} {start} (credit {credit.id})")

        when = f"{slot_date.isoformat()} at {start}"
        notify(
            self.db,
            therapist.id,
            "New session booked",
            f"{_display_name(user)} booked a session on {when}.",
            "session_booked",
            {"session_id": session.id},
        )
        notify(
            self.db,
            user.id,
            "Session confirmed",
            f"Your session with {_display_name(therapist)} is booked for {when}.",
            "session_booked",
            {"session_id": session.id},
        )
        return session

    def attach_room(self, session: TherapySession, room: Optional[dict]) -> TherapySession:
        if not room:
            return session
        session.room_name = room.get("name")
        session.session_url = room.get("url")
        self.db.commit()
        self.db.refresh(session)
        return session

    def schedule_next_session(
        self, therapist: User, data: ScheduleNextSessionRequest, now: Optional[datetime] = None
    ) -> TherapySession:
        now = now or clinic_now()
        patient = self.repo.get_user(self.db, data.user_id)
        if not patient or patient.user_type != "individual":
            raise HTTPException(status_code=404, detail="Patient not found")
        if not self.repo.has_previous_session(self.db, patient.id, therapist.id):
            raise HTTPException(status_code=403, detail="You can only schedule follow-ups for your own patients")

        slot_date, start, duration = self._validate_slot(
            therapist.id, data.session_date, data.start_time, data.duration, now
        )
        session = TherapySession(
            user_id=patient.id,
            therapist_id=therapist.id,
            session_date=slot_date,
            start_time=start,
            end_time=add_minutes(start, duration),
            duration_minutes=duration,
            session_type=data.session_type,
            status="pending_approval",
            title=f"Follow-up with {_display_name(therapist)}",
            notes=sanitize_string(data.notes),
        )
        session = self._insert_session(session)
        logger.info(f"✅ Follow-up session {session.id} proposed by therapist {therapist.id}")

        notify(
            self.db,
            patient.id,
            "Follow-up session proposed",
            f"{_display_name(therapist)} scheduled a session on {slot_date.isoformat()} at {start}. Approve it to confirm.",
            "session_pending_approval",
            {"session_id": session.id},
        )
        return session

    def approve_session(self, user: User, session_id: int, now: Optional[datetime] = None) -> TherapySession:
        now = now or clinic_now()
        session = self.get_session_for(session_id, user)
        if session.user_id != user.id:
            raise HTTPException(status_code=403, detail="Only the patient can approve this session")
        if session.status != "pending_approval":
            raise HTTPException(status_code=409, detail=f"Session cannot be approved from status '{session.status}'")
        start, _ = session_window(session)
        if start <= now:
            raise HTTPException(status_code=409, detail="This session's start time has already passed")

        credit = self.credits.claim_next_credit(self.db, user.id, utcnow())
        if not credit:
            raise HTTPException(status_code=402, detail="No session credits available. Please purchase credits to approve.")

        approved = (
            self.db.query(TherapySession)
            .filter(TherapySession.id == session.id, TherapySession.status == "pending_approval")
            .update({TherapySession.status: "scheduled"}, synchronize_session=False)
        )
        if approved != 1:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Session was already approved or cancelled")
        self.credits.attach_credit(credit, session)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"✅ Session {session.id} approved by user {user.id} (credit {credit.id})")

        notify(
            self.db,
            session.therapist_id,
            "Session approved",
            f"{_display_name(user)} approved the session on {session.session_date.isoformat()} at {session.start_time}.",
            "session_approved",
            {"session_id": session.id},
        )
        return session

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def cancel_session(
        self, user: User, session_id: int, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict:
        now = now or clinic_now()
        session = self.get_session_for(session_id, user)
        if user.id not in (session.user_id, session.therapist_id):
            raise HTTPException(status_code=403, detail="Only session participants can cancel")
        if session.status not in BLOCKING_SESSION_STATUSES:
            raise HTTPException(status_code=409, detail=f"Session cannot be cancelled from status '{session.status}'")

        start, _ = session_window(session)
        credit_restored = False
        if session.credit_id and start - now >= timedelta(hours=CANCELLATION_REFUND_HOURS):
            credit = self.credits.get_credit(self.db, session.credit_id)
            if credit:
                self.credits.restore_credit(credit, session)
                credit_restored = True

        session.status = "cancelled"
        session.cancelled_at = utcnow()
        session.cancellation_reason = sanitize_string(reason)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"🚫 Session {session.id} cancelled by user {user.id} (credit restored: {credit_restored})")

        other_party = session.therapist_id if user.id == session.user_id else session.user_id
        notify(
            self.db,
            other_party,
            "Session cancelled",
            f"The session on {session.session_date.isoformat()} at {session.start_time} was cancelled.",
            "session_cancelled",
            {"session_id": session.id, "reason": session.cancellation_reason},
        )
        return {"session": session, "credit_restored": credit_restored}

    def complete_session(self, therapist: User, session_id: int, therapist_notes: Optional[str] = None) -> TherapySession:
        session = self.get_session_for(session_id, therapist)
        if session.therapist_id != therapist.id:
            raise HTTPException(status_code=403, detail="Only the session's therapist can complete it")
        if session.status not in COMPLETABLE_STATUSES:
            raise HTTPException(status_code=409, detail=f"Session cannot be completed from status '{session.status}'")

        session.status = "completed"
        session.completed_at = utcnow()
        if therapist_notes is not None:
            session.therapist_notes = sanitize_string(therapist_notes)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"✅ Session {session.id} marked completed by therapist {therapist.id}")
        return session

    def submit_feedback(
        self, user: User, session_id: int, rating: int, comment: Optional[str] = None, now: Optional[datetime] = None
    ) -> SessionFeedback:
        session = self.get_session_for(session_id, user)
        if session.user_id != user.id:
            raise HTTPException(status_code=403, detail="Only the patient can leave feedback")
        if session_timing(session, now)["effective_status"] != "completed":
            raise HTTPException(status_code=409, detail="Feedback can only be left for completed sessions")
        if self.repo.get_feedback(self.db, session.id):
            raise HTTPException(status_code=409, detail="Feedback already submitted for this session")

        feedback = SessionFeedback(session_id=session.id, user_id=user.id, rating=rating, comment=sanitize_string(comment))
        self.db.add(feedback)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Feedback already submitted for this session") from e
        self.db.refresh(feedback)
        logger.info(f"⭐ Feedback ({rating}/5) recorded for session {session.id}")
        return feedback

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_sessions(self, user: User, status: Optional[str] = None, limit: int = 20, now: Optional[datetime] = None) -> list[dict]:
        now = now or clinic_now()
        limit = max(1, min(limit, 50))
        if user.user_type == "therapist":
            sessions = self.repo.list_sessions(self.db, therapist_id=user.id, status=status, limit=limit)
        else:
            sessions = self.repo.list_sessions(self.db, patient_id=user.id, status=status, limit=limit)
        return [serialize_session(s, user, now) for s in sessions]

    def get_status(self, user: User, session_id: int, now: Optional[datetime] = None) -> dict:
        session = self.get_session_for(session_id, user)
        return {"session_id": session.id, **session_timing(session, now)}
