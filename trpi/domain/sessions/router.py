"""Session router - FastAPI endpoints for the booking lifecycle"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_individual, require_therapist
from ...database import get_db
from ...models import User
from ...rate_limiter import rate_limit_booking
from ...services.video_service import DailyVideoService, get_video_service
from .schemas import (
    ApproveSessionRequest,
    BookSessionRequest,
    CancelSessionRequest,
    CompleteSessionRequest,
    FeedbackRequest,
    ScheduleNextSessionRequest,
    SessionStatusResponse,
)
from .service import SessionService, serialize_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])
therapist_router = APIRouter(prefix="/therapist", tags=["Sessions"])


def get_session_service(db: Session = Depends(get_db)) -> SessionService:
    """Dependency injection for SessionService"""
    return SessionService(db)


async def _create_room_best_effort(service: SessionService, video: DailyVideoService, session):
    """A video room failure never fails the booking; the room can be created later"""
    try:
        room = await video.create_session_room(session)
        return service.attach_room(session, room)
    except Exception as e:
        logger.error(f"❌ Video room creation failed for session {session.id}: {e}")
        return session


# ============================================================================
# BOOKING
# ============================================================================


@router.post("/book", status_code=201)
async def book_session(
    data: BookSessionRequest,
    current_user: User = Depends(require_individual),
    service: SessionService = Depends(get_session_service),
    video: DailyVideoService = Depends(get_video_service),
    _: None = Depends(rate_limit_booking),
):
    """Book an available slot with a therapist using one session credit"""
    session = service.book_session(current_user, data)
    session = await _create_room_best_effort(service, video, session)
    return {"success": True, "message": "Session booked successfully", "session": serialize_session(session, current_user)}


@therapist_router.post("/schedule-next-session", status_code=201)
async def schedule_next_session(
    data: ScheduleNextSessionRequest,
    current_user: User = Depends(require_therapist),
    service: SessionService = Depends(get_session_service),
):
    """Propose a follow-up session; the patient approves it with a credit"""
    session = service.schedule_next_session(current_user, data)
    return {
        "success": True,
        "message": "Session proposed and awaiting patient approval",
        "session": serialize_session(session, current_user),
    }


@router.post("/approve")
async def approve_session(
    data: ApproveSessionRequest,
    current_user: User = Depends(require_individual),
    service: SessionService = Depends(get_session_service),
    video: DailyVideoService = Depends(get_video_service),
):
    session = service.approve_session(current_user, data.session_id)
    session = await _create_room_best_effort(service, video, session)
    return {"success": True, "message": "Session approved", "session": serialize_session(session, current_user)}


# ============================================================================
# QUERIES
# ============================================================================


@router.get("")
async def list_sessions(
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    """Sessions where the caller is the patient (or the therapist, for therapist accounts)"""
    sessions = service.list_sessions(current_user, status, limit)
    return {"success": True, "sessions": sessions, "total": len(sessions)}


@router.get("/{session_id}")
async def get_session(
    session_id: int,
    current_user: User = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    session = service.get_session_for(session_id, current_user)
    return {"success": True, "session": serialize_session(session, current_user)}


@router.get("/{session_id}/status", response_model=SessionStatusResponse)
async def get_session_status(
    session_id: int,
    current_user: User = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
):
    return service.get_status(current_user, session_id)


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{session_id}/cancel")
async def cancel_session(
    session_id: int,
    data: Optional[CancelSessionRequest] = None,
    current_user: User = Depends(get_current_user),
    service: SessionService = Depends(get_session_service),
    video: DailyVideoService = Depends(get_video_service),
):
    result = service.cancel_session(current_user, session_id, data.reason if data else None)
    room_name = result["session"].room_name
    if room_name:
        try:
            await video.delete_room(room_name)
        except Exception as e:
            logger.error(f"❌ Could not delete video room {room_name}: {e}")
    return {
        "success": True,
        "message": "Session cancelled",
        "credit_restored": result["credit_restored"],
        "session": serialize_session(result["session"], current_user),
    }


@router.post("/{session_id}/complete")
async def complete_session(
    session_id: int,
    data: Optional[CompleteSessionRequest] = None,
    current_user: User = Depends(require_therapist),
    service: SessionService = Depends(get_session_service),
):
    session = service.complete_session(current_user, session_id, data.therapist_notes if data else None)
    return {"success": True, "message": "Session completed", "session": serialize_session(session, current_user)}


@router.post("/{session_id}/feedback", status_code=201)
async def submit_feedback(
    session_id: int,
    data: FeedbackRequest,
    current_user: User = Depends(require_individual),
    service: SessionService = Depends(get_session_service),
):
    feedback = service.submit_feedback(current_user, session_id, data.rating, data.comment)
    return {
        "success": True,
        "feedback": {
            "id": feedback.id,
            "session_id": feedback.session_id,
            "rating": feedback.rating,
            "comment": feedback.comment,
            "created_at": feedback.created_at,
        },
    }
