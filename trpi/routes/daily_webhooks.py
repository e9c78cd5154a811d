"""
Daily.co Webhook Routes
Keeps session status in step with what happens in the video room
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import DAILY_WEBHOOK_SECRET
from ..database import get_db
from ..models import TherapySession
from ..rate_limiter import create_rate_limiter
from ..services.video_service import session_id_from_room
from ..utils.time_utils import utcnow
from ..webhook_security import verify_daily_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["daily-webhooks"])

rate_limit_webhook = create_rate_limiter(
    limit=100,
    window_seconds=60,
    key_prefix="webhook_daily",
    use_ip=False,  # Global limit for all webhooks
)


def _find_session(db: Session, room_name: str):
    session = db.query(TherapySession).filter(TherapySession.room_name == room_name).first()
    if session:
        return session
    session_id = session_id_from_room(room_name)
    if session_id is None:
        return None
    return db.query(TherapySession).filter(TherapySession.id == session_id).first()


def apply_meeting_event(db: Session, event_type: str, room_name: str) -> bool:
    """Move a session along on meeting start/end. Returns True when status changed"""
    session = _find_session(db, room_name)
    if not session:
        logger.info(f"ℹ️ Daily event {event_type} for unknown room {room_name}")
        return False

    if event_type == "meeting.started" and session.status in ("scheduled", "confirmed"):
        session.status = "in_progress"
    elif event_type == "meeting.ended" and session.status == "in_progress":
        session.status = "completed"
        session.completed_at = utcnow()
    else:
        return False

    db.commit()
    logger.info(f"🎥 Session {session.id} -> {session.status} ({event_type})")
    return True


@router.post("/daily")
async def handle_daily_webhook(
    request: Request, db: Session = Depends(get_db), _: None = Depends(rate_limit_webhook)
):
    """
    Handle Daily.co webhook events
    Supported events: meeting.started, meeting.ended
    """
    if not DAILY_WEBHOOK_SECRET:
        logger.error("❌ DAILY_WEBHOOK_SECRET not configured - rejecting webhook")
        raise HTTPException(status_code=401, detail="Webhook verification not configured")

    body = await verify_daily_webhook(request, DAILY_WEBHOOK_SECRET)

    try:
        payload = json.loads(body.decode() or "{}")
    except (ValueError, UnicodeDecodeError) as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    if not isinstance(payload, dict):
        logger.warning(f"⚠️ Ignoring Daily webhook with a non-object body ({type(payload).__name__})")
        return {"received": True, "updated": False}

    event_type = payload.get("type")
    event_payload = payload.get("payload")
    if not isinstance(event_payload, dict):
        event_payload = {}
    room_name = event_payload.get("room") or event_payload.get("room_name")
    logger.debug(f"📥 Received Daily webhook: {event_type}")

    try:
        updated = False
        if event_type in ("meeting.started", "meeting.ended") and room_name:
            updated = apply_meeting_event(db, event_type, room_name)
        return {"received": True, "updated": updated}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Daily webhook processing error: {str(e)}")
        raise HTTPException(status_code=500, detail="Webhook processing failed") from e
