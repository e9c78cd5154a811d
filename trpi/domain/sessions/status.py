"""Session timing rules: effective status and join window"""

from datetime import datetime, timedelta
from typing import Any, Optional

from ...config import SESSION_JOIN_WINDOW_MINUTES
from ...models import TERMINAL_SESSION_STATUSES, TherapySession
from ...utils.time_utils import clinic_now, slot_datetime

STATUS_LABELS = {
    "pending_approval": "Awaiting your approval",
    "scheduled": "Upcoming",
    "confirmed": "Confirmed",
    "in_progress": "In progress",
    "completed": "Completed",
    "cancelled": "Cancelled",
    "no_show": "Missed",
}


def session_window(session: TherapySession) -> tuple[datetime, datetime]:
    """Clinic-local start and end of a session"""
    start = slot_datetime(session.session_date, session.start_time)
    return start, start + timedelta(minutes=session.duration_minutes or 0)


def get_session_status(status: str, start: datetime, end: datetime, now: datetime) -> str:
    """Status a session should be displayed with at `now`"""
    if status in TERMINAL_SESSION_STATUSES:
        return status
    if now < start:
        return "pending_approval" if status == "pending_approval" else "scheduled"
    if now < end:
        if status in ("scheduled", "confirmed"):
            return "in_progress"
        return status
    if status in ("scheduled", "in_progress"):
        return "completed"
    return status


def can_join_session(
    status: str, start: datetime, end: datetime, now: datetime, window_minutes: int = SESSION_JOIN_WINDOW_MINUTES
) -> bool:
    if status in TERMINAL_SESSION_STATUSES or status == "pending_approval":
        return False
    return start - timedelta(minutes=window_minutes) <= now <= end


def session_timing(session: TherapySession, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or clinic_now()
    start, end = session_window(session)
    effective = get_session_status(session.status, start, end, now)
    return {
        "status": session.status,
        "effective_status": effective,
        "can_join": can_join_session(session.status, start, end, now),
        "seconds_until_start": max(0, int((start - now).total_seconds())),
        "seconds_remaining": max(0, int((end - now).total_seconds())) if now >= start else None,
        "label": STATUS_LABELS.get(effective, effective.replace("_", " ").title()),
    }
