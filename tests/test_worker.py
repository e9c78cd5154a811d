from __future__ import annotations

from datetime import date, datetime, timedelta

from trpi.models import AuthSession, MagicLink, TherapySession
from trpi.worker import WorkerSettings, complete_expired_sessions, purge_stale_auth_records

NOW = datetime(2025, 3, 17, 12, 0)


def add_session(db, patient, therapist, start, end, status):
    session = TherapySession(
        user_id=patient.id,
        therapist_id=therapist.id,
        session_date=date(2025, 3, 17),
        start_time=start,
        end_time=end,
        duration_minutes=60,
        status=status,
    )
    db.add(session)
    db.commit()
    return session


def test_expired_sessions_are_completed_after_grace(db, make_user, make_therapist):
    patient = make_user()
    therapist = make_therapist()
    finished = add_session(db, patient, therapist, "09:00", "10:00", "scheduled")
    running = add_session(db, patient, therapist, "10:00", "11:00", "in_progress")
    grace = add_session(db, patient, therapist, "10:56", "11:56", "in_progress")
    pending = add_session(db, patient, therapist, "08:00", "09:00", "pending_approval")
    upcoming = add_session(db, patient, therapist, "13:00", "14:00", "scheduled")

    assert complete_expired_sessions(db, now=NOW) == 2

    for session in (finished, running, grace, pending, upcoming):
        db.refresh(session)
    assert finished.status == "completed"
    assert finished.completed_at is not None
    assert running.status == "completed"
    assert grace.status == "in_progress"
    assert pending.status == "pending_approval"
    assert upcoming.status == "scheduled"

    assert complete_expired_sessions(db, now=NOW) == 0


def test_stale_auth_records_are_purged(db, make_user):
    user = make_user()
    db.add_all(
        [
            MagicLink(email=user.email, token_hash="a" * 64, expires_at=NOW - timedelta(days=2)),
            MagicLink(email=user.email, token_hash="b" * 64, expires_at=NOW + timedelta(minutes=5)),
            MagicLink(
                email=user.email,
                token_hash="c" * 64,
                expires_at=NOW - timedelta(days=2),
                used_at=NOW - timedelta(days=2),
            ),
            AuthSession(user_id=user.id, jti="expired", expires_at=NOW - timedelta(minutes=1)),
            AuthSession(user_id=user.id, jti="revoked", expires_at=NOW + timedelta(days=1), revoked_at=NOW),
            AuthSession(user_id=user.id, jti="live", expires_at=NOW + timedelta(days=1)),
        ]
    )
    db.commit()

    result = purge_stale_auth_records(db, now=NOW)

    assert result == {"magic_links": 2, "auth_sessions": 2}
    assert [link.token_hash[0] for link in db.query(MagicLink).all()] == ["b"]
    assert [s.jti for s in db.query(AuthSession).all()] == ["live"]


def test_worker_schedules_both_jobs():
    names = {job.name for job in WorkerSettings.cron_jobs}
    assert len(WorkerSettings.cron_jobs) == 2
    assert any("complete_expired_sessions" in name for name in names)
    assert any("purge_stale_auth_records" in name for name in names)
