from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from datetime import date

import pytest

from trpi.models import TherapySession
from trpi.routes import daily_webhooks
from trpi.webhook_security import (
    WebhookSignatureError,
    compute_daily_signature,
    verify_daily_signature,
    verify_timestamp,
)

RAW_KEY = b"daily-webhook-signing-key"
SECRET = base64.b64encode(RAW_KEY).decode()


def signed_post(client, payload, secret=SECRET, timestamp=None, signature=None):
    body = json.dumps(payload).encode()
    timestamp = timestamp or str(int(time.time()))
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Timestamp": timestamp,
        "X-Webhook-Signature": signature or compute_daily_signature(secret, timestamp, body),
    }
    return client.post("/webhooks/daily", content=body, headers=headers)


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(daily_webhooks, "DAILY_WEBHOOK_SECRET", SECRET)
    return SECRET


@pytest.fixture
def video_session(db, make_therapist, make_user):
    session = TherapySession(
        user_id=make_user().id,
        therapist_id=make_therapist().id,
        session_date=date(2025, 3, 17),
        start_time="10:00",
        end_time="11:00",
        status="scheduled",
    )
    db.add(session)
    db.commit()
    session.room_name = f"trpi-session-{session.id}"
    db.commit()
    return session


def test_signature_is_base64_hmac_over_timestamp_and_body():
    body = b'{"type":"meeting.started"}'
    expected = base64.b64encode(hmac.new(RAW_KEY, b"1700000000." + body, hashlib.sha256).digest()).decode()

    assert compute_daily_signature(SECRET, "1700000000", body) == expected
    verify_daily_signature(SECRET, expected, "1700000000", body, now=1700000060)


def test_signature_verification_failures():
    body = b"{}"
    signature = compute_daily_signature(SECRET, "1700000000", body)

    with pytest.raises(WebhookSignatureError):
        verify_daily_signature(SECRET, signature, "1700000000", b'{"tampered":1}', now=1700000000)
    with pytest.raises(WebhookSignatureError):
        verify_daily_signature(SECRET, signature, "1700000000", body, now=1700000000 + 3600)
    with pytest.raises(WebhookSignatureError):
        verify_daily_signature(SECRET, "", "1700000000", body, now=1700000000)


def test_timestamps_in_milliseconds_are_accepted():
    assert verify_timestamp("1700000000000", now=1700000010)
    assert not verify_timestamp("not-a-number", now=1700000010)
    assert not verify_timestamp(None)


def test_meeting_events_drive_session_status(client, db, webhook_secret, video_session):
    started = signed_post(client, {"type": "meeting.started", "payload": {"room": video_session.room_name}})
    assert started.status_code == 200
    assert started.json() == {"received": True, "updated": True}
    db.refresh(video_session)
    assert video_session.status == "in_progress"

    ended = signed_post(client, {"type": "meeting.ended", "payload": {"room": video_session.room_name}})
    assert ended.json()["updated"] is True
    db.refresh(video_session)
    assert video_session.status == "completed"
    assert video_session.completed_at is not None

    repeat = signed_post(client, {"type": "meeting.ended", "payload": {"room": video_session.room_name}})
    assert repeat.json()["updated"] is False


def test_room_name_falls_back_to_session_id(client, db, webhook_secret, video_session):
    video_session.room_name = None
    db.commit()

    response = signed_post(client, {"type": "meeting.started", "payload": {"room_name": f"trpi-session-{video_session.id}"}})

    assert response.json()["updated"] is True


def test_unknown_rooms_and_events_are_acknowledged(client, webhook_secret):
    unknown_room = signed_post(client, {"type": "meeting.started", "payload": {"room": "someone-else"}})
    other_event = signed_post(client, {"type": "recording.ready-to-download", "payload": {}})

    assert unknown_room.json() == {"received": True, "updated": False}
    assert other_event.json() == {"received": True, "updated": False}


def test_bad_signatures_are_rejected(client, webhook_secret):
    payload = {"type": "meeting.started", "payload": {"room": "trpi-session-1"}}

    forged = signed_post(client, payload, signature=base64.b64encode(b"forged").decode())
    stale = signed_post(client, payload, timestamp=str(int(time.time()) - 3600))
    wrong_key = signed_post(client, payload, secret=base64.b64encode(b"another-key").decode())

    assert forged.status_code == 401
    assert stale.status_code == 401
    assert wrong_key.status_code == 401


def test_webhook_rejected_when_secret_is_not_configured(client, monkeypatch):
    monkeypatch.setattr(daily_webhooks, "DAILY_WEBHOOK_SECRET", None)

    response = signed_post(client, {"type": "meeting.started", "payload": {}})

    assert response.status_code == 401


@pytest.mark.parametrize(
    "payload",
    [
        [{"type": "meeting.started"}],
        {"type": "meeting.started", "payload": "trpi-session-1"},
        {"type": "meeting.ended", "payload": ["trpi-session-1"]},
        "meeting.started",
    ],
)
def test_signed_bodies_with_unexpected_shapes_are_acknowledged(client, webhook_secret, payload):
    response = signed_post(client, payload)

    assert response.status_code == 200
    assert response.json() == {"received": True, "updated": False}
