from __future__ import annotations

import asyncio
import json
from datetime import date, datetime, timezone

import httpx
import pytest

from trpi.models import TherapySession
from trpi.services.video_service import (
    DailyVideoService,
    room_expiry_timestamp,
    room_name_for_session,
    session_id_from_room,
)


def make_session(session_id: int = 5) -> TherapySession:
    return TherapySession(
        id=session_id,
        session_date=date(2025, 3, 17),
        start_time="10:00",
        end_time="11:00",
        duration_minutes=60,
    )


def test_room_names_round_trip():
    assert room_name_for_session(42) == "trpi-session-42"
    assert session_id_from_room("trpi-session-42") == 42
    assert session_id_from_room("trpi-session-abc") is None
    assert session_id_from_room("other-room") is None
    assert session_id_from_room(None) is None


def test_room_expires_thirty_minutes_after_session_end():
    # 11:00 in Lagos (UTC+1) plus 30 minutes
    expected = datetime(2025, 3, 17, 10, 30, tzinfo=timezone.utc).timestamp()
    assert room_expiry_timestamp(make_session()) == int(expected)


def test_room_creation_is_skipped_without_api_key():
    service = DailyVideoService(api_key=None)
    assert asyncio.run(service.create_session_room(make_session())) is None


def test_room_creation_posts_private_room():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        body = json.loads(request.content)
        return httpx.Response(200, json={"name": body["name"], "url": f"https://clinic.daily.co/{body['name']}"})

    service = DailyVideoService(api_key="key", base_url="https://api.daily.test/v1", transport=httpx.MockTransport(handler))
    room = asyncio.run(service.create_session_room(make_session()))

    assert room == {"name": "trpi-session-5", "url": "https://clinic.daily.co/trpi-session-5"}
    sent = json.loads(requests[0].content)
    assert requests[0].url.path == "/v1/rooms"
    assert requests[0].headers["Authorization"] == "Bearer key"
    assert sent["privacy"] == "private"
    assert sent["properties"]["exp"] == room_expiry_timestamp(make_session())


def test_existing_room_is_reused():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(400, json={"error": "invalid-request-error", "info": "a room named trpi-session-5 already exists"})
        return httpx.Response(200, json={"name": "trpi-session-5", "url": "https://clinic.daily.co/trpi-session-5"})

    service = DailyVideoService(api_key="key", transport=httpx.MockTransport(handler))
    room = asyncio.run(service.create_session_room(make_session()))

    assert room["url"] == "https://clinic.daily.co/trpi-session-5"


def test_room_creation_errors_propagate():
    service = DailyVideoService(api_key="key", transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(service.create_session_room(make_session()))


def test_delete_room_treats_missing_room_as_deleted():
    service = DailyVideoService(api_key="key", transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    assert asyncio.run(service.delete_room("trpi-session-5")) is True
    assert asyncio.run(DailyVideoService(api_key=None).delete_room("trpi-session-5")) is False
