import logging
from datetime import timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

import httpx

from ..config import CLINIC_TIMEZONE, DAILY_API_KEY, DAILY_API_URL, DAILY_DOMAIN
from ..models import TherapySession
from ..utils.time_utils import slot_datetime

logger = logging.getLogger(__name__)

ROOM_EXPIRY_GRACE_MINUTES = 30


def room_name_for_session(session_id: int) -> str:
    return f"trpi-session-{session_id}"


def session_id_from_room(room_name: Optional[str]) -> Optional[int]:
    """Reverse of room_name_for_session, None for rooms we did not create"""
    prefix = "trpi-session-"
    if not room_name or not room_name.startswith(prefix):
        return None
    suffix = room_name[len(prefix):]
    return int(suffix) if suffix.isdigit() else None


def room_expiry_timestamp(session: TherapySession) -> int:
    """Unix timestamp for the room `exp` property: session end plus grace"""
    end_local = slot_datetime(session.session_date, session.start_time) + timedelta(
        minutes=session.duration_minutes
    )
    expires = end_local + timedelta(minutes=ROOM_EXPIRY_GRACE_MINUTES)
    return int(expires.replace(tzinfo=ZoneInfo(CLINIC_TIMEZONE)).timestamp())


class DailyVideoService:
    """Service for interacting with the Daily.co REST API"""

    def __init__(
        self,
        api_key: Optional[str] = DAILY_API_KEY,
        base_url: str = DAILY_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def create_session_room(self, session: TherapySession) -> Optional[dict[str, Any]]:
        """Create (or reuse) the private room for a session"""
        if not self.enabled:
            logger.warning("⚠️ DAILY_API_KEY not configured - skipping video room creation")
            return None

        name = room_name_for_session(session.id)
        payload = {
            "name": name,
            "privacy": "private",
            "properties": {
                "exp": room_expiry_timestamp(session),
                "enable_chat": True,
                "enable_screenshare": True,
                "start_video_off": False,
                "max_participants": 2,
            },
        }

        async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
            response = await client.post(f"{self.base_url}/rooms", json=payload, headers=self._headers())

            # Room already exists from an earlier attempt
            if response.status_code == 400 and "already exists" in response.text:
                logger.info(f"ℹ️ Daily room {name} already exists, reusing it")
                response = await client.get(f"{self.base_url}/rooms/{name}", headers=self._headers())

            if response.status_code >= 400:
                logger.error(f"❌ Daily room creation failed: {response.status_code} {response.text[:200]}")
            response.raise_for_status()
            room = response.json()

        url = room.get("url") or (f"https://{DAILY_DOMAIN}.daily.co/{name}" if DAILY_DOMAIN else None)
        logger.info(f"🎥 Daily room ready for session {session.id}: {name}")
        return {"name": room.get("name", name), "url": url}

    async def delete_room(self, room_name: str) -> bool:
        if not self.enabled:
            return False
        async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
            response = await client.delete(f"{self.base_url}/rooms/{room_name}", headers=self._headers())
        if response.status_code in (200, 404):
            logger.info(f"🗑️ Daily room {room_name} deleted")
            return True
        logger.warning(f"⚠️ Failed to delete Daily room {room_name}: {response.status_code}")
        return False


def get_video_service() -> DailyVideoService:
    """Dependency injection for DailyVideoService"""
    return DailyVideoService()
