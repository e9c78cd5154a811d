"""
Process-local cache for therapist availability configuration.

Only the weekly schedule and the override map are cached. Bookings are
always read live so a freshly booked slot can never be offered again.
"""

import copy
import logging
import time
from threading import Lock
from typing import Any, Optional

from .config import AVAILABILITY_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class AvailabilityCache:
    """TTL map of therapist_id -> {"weekly": dict, "overrides": {YYYY-MM-DD: dict}}"""

    def __init__(self, ttl_seconds: int = AVAILABILITY_CACHE_TTL_SECONDS, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[int, tuple[float, dict[str, Any]]] = {}
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, therapist_id: int) -> Optional[dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(therapist_id)
            if entry is None:
                self.misses += 1
                logger.debug(f"❌ Cache MISS: availability:{therapist_id}")
                return None
            expires_at, bundle = entry
            if self._clock() >= expires_at:
                del self._entries[therapist_id]
                self.misses += 1
                logger.debug(f"⌛ Cache EXPIRED: availability:{therapist_id}")
                return None
            self.hits += 1
            logger.debug(f"✅ Cache HIT: availability:{therapist_id}")
            # Callers must not be able to mutate the cached bundle
            return copy.deepcopy(bundle)

    def set(self, therapist_id: int, bundle: dict[str, Any]) -> None:
        with self._lock:
            self._entries[therapist_id] = (self._clock() + self.ttl_seconds, copy.deepcopy(bundle))
        logger.debug(f"✅ Cache SET: availability:{therapist_id} (TTL: {self.ttl_seconds}s)")

    def invalidate_therapist_availability(self, therapist_id: int) -> bool:
        with self._lock:
            removed = self._entries.pop(therapist_id, None) is not None
        if removed:
            logger.info(f"🗑️ Invalidated availability cache for therapist {therapist_id}")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            live = sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
            total = self.hits + self.misses
            return {
                "entries": live,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": (self.hits / total * 100) if total else 0.0,
            }


# Global cache instance
availability_cache = AvailabilityCache()


def invalidate_therapist_availability(therapist_id: int) -> bool:
    """Invalidate cached availability when a schedule or override changes"""
    return availability_cache.invalidate_therapist_availability(therapist_id)


def get_cache_stats() -> dict[str, Any]:
    return availability_cache.stats()
