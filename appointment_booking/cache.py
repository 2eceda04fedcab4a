import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from appointment_booking import config
from appointment_booking.models import DaySlotAvailability

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityCacheEntry:
    day: DaySlotAvailability
    fetched_at: float


class AvailabilityCache:
    """Per-date availability with a TTL. Last writer for a date wins."""

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = config.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[str, AvailabilityCacheEntry] = {}

    def get(self, date_str: str) -> Optional[DaySlotAvailability]:
        entry = self._entries.get(date_str)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            logger.debug(f"Cache entry for {date_str} expired")
            del self._entries[date_str]
            return None
        return entry.day

    def set(self, date_str: str, day: DaySlotAvailability) -> None:
        self._entries[date_str] = AvailabilityCacheEntry(day=day, fetched_at=self._clock())

    def invalidate(self, date_str: str) -> None:
        if self._entries.pop(date_str, None) is not None:
            logger.debug(f"Invalidated cache entry for {date_str}")

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, date_str: str) -> bool:
        return self.get(date_str) is not None

    def __len__(self) -> int:
        return len(self._entries)
