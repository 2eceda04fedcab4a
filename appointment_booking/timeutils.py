"""
Business timezone handling.

Every "is this today" and "has this slot started" question goes through a
BusinessClock so the client device timezone never leaks into the result.
"""
import logging
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional, Union

from appointment_booking import config
from appointment_booking.slots import parse_slot

logger = logging.getLogger(__name__)


def business_timezone() -> tzinfo:
    return timezone(timedelta(hours=config.BUSINESS_UTC_OFFSET_HOURS), config.TIMEZONE_NAME)


def parse_iso_datetime(value: str) -> datetime:
    """Parses ISO-8601 strings as sent by the calendar, including a trailing 'Z'."""
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class BusinessClock:
    def __init__(self, tz: Optional[tzinfo] = None, now_fn: Optional[Callable[[], datetime]] = None):
        self.tz = tz or business_timezone()
        self._now_fn = now_fn

    def now(self) -> datetime:
        """Current instant, aware, expressed in the business timezone."""
        if self._now_fn is not None:
            return self.localize(self._now_fn())
        return datetime.now(timezone.utc).astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, value: datetime) -> datetime:
        """Naive datetimes are taken as business time; aware ones are converted."""
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def to_business(self, value: Union[str, datetime]) -> datetime:
        if isinstance(value, str):
            value = parse_iso_datetime(value)
        return self.localize(value)

    def business_date(self, value: Union[str, datetime]) -> date:
        """Calendar date of an instant in the business timezone. Date-only strings pass through."""
        if isinstance(value, str) and len(value.strip()) == 10:
            return date.fromisoformat(value.strip())
        return self.to_business(value).date()

    def is_today(self, day: Union[str, date], reference_now: Optional[datetime] = None) -> bool:
        if isinstance(day, str):
            day = date.fromisoformat(day)
        now = self.localize(reference_now) if reference_now is not None else self.now()
        return day == now.date()

    def slot_start(self, day: Union[str, date], slot: str) -> datetime:
        """Aware datetime of a slot start on the given calendar day."""
        if isinstance(day, str):
            day = date.fromisoformat(day)
        hour, minute = parse_slot(slot)
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=self.tz)
