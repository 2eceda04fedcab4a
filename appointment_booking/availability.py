import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from appointment_booking import config, date_range, normalizer, time_filter, upstream
from appointment_booking.errors import UpstreamUnavailable, ValidationError
from appointment_booking.models import DaySlotAvailability
from appointment_booking.normalizer import NormalizationRequest, NormalizerOptions
from appointment_booking.timeutils import BusinessClock

logger = logging.getLogger(__name__)

SOURCE_UPSTREAM = "Automation backend"
SOURCE_FALLBACK = "Fallback Mode"
FALLBACK_NOTE = "Fallback mode - default working hours"
FALLBACK_MESSAGE = "Default working hours (automation backend unavailable)"

DaysMap = Dict[str, DaySlotAvailability]


@dataclass
class DailyOutcome:
    day: DaySlotAvailability
    source: str
    note: Optional[str] = None
    last_updated: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class RangeOutcome:
    start_date: str
    end_date: str
    days: DaysMap
    source: str = SOURCE_UPSTREAM
    last_updated: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def resolve_range(
    payload: Any,
    start_date: str,
    end_date: str,
    clock: Optional[BusinessClock] = None,
    options: Optional[NormalizerOptions] = None,
) -> DaysMap:
    """Normalizes a raw payload and returns exactly one entry per date, today's elapsed slots removed."""
    clock = clock or BusinessClock()
    request = NormalizationRequest(
        start_date=start_date, end_date=end_date, options=options or NormalizerOptions(), clock=clock
    )
    partial = normalizer.normalize(payload, request)
    complete = date_range.expand(start_date, end_date, partial)
    return time_filter.filter_range(complete, clock.now(), clock)


def resolve_day(
    payload: Any,
    date_str: str,
    clock: Optional[BusinessClock] = None,
    options: Optional[NormalizerOptions] = None,
) -> DaySlotAvailability:
    return resolve_range(payload, date_str, date_str, clock, options)[date_str]


def fallback_day(date_str: str, clock: Optional[BusinessClock] = None) -> DaySlotAvailability:
    """The full default catalogue, used when the daily check cannot reach the backend."""
    clock = clock or BusinessClock()
    day = DaySlotAvailability(
        date=date_str,
        available_slots=NormalizerOptions().base_slots,
        message=FALLBACK_MESSAGE,
    )
    return time_filter.filter_passed(day, clock.now(), clock)


def daily_availability(date_str: str, clock: Optional[BusinessClock] = None) -> DailyOutcome:
    """Availability for one day. Falls back to default slots when the backend is unreachable."""
    date_range.parse_date(date_str)
    try:
        payload = upstream.fetch_daily_payload(date_str)
    except UpstreamUnavailable as e:
        logger.warning(f"Using fallback working hours for {date_str}: {e.message}")
        return DailyOutcome(day=fallback_day(date_str, clock), source=SOURCE_FALLBACK, note=FALLBACK_NOTE)

    day = resolve_day(payload, date_str, clock)
    logger.info(f"{date_str}: {len(day.available_slots)} available, {len(day.booked_slots)} booked")
    return DailyOutcome(day=day, source=SOURCE_UPSTREAM)


def range_availability(
    start_date: str, end_date: str, check_agendar: bool = False, clock: Optional[BusinessClock] = None
) -> RangeOutcome:
    """Availability for every day in the range. UpstreamUnavailable propagates; there is no fallback here."""
    days_requested = len(list(date_range.iter_dates(start_date, end_date)))
    if days_requested > config.MAX_RANGE_DAYS:
        raise ValidationError(f"Date range too long: {days_requested} days (max {config.MAX_RANGE_DAYS}).")

    payload = upstream.fetch_range_payload(start_date, end_date, check_agendar=check_agendar)
    days = resolve_range(payload, start_date, end_date, clock)
    open_days = sum(1 for day in days.values() if day.has_availability)
    logger.info(f"{start_date}..{end_date}: {open_days}/{len(days)} days with availability")
    return RangeOutcome(start_date=start_date, end_date=end_date, days=days)
