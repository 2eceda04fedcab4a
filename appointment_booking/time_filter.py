import logging
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from appointment_booking.models import DaySlotAvailability
from appointment_booking.timeutils import BusinessClock

logger = logging.getLogger(__name__)

ELAPSED_MESSAGE = "All of today's slots have already started"


def passed_slots(date_str: str, slots: List[str], reference_now: datetime, clock: Optional[BusinessClock] = None) -> List[str]:
    """Slots of `date_str` that start at or before `reference_now`, if that date is today."""
    clock = clock or BusinessClock()
    now = clock.localize(reference_now)
    if not clock.is_today(date_str, now):
        return []
    return [slot for slot in slots if clock.slot_start(date_str, slot) <= now]


def filter_passed(
    day: DaySlotAvailability, reference_now: datetime, clock: Optional[BusinessClock] = None
) -> DaySlotAvailability:
    """Moves today's already-started slots from available to elapsed."""
    gone = passed_slots(day.date, day.available_slots, reference_now, clock)
    if not gone:
        return day

    logger.debug(f"{day.date}: slots already started {gone}")
    remaining = [slot for slot in day.available_slots if slot not in gone]
    changes = {"available_slots": remaining, "elapsed_slots": [*day.elapsed_slots, *gone]}
    if not remaining:
        changes["message"] = ELAPSED_MESSAGE
    return day.replace(**changes)


def filter_range(
    days: Mapping[str, DaySlotAvailability], reference_now: datetime, clock: Optional[BusinessClock] = None
) -> Dict[str, DaySlotAvailability]:
    return {key: filter_passed(day, reference_now, clock) for key, day in days.items()}
