import logging
import re
from typing import List, Optional, Sequence, Tuple

from appointment_booking import config
from appointment_booking.errors import InvalidSlotFormat

logger = logging.getLogger(__name__)

_SLOT_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_slot(slot: str) -> Tuple[int, int]:
    """Parses an HH:MM label into (hour, minute)."""
    match = _SLOT_RE.match(slot.strip()) if isinstance(slot, str) else None
    if not match:
        raise InvalidSlotFormat(f"Invalid slot format: {slot!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidSlotFormat(f"Invalid slot format: {slot!r}")
    return hour, minute


def format_slot(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def canonical_slot(slot: str) -> str:
    """Normalizes labels like '9:30' to '09:30'."""
    return format_slot(*parse_slot(slot))


def generate_base_slots(catalogue: Optional[Sequence[str]] = None) -> List[str]:
    """Returns the bookable slot catalogue, sorted and without duplicates."""
    source = config.BASE_SLOTS if catalogue is None else catalogue
    slots = sorted({canonical_slot(slot) for slot in source})
    logger.debug(f"Generated {len(slots)} base slots: {slots}")
    return slots


def slot_end(slot: str, duration_minutes: Optional[int] = None) -> str:
    """Label of the slot end. Business hours never cross midnight, so only the hour wraps."""
    duration = config.SLOT_DURATION_MINUTES if duration_minutes is None else duration_minutes
    hour, minute = parse_slot(slot)
    total = hour * 60 + minute + duration
    return format_slot((total // 60) % 24, total % 60)


def slot_minutes(slot: str) -> int:
    hour, minute = parse_slot(slot)
    return hour * 60 + minute


def slot_for_hour(hour: int, slots: Sequence[str]) -> Optional[str]:
    """The catalogue slot that starts within the given hour, if any."""
    for slot in slots:
        if parse_slot(slot)[0] == hour:
            return slot
    return None


def adjacent_slots(slot: str, slots: Sequence[str]) -> List[str]:
    """Catalogue neighbours (previous and next) of a slot."""
    ordered = sorted(slots)
    if slot not in ordered:
        return []
    index = ordered.index(slot)
    neighbours = []
    if index > 0:
        neighbours.append(ordered[index - 1])
    if index < len(ordered) - 1:
        neighbours.append(ordered[index + 1])
    return neighbours
