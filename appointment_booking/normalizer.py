"""
Turns raw automation-backend payloads into per-day availability.

The backend has answered in several shapes over time. Each shape is a
dialect: a detector plus a parser, tried in order, first match wins. A
parser returns the days it can speak for; the caller fills the rest of the
range with explicit unavailable days.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError as ModelValidationError

from appointment_booking import config, slots
from appointment_booking.date_range import iter_dates, parse_date
from appointment_booking.errors import InvalidSlotFormat, UpstreamFormatError, ValidationError
from appointment_booking.models import DaySlotAvailability
from appointment_booking.timeutils import BusinessClock

logger = logging.getLogger(__name__)

Days = Dict[str, DaySlotAvailability]

OPEN_DAY_MESSAGE = "Day available for booking"
CLOSED_DAY_MESSAGE = "Day not available"
FULLY_BOOKED_MESSAGE = "Fully booked"
FREE_BUSY_MESSAGE = "Availability computed from calendar"
MALFORMED_DAY_MESSAGE = "Malformed availability entry from the automation backend"
UNRECOGNIZED_MESSAGE = "Unrecognized availability data from the automation backend"
PARSE_FAILED_MESSAGE = "Could not read availability data from the automation backend"


@dataclass
class NormalizerOptions:
    base_slots: List[str] = field(default_factory=slots.generate_base_slots)
    exclude_adjacent: bool = field(default_factory=lambda: config.EXCLUDE_ADJACENT_SLOTS)
    attend_name: str = field(default_factory=lambda: config.ATTEND_EVENT_NAME)
    confirmed_status: str = field(default_factory=lambda: config.CONFIRMED_EVENT_STATUS)


@dataclass
class NormalizationRequest:
    start_date: str
    end_date: str
    options: NormalizerOptions = field(default_factory=NormalizerOptions)
    clock: BusinessClock = field(default_factory=BusinessClock)

    @classmethod
    def for_day(cls, day: str, **kwargs) -> "NormalizationRequest":
        return cls(start_date=day, end_date=day, **kwargs)

    @property
    def dates(self) -> List[str]:
        return [d.isoformat() for d in iter_dates(self.start_date, self.end_date)]


@dataclass(frozen=True)
class Dialect:
    name: str
    detect: Callable[[Dict[str, Any]], bool]
    parse: Callable[[Dict[str, Any], NormalizationRequest], Days]


def clean_marker(value: Any) -> str:
    """The backend sometimes double-encodes strings; drop stray quotes around them."""
    if value is None:
        return ""
    return str(value).strip().strip("\"'").strip()


def _events(payload: Dict[str, Any]) -> Any:
    return payload.get("events")


def _busy_list(payload: Dict[str, Any]) -> Any:
    occupied = payload.get("occupied")
    if isinstance(occupied, dict):
        return occupied.get("busy")
    return payload.get("busy")


def _unavailable_range(request: NormalizationRequest, message: str) -> Days:
    return {key: DaySlotAvailability.unavailable(key, message) for key in request.dates}


# --- Slot extraction shared by the interval dialects ---


def _slots_by_date(starts: Iterable[Any], request: NormalizationRequest) -> Dict[str, Set[str]]:
    """Maps each start instant to the catalogue slot of its business-time hour."""
    base = request.options.base_slots
    found: Dict[str, Set[str]] = {}
    for raw in starts:
        try:
            local = request.clock.to_business(raw)
        except (TypeError, ValueError, AttributeError):
            logger.warning(f"Skipping interval with unreadable start: {raw!r}")
            continue
        slot = slots.slot_for_hour(local.hour, base)
        if slot is None:
            logger.debug(f"Interval at {local.isoformat()} does not match any catalogue slot")
            continue
        found.setdefault(local.date().isoformat(), set()).add(slot)
    return found


def _day_from_booked(key: str, booked: Set[str], request: NormalizationRequest) -> DaySlotAvailability:
    base = request.options.base_slots
    blocked = set(booked)
    if request.options.exclude_adjacent:
        for slot in booked:
            blocked.update(slots.adjacent_slots(slot, base))
    available = [slot for slot in base if slot not in blocked]
    return DaySlotAvailability(
        date=key,
        available_slots=available,
        booked_slots=sorted(booked),
        message=FREE_BUSY_MESSAGE if available else FULLY_BOOKED_MESSAGE,
    )


def _days_from_busy_starts(starts: Iterable[Any], request: NormalizationRequest) -> Days:
    booked_by_date = _slots_by_date(starts, request)
    return {key: _day_from_booked(key, booked_by_date.get(key, set()), request) for key in request.dates}


# --- Attend-marker extraction shared by the event dialects ---


def _is_attend(name: str, status: str, options: NormalizerOptions) -> bool:
    return name == options.attend_name and status == options.confirmed_status


def _days_from_marked_events(events: Iterable[Tuple[Any, Any, Any]], request: NormalizationRequest) -> Days:
    """One day per event date. An attend+confirmed event opens every base slot and wins over other events that day."""
    options = request.options
    days: Days = {}
    for raw_name, raw_status, raw_start in events:
        name, status = clean_marker(raw_name), clean_marker(raw_status)
        start = clean_marker(raw_start)
        if not (name and status and start):
            logger.warning(f"Skipping incomplete event: {(raw_name, raw_status, raw_start)!r}")
            continue
        try:
            key = request.clock.business_date(start).isoformat()
        except (TypeError, ValueError):
            logger.warning(f"Skipping event with unreadable start: {start!r}")
            continue

        is_open = _is_attend(name, status, options)
        if key in days and days[key].has_availability and not is_open:
            continue
        days[key] = DaySlotAvailability(
            date=key,
            available_slots=list(options.base_slots) if is_open else [],
            event_name=name,
            event_status=status,
            message=OPEN_DAY_MESSAGE if is_open else CLOSED_DAY_MESSAGE,
        )
        logger.debug(f"{key}: event {name!r} ({status}) -> available={is_open}")
    return days


# --- Dialects ---


def _is_precomputed(payload: Dict[str, Any]) -> bool:
    return (
        isinstance(payload.get("weeklyAvailability"), dict)
        or isinstance(payload.get("agendarAvailability"), dict)
        or isinstance(payload.get("availableSlots"), list)
    )


def _restrict_to_catalogue(labels: Iterable[Any], base: List[str]) -> List[str]:
    kept = []
    for label in labels or []:
        try:
            slot = slots.canonical_slot(label)
        except InvalidSlotFormat:
            logger.warning(f"Dropping invalid slot label {label!r}")
            continue
        if slot in base:
            kept.append(slot)
        else:
            logger.debug(f"Dropping slot {slot} outside the catalogue")
    return kept


def _precomputed_day(key: str, entry: Any, request: NormalizationRequest) -> DaySlotAvailability:
    base = request.options.base_slots
    if not isinstance(entry, dict):
        return DaySlotAvailability.unavailable(key, MALFORMED_DAY_MESSAGE)
    try:
        day = DaySlotAvailability.model_validate({**entry, "date": key})
    except ModelValidationError as e:
        logger.warning(f"Malformed day entry for {key}: {e}")
        return DaySlotAvailability.unavailable(key, MALFORMED_DAY_MESSAGE)
    return day.replace(
        available_slots=_restrict_to_catalogue(day.available_slots, base),
        booked_slots=_restrict_to_catalogue(day.booked_slots, base),
        elapsed_slots=_restrict_to_catalogue(day.elapsed_slots, base),
    )


def parse_precomputed(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """Availability the backend already computed. Trusted as-is, no re-derivation."""
    mapping = payload.get("weeklyAvailability")
    if not isinstance(mapping, dict):
        mapping = payload.get("agendarAvailability")
    if not isinstance(mapping, dict):
        mapping = {request.start_date: payload}

    days: Days = {}
    for key, entry in mapping.items():
        try:
            canonical = parse_date(key).isoformat()
        except ValidationError:
            logger.warning(f"Skipping day with invalid key {key!r}")
            continue
        days[canonical] = _precomputed_day(canonical, entry, request)
    return days


def _is_busy_intervals(payload: Dict[str, Any]) -> bool:
    return isinstance(_busy_list(payload), list)


def parse_busy_intervals(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """Free/busy answer: each busy interval books the catalogue slot of its start hour."""
    busy = _busy_list(payload)
    logger.debug(f"Busy intervals received: {len(busy)}")
    starts = [item.get("start") for item in busy if isinstance(item, dict) and item.get("start")]
    return _days_from_busy_starts(starts, request)


def _is_available_intervals(payload: Dict[str, Any]) -> bool:
    return isinstance(payload.get("available"), list)


def parse_available_intervals(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """Older answer listing the free intervals instead of the busy ones."""
    starts = [item.get("start") for item in payload["available"] if isinstance(item, dict) and item.get("start")]
    open_by_date = _slots_by_date(starts, request)
    days: Days = {}
    for key in request.dates:
        available = sorted(open_by_date.get(key, set()))
        days[key] = DaySlotAvailability(
            date=key,
            available_slots=available,
            message=FREE_BUSY_MESSAGE if available else CLOSED_DAY_MESSAGE,
        )
    return days


def _is_calendar_events(payload: Dict[str, Any]) -> bool:
    events = _events(payload)
    return isinstance(events, list) and any(
        isinstance(event, dict) and isinstance(event.get("start"), dict) for event in events
    )


def parse_calendar_events(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """Raw calendar events: every event with start.dateTime occupies a slot."""
    starts = []
    for event in _events(payload):
        start = event.get("start") if isinstance(event, dict) else None
        if isinstance(start, dict) and start.get("dateTime"):
            starts.append(start["dateTime"])
    logger.debug(f"Calendar events with a start time: {len(starts)}")
    return _days_from_busy_starts(starts, request)


def _is_named_events(payload: Dict[str, Any]) -> bool:
    events = _events(payload)
    return isinstance(events, list) and any(
        isinstance(event, dict) and "name" in event and isinstance(event.get("start"), str) for event in events
    )


def parse_named_events(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """Plain {name, status, start} events, one per day."""
    events = [
        (event.get("name"), event.get("status"), event.get("start"))
        for event in _events(payload)
        if isinstance(event, dict)
    ]
    return _days_from_marked_events(events, request)


def _is_tagged_values(payload: Dict[str, Any]) -> bool:
    events = _events(payload)
    return (
        isinstance(events, list)
        and any(isinstance(item, dict) and "value" in item for item in events)
        and not any(isinstance(item, dict) and "start" in item for item in events)
    )


def parse_tagged_values(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """Flat [{value}, ...] list where every three values form (name, status, start)."""
    # Junk items keep their position so only their own event is lost.
    values = [item.get("value") if isinstance(item, dict) else None for item in _events(payload)]
    if len(values) % 3:
        logger.warning(f"Tagged value list has {len(values)} items; ignoring the incomplete last event")
    batches = [tuple(values[i:i + 3]) for i in range(0, len(values) - 2, 3)]
    return _days_from_marked_events(batches, request)


def _compact_text(payload: Dict[str, Any]) -> Optional[str]:
    events = _events(payload)
    if isinstance(events, dict) and isinstance(events.get("value"), str):
        return events["value"]
    if isinstance(events, str):
        return events
    return None


def _is_compact_string(payload: Dict[str, Any]) -> bool:
    return _compact_text(payload) is not None


def parse_compact_string(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    """A single "<name>,<status>,<isoDate>" string."""
    text = _compact_text(payload).strip()

    # events sometimes arrives JSON-encoded a second time
    if text[:1] in ("[", "{", '"'):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            decoded = None
        if decoded is not None and decoded != text:
            logger.debug("Decoded JSON-encoded events string, dispatching again")
            return normalize({"events": decoded}, request)

    parts = [part.strip() for part in text.split(",")]
    if len(parts) < 3:
        raise UpstreamFormatError(f"Compact event needs name,status,date: {text!r}")
    return _days_from_marked_events([(parts[0], parts[1], parts[2])], request)


def _always(payload: Dict[str, Any]) -> bool:
    return True


def parse_unrecognized(payload: Dict[str, Any], request: NormalizationRequest) -> Days:
    logger.warning(f"Unrecognized availability payload, keys: {sorted(payload)}")
    return _unavailable_range(request, UNRECOGNIZED_MESSAGE)


DIALECTS: List[Dialect] = [
    Dialect("precomputed", _is_precomputed, parse_precomputed),
    Dialect("busy-intervals", _is_busy_intervals, parse_busy_intervals),
    Dialect("available-intervals", _is_available_intervals, parse_available_intervals),
    Dialect("calendar-events", _is_calendar_events, parse_calendar_events),
    Dialect("named-events", _is_named_events, parse_named_events),
    Dialect("tagged-values", _is_tagged_values, parse_tagged_values),
    Dialect("compact-string", _is_compact_string, parse_compact_string),
    Dialect("unrecognized", _always, parse_unrecognized),
]


def coerce_payload(payload: Any) -> Dict[str, Any]:
    """Bare lists and strings are treated as the `events` field."""
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, (list, str)):
        return {"events": payload}
    return {}


def detect_dialect(payload: Any) -> Dialect:
    payload = coerce_payload(payload)
    for dialect in DIALECTS:
        if dialect.detect(payload):
            return dialect
    return DIALECTS[-1]


def normalize(payload: Any, request: NormalizationRequest) -> Days:
    """Days the payload speaks for. Never raises on bad upstream data."""
    payload = coerce_payload(payload)
    dialect = detect_dialect(payload)
    logger.debug(f"Payload dialect: {dialect.name} for {request.start_date}..{request.end_date}")
    try:
        return dialect.parse(payload, request)
    except (UpstreamFormatError, ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning(f"Failed to parse {dialect.name} payload: {e}")
        return _unavailable_range(request, PARSE_FAILED_MESSAGE)
