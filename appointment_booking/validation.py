import re
from typing import Any, Iterable, List, Mapping, Optional

from appointment_booking.date_range import parse_date
from appointment_booking.errors import ValidationError
from appointment_booking.slots import parse_slot
from appointment_booking.timeutils import BusinessClock

EMAIL_RE = re.compile(r".+@.+\..+")


def is_filled(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None and value != ""


def missing_fields(data: Mapping[str, Any], required: Iterable[str]) -> List[str]:
    return [name for name in required if not is_filled(data.get(name))]


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.fullmatch(email.strip()))


def validate_booking_data(
    data: Mapping[str, Any], required: Iterable[str], clock: Optional[BusinessClock] = None
) -> None:
    """Raises ValidationError unless the booking can be forwarded to the calendar."""
    clock = clock or BusinessClock()

    missing = missing_fields(data, required)
    if missing:
        raise ValidationError(f"Invalid booking data. Missing: {', '.join(missing)}")
    if not is_valid_email(data.get("email")):
        raise ValidationError("Invalid email address.")

    parse_date(data.get("date"))
    parse_slot(data.get("time"))

    try:
        starts_at = clock.to_business(data.get("datetime"))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError("Invalid booking datetime.")
    if starts_at <= clock.now():
        raise ValidationError("Booking time must be in the future.")
