import logging
import re
from datetime import date, timedelta
from typing import Dict, Iterator, Mapping, Union

from appointment_booking.errors import ValidationError
from appointment_booking.models import DaySlotAvailability

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "No events for this day"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: Union[str, date]) -> date:
    """Parses a strict YYYY-MM-DD string."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid calendar date: {value}")


def iter_dates(start: Union[str, date], end: Union[str, date]) -> Iterator[date]:
    """Every calendar date from start to end, inclusive.

    Works on dates rather than instants, so the host timezone can never
    shift a day.
    """
    current, last = parse_date(start), parse_date(end)
    if last < current:
        raise ValidationError("endDate must not be before startDate.")
    while current <= last:
        yield current
        current += timedelta(days=1)


def expand(
    start: Union[str, date],
    end: Union[str, date],
    partial: Mapping[str, DaySlotAvailability],
    message: str = DEFAULT_MESSAGE,
) -> Dict[str, DaySlotAvailability]:
    """Fills every gap in the range with an explicit unavailable day.

    Keys come out in chronological order; entries outside the range are dropped.
    """
    complete: Dict[str, DaySlotAvailability] = {}
    for day in iter_dates(start, end):
        key = day.isoformat()
        if key in partial:
            complete[key] = partial[key]
        else:
            complete[key] = DaySlotAvailability.unavailable(key, message)

    extra = set(partial) - set(complete)
    if extra:
        logger.debug(f"Dropping {len(extra)} day(s) outside {start}..{end}: {sorted(extra)}")
    return complete
