from datetime import date

import pytest

from appointment_booking import date_range
from appointment_booking.errors import ValidationError
from appointment_booking.models import DaySlotAvailability


def test_iter_dates_is_inclusive():
    days = list(date_range.iter_dates("2025-01-30", "2025-02-02"))
    assert days == [date(2025, 1, 30), date(2025, 1, 31), date(2025, 2, 1), date(2025, 2, 2)]


def test_iter_dates_single_day():
    assert list(date_range.iter_dates("2025-03-09", "2025-03-09")) == [date(2025, 3, 9)]


def test_iter_dates_rejects_reversed_range():
    with pytest.raises(ValidationError):
        list(date_range.iter_dates("2025-01-10", "2025-01-09"))


@pytest.mark.parametrize("bad", ["2025-1-5", "05/01/2025", "2025-02-30", "", None])
def test_parse_date_rejects_invalid_input(bad):
    with pytest.raises(ValidationError):
        date_range.parse_date(bad)


def test_expand_fills_gaps_in_order():
    partial = {
        "2025-01-22": DaySlotAvailability(date="2025-01-22", available_slots=["13:30"]),
        "2025-01-20": DaySlotAvailability(date="2025-01-20", available_slots=["15:30"]),
    }
    complete = date_range.expand("2025-01-20", "2025-01-23", partial)

    assert list(complete) == ["2025-01-20", "2025-01-21", "2025-01-22", "2025-01-23"]
    assert complete["2025-01-20"].available_slots == ["15:30"]
    assert complete["2025-01-21"].has_availability is False
    assert complete["2025-01-21"].available_slots == []
    assert complete["2025-01-21"].message == date_range.DEFAULT_MESSAGE
    assert complete["2025-01-23"].has_availability is False


def test_expand_drops_days_outside_range():
    partial = {"2025-02-01": DaySlotAvailability(date="2025-02-01", available_slots=["13:30"])}
    complete = date_range.expand("2025-01-30", "2025-01-31", partial)
    assert set(complete) == {"2025-01-30", "2025-01-31"}
