from datetime import datetime
from unittest.mock import patch

import pytest

from appointment_booking import availability
from appointment_booking.errors import UpstreamUnavailable, ValidationError
from appointment_booking.timeutils import BusinessClock

BASE = ["13:30", "15:30", "17:30", "19:30", "21:30"]
CLOCK = BusinessClock(now_fn=lambda: datetime(2025, 1, 20, 20, 0))


@patch("appointment_booking.availability.upstream.fetch_daily_payload")
def test_daily_availability_from_busy_intervals(mock_fetch):
    mock_fetch.return_value = {"busy": [{"start": "2025-01-21T18:30:00Z"}]}

    outcome = availability.daily_availability("2025-01-21", CLOCK)

    assert outcome.source == availability.SOURCE_UPSTREAM
    assert outcome.note is None
    assert outcome.day.booked_slots == ["15:30"]
    assert outcome.day.available_slots == ["13:30", "17:30", "19:30", "21:30"]
    mock_fetch.assert_called_once_with("2025-01-21")


@patch("appointment_booking.availability.upstream.fetch_daily_payload")
def test_daily_availability_filters_elapsed_slots_today(mock_fetch):
    mock_fetch.return_value = {"busy": []}
    outcome = availability.daily_availability("2025-01-20", CLOCK)
    assert outcome.day.available_slots == ["21:30"]
    assert outcome.day.elapsed_slots == ["13:30", "15:30", "17:30", "19:30"]


@patch("appointment_booking.availability.upstream.fetch_daily_payload")
def test_daily_availability_falls_back_to_default_slots(mock_fetch):
    mock_fetch.side_effect = UpstreamUnavailable("down")

    outcome = availability.daily_availability("2025-01-22", CLOCK)

    assert outcome.source == availability.SOURCE_FALLBACK
    assert outcome.note == availability.FALLBACK_NOTE
    assert outcome.day.available_slots == BASE
    assert outcome.day.has_availability is True


def test_daily_availability_rejects_bad_date():
    with pytest.raises(ValidationError):
        availability.daily_availability("20-01-2025", CLOCK)


@patch("appointment_booking.availability.upstream.fetch_range_payload")
def test_range_availability_has_one_entry_per_date(mock_fetch):
    mock_fetch.return_value = {"events": {"value": "Atender,confirmed,2025-01-22T13:30:00.000Z"}}

    outcome = availability.range_availability("2025-01-20", "2025-01-26", clock=CLOCK)

    assert list(outcome.days) == [
        "2025-01-20", "2025-01-21", "2025-01-22", "2025-01-23", "2025-01-24", "2025-01-25", "2025-01-26",
    ]
    assert outcome.days["2025-01-22"].available_slots == BASE
    assert outcome.days["2025-01-21"].has_availability is False
    mock_fetch.assert_called_once_with("2025-01-20", "2025-01-26", check_agendar=False)


@patch("appointment_booking.availability.upstream.fetch_range_payload")
def test_range_availability_propagates_upstream_failure(mock_fetch):
    mock_fetch.side_effect = UpstreamUnavailable("down", status_code=502)
    with pytest.raises(UpstreamUnavailable):
        availability.range_availability("2025-01-20", "2025-01-26", clock=CLOCK)


@patch("appointment_booking.availability.config.MAX_RANGE_DAYS", 7)
def test_range_availability_rejects_long_ranges():
    with pytest.raises(ValidationError):
        availability.range_availability("2025-01-01", "2025-01-31", clock=CLOCK)


def test_range_availability_rejects_reversed_range():
    with pytest.raises(ValidationError):
        availability.range_availability("2025-01-26", "2025-01-20", clock=CLOCK)
