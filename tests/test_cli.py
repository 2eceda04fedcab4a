from datetime import datetime
from unittest.mock import patch

import pytest

from appointment_booking import cli
from appointment_booking.availability import RangeOutcome
from appointment_booking.errors import UpstreamUnavailable
from appointment_booking.models import DaySlotAvailability
from appointment_booking.timeutils import BusinessClock

CLOCK = BusinessClock(now_fn=lambda: datetime(2025, 1, 20, 10, 0))


@patch("appointment_booking.cli.uvicorn.run")
def test_main_serve(mock_run):
    cli.main(["serve", "--port", "9000"])
    mock_run.assert_called_once_with("appointment_booking.api:app", host="127.0.0.1", port=9000, log_level="info")


@patch("appointment_booking.cli.report")
def test_main_report(mock_report):
    mock_report.return_value = 0
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["-v", "report", "--start-date", "2025-01-01", "--days", "5", "--agendar"])
    assert exc_info.value.code == 0
    mock_report.assert_called_once_with(start_date="2025-01-01", days=5, agendar=True)


@patch("appointment_booking.cli.availability.range_availability")
def test_report_prints_each_day(mock_range, capsys):
    mock_range.return_value = RangeOutcome(
        start_date="2025-01-20",
        end_date="2025-01-21",
        days={
            "2025-01-20": DaySlotAvailability(date="2025-01-20", available_slots=["21:30"], booked_slots=["13:30"]),
            "2025-01-21": DaySlotAvailability(date="2025-01-21", message="No events for this day"),
        },
    )

    assert cli.report(days=2, clock=CLOCK) == 0

    mock_range.assert_called_once_with("2025-01-20", "2025-01-21", check_agendar=False, clock=CLOCK)
    out = capsys.readouterr().out
    assert "--- Availability Report for 2025-01-20 ---" in out
    assert "[AVAILABLE] 21:30" in out
    assert "[BOOKED]    13:30" in out
    assert "No events for this day" in out
    assert "1 of 2 days have open slots." in out


@patch("appointment_booking.cli.availability.range_availability")
def test_report_upstream_failure(mock_range):
    mock_range.side_effect = UpstreamUnavailable("down")
    assert cli.report(start_date="2025-01-20", days=3, clock=CLOCK) == 1


def test_report_bad_start_date():
    assert cli.report(start_date="20.01.2025", clock=CLOCK) == 1
