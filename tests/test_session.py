from datetime import datetime
from unittest.mock import MagicMock

from appointment_booking.controller import BookingFormController, FormState
from appointment_booking.errors import UpstreamUnavailable
from appointment_booking.models import BookingResult, DaySlotAvailability, VerifyResult
from appointment_booking.session import BookingSession
from appointment_booking.timeutils import BusinessClock

CLOCK = BusinessClock(now_fn=lambda: datetime(2025, 1, 20, 10, 0))
FIELDS = {
    "name": "Ana",
    "rg": "12.345.678-9",
    "cpf": "123.456.789-00",
    "email": "ana@example.com",
    "phone": "11999999999",
    "reason": "First visit",
}


def _day(date_str, available=(), booked=()):
    return DaySlotAvailability(date=date_str, available_slots=list(available), booked_slots=list(booked))


def _session(client):
    controller = BookingFormController(clock=CLOCK, window_days=3, window_mode="days", show_booked=True)
    return BookingSession(controller=controller, client=client)


def test_start_loads_range_then_first_available_day():
    client = MagicMock()
    client.fetch_range.return_value = {
        "2025-01-20": _day("2025-01-20"),
        "2025-01-21": _day("2025-01-21", ["13:30", "15:30"]),
        "2025-01-22": _day("2025-01-22"),
    }
    client.fetch_day.return_value = _day("2025-01-21", ["13:30", "15:30"])

    view = _session(client).start()

    client.fetch_range.assert_called_once_with("2025-01-20", "2025-01-22", check_agendar=False)
    client.fetch_day.assert_called_once_with("2025-01-21", force=False)
    assert view.state is FormState.SLOT_SELECTING
    assert [s.start for s in view.slots] == ["13:30", "15:30"]
    assert [o.has_availability for o in view.dates] == [False, True, False]


def test_full_booking_flow():
    client = MagicMock()
    client.fetch_range.return_value = {"2025-01-21": _day("2025-01-21", ["13:30", "15:30"])}
    client.fetch_day.side_effect = [
        _day("2025-01-21", ["13:30", "15:30"]),
        _day("2025-01-21", ["13:30"], ["15:30"]),
    ]
    client.submit_booking.return_value = BookingResult(success=True, message="Booked", event_id="evt-1")
    session = _session(client)

    session.start()
    session.select_slot("15:30")
    for name, value in FIELDS.items():
        session.update_field(name, value)
    view = session.submit()

    booking = client.submit_booking.call_args.args[0]
    assert booking.time == "15:30"
    client.invalidate.assert_called_once_with("2025-01-21")
    assert view.notice == "Booked"
    assert [(s.start, s.bookable) for s in view.slots] == [("13:30", True), ("15:30", False)]
    assert view.fields == {}


def test_failed_booking_keeps_the_form():
    client = MagicMock()
    client.fetch_range.return_value = {"2025-01-21": _day("2025-01-21", ["13:30"])}
    client.fetch_day.return_value = _day("2025-01-21", ["13:30"])
    client.submit_booking.return_value = BookingResult(success=False, reason="Email not authorized for bookings.")
    session = _session(client)

    session.start()
    session.select_slot("13:30")
    for name, value in FIELDS.items():
        session.update_field(name, value)
    view = session.submit()

    assert view.state is FormState.FAILED
    assert view.notice == "Email not authorized for bookings."
    assert view.fields == FIELDS
    client.invalidate.assert_not_called()


def test_refresh_after_upstream_error():
    client = MagicMock()
    client.fetch_range.return_value = UpstreamUnavailable("down")
    client.fetch_day.side_effect = [UpstreamUnavailable("down"), _day("2025-01-20", ["15:30"])]
    session = _session(client)

    view = session.start()
    assert view.show_retry is True

    view = session.refresh()
    assert view.show_retry is False
    assert [s.start for s in view.slots] == ["15:30"]
    client.invalidate.assert_called_once_with("2025-01-20")
    assert client.fetch_day.call_args.kwargs["force"] is True


def test_verify_email_passes_through():
    client = MagicMock()
    client.verify_email.return_value = VerifyResult(allowed=True)
    assert _session(client).verify_email("ana@example.com").allowed is True
