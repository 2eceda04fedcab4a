from unittest.mock import MagicMock

import pytest
import requests

from appointment_booking.cache import AvailabilityCache
from appointment_booking.client import MALFORMED_DAY_MESSAGE, NETWORK_ERROR_MESSAGE, AvailabilityClient
from appointment_booking.errors import UpstreamUnavailable
from appointment_booking.models import BookingRequest, DaySlotAvailability


def _response(status_code=200, json_data=None):
    mock = MagicMock()
    mock.status_code = status_code
    mock.ok = 200 <= status_code < 300
    mock.json.return_value = json_data if json_data is not None else {}
    return mock


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return AvailabilityClient(base_url="http://widget.test/", cache=AvailabilityCache(ttl_seconds=300), session=session)


def _booking():
    return BookingRequest(
        date="2025-01-21",
        time="15:30",
        datetime="2025-01-21T15:30:00-03:00",
        name="Ana",
        email="ana@example.com",
        phone="11999999999",
    )


def test_fetch_day_calls_api_and_caches(client, session):
    session.request.return_value = _response(
        json_data={"success": True, "date": "2025-01-21", "availableSlots": ["13:30"], "bookedSlots": ["15:30"]}
    )

    day = client.fetch_day("2025-01-21")
    again = client.fetch_day("2025-01-21")

    assert day.available_slots == ["13:30"]
    assert again == day
    session.request.assert_called_once_with(
        "GET", "http://widget.test/api/availability", timeout=client.timeout, params={"date": "2025-01-21"}
    )


def test_fetch_day_force_skips_cache(client, session):
    session.request.return_value = _response(json_data={"success": True, "availableSlots": ["13:30"]})
    client.fetch_day("2025-01-21")
    client.fetch_day("2025-01-21", force=True)
    assert session.request.call_count == 2


def test_fetch_day_network_error_is_a_value(client, session):
    session.request.side_effect = requests.exceptions.ConnectionError("offline")

    result = client.fetch_day("2025-01-21")

    assert isinstance(result, UpstreamUnavailable)
    assert result.message == NETWORK_ERROR_MESSAGE
    assert "2025-01-21" not in client.cache


def test_fetch_day_server_error_carries_reason(client, session):
    session.request.return_value = _response(status_code=400, json_data={"success": False, "reason": "Bad date"})
    result = client.fetch_day("2025-01-21")
    assert isinstance(result, UpstreamUnavailable)
    assert result.message == "Bad date"
    assert result.status_code == 400


def test_fetch_range(client, session):
    session.request.return_value = _response(
        json_data={
            "success": True,
            "weeklyAvailability": {
                "2025-01-21": {"availableSlots": ["13:30"]},
                "2025-01-20": {"availableSlots": []},
                "2025-01-22": "broken",
            },
        }
    )

    days = client.fetch_range("2025-01-20", "2025-01-22")

    assert list(days) == ["2025-01-20", "2025-01-21", "2025-01-22"]
    assert days["2025-01-21"].has_availability is True
    assert days["2025-01-22"].has_availability is False
    assert days["2025-01-22"].message == MALFORMED_DAY_MESSAGE
    assert session.request.call_args.kwargs["params"] == {"startDate": "2025-01-20", "endDate": "2025-01-22"}


def test_fetch_range_agendar(client, session):
    session.request.return_value = _response(
        json_data={"success": True, "agendarAvailability": {"2025-01-21": {"availableSlots": ["13:30"]}}}
    )
    days = client.fetch_range("2025-01-20", "2025-02-19", check_agendar=True)
    assert list(days) == ["2025-01-21"]
    assert session.request.call_args.kwargs["params"]["checkAgendar"] == "true"


def test_submit_booking_success_invalidates_cache(client, session):
    client.cache.set("2025-01-21", DaySlotAvailability(date="2025-01-21", available_slots=["15:30"]))
    session.request.return_value = _response(json_data={"success": True, "message": "Created", "eventId": 42})

    result = client.submit_booking(_booking())

    assert result.success is True
    assert result.event_id == "42"
    assert "2025-01-21" not in client.cache
    assert session.request.call_args.kwargs["json"]["email"] == "ana@example.com"


def test_submit_booking_failure_surfaces_reason(client, session):
    session.request.return_value = _response(status_code=403, json_data={"success": False, "reason": "Not allowed"})
    result = client.submit_booking(_booking())
    assert result.success is False
    assert result.reason == "Not allowed"


def test_submit_booking_network_error(client, session):
    session.request.side_effect = requests.exceptions.Timeout("slow")
    result = client.submit_booking(_booking())
    assert result.success is False
    assert result.reason == NETWORK_ERROR_MESSAGE


def test_verify_email(client, session):
    session.request.return_value = _response(json_data={"allowed": True})
    assert client.verify_email("ana@example.com").allowed is True

    session.request.return_value = _response(status_code=403, json_data={"allowed": False, "reason": "Blocked"})
    verdict = client.verify_email("ana@example.com")
    assert verdict.allowed is False
    assert verdict.reason == "Blocked"
