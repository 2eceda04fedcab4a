import logging
from typing import Any, Dict, Optional, Union

import requests
from pydantic import ValidationError as ModelValidationError

from appointment_booking import config
from appointment_booking.cache import AvailabilityCache
from appointment_booking.errors import UpstreamUnavailable
from appointment_booking.models import BookingRequest, BookingResult, DaySlotAvailability, VerifyResult

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please try again."
MALFORMED_DAY_MESSAGE = "Malformed availability entry"

DayResult = Union[DaySlotAvailability, UpstreamUnavailable]
RangeResult = Union[Dict[str, DaySlotAvailability], UpstreamUnavailable]


class AvailabilityClient:
    """Talks to the widget's own HTTP functions. Failures come back as values, never raised."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        cache: Optional[AvailabilityCache] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.cache = cache if cache is not None else AvailabilityCache()
        self.session = session or requests.Session()
        self.timeout = config.REQUEST_TIMEOUT if timeout is None else timeout

    def _call(self, method: str, path: str, **kwargs) -> Union[requests.Response, UpstreamUnavailable]:
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            return UpstreamUnavailable(NETWORK_ERROR_MESSAGE)

    @staticmethod
    def _body(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _availability(self, params: Dict[str, str]) -> Union[Dict[str, Any], UpstreamUnavailable]:
        response = self._call("GET", "/api/availability", params=params)
        if isinstance(response, UpstreamUnavailable):
            return response
        data = self._body(response)
        if not response.ok or not data.get("success"):
            reason = data.get("reason") or f"Availability request failed ({response.status_code})"
            logger.warning(f"Availability request {params} failed: {reason}")
            return UpstreamUnavailable(reason, status_code=response.status_code)
        return data

    def fetch_day(self, date_str: str, force: bool = False) -> DayResult:
        """Availability for one date, served from cache within the TTL unless forced."""
        if not force:
            cached = self.cache.get(date_str)
            if cached is not None:
                logger.debug(f"Cache hit for {date_str}")
                return cached

        data = self._availability({"date": date_str})
        if isinstance(data, UpstreamUnavailable):
            return data
        try:
            day = DaySlotAvailability.model_validate({**data, "date": data.get("date") or date_str})
        except ModelValidationError as e:
            logger.warning(f"Malformed availability for {date_str}: {e}")
            return UpstreamUnavailable("Malformed availability response")

        self.cache.set(date_str, day)
        return day

    def fetch_range(self, start_date: str, end_date: str, check_agendar: bool = False) -> RangeResult:
        params = {"startDate": start_date, "endDate": end_date}
        if check_agendar:
            params["checkAgendar"] = "true"
        data = self._availability(params)
        if isinstance(data, UpstreamUnavailable):
            return data

        mapping = data.get("agendarAvailability" if check_agendar else "weeklyAvailability")
        if not isinstance(mapping, dict):
            return UpstreamUnavailable("Malformed availability response")

        days: Dict[str, DaySlotAvailability] = {}
        for key in sorted(mapping):
            entry = mapping[key]
            try:
                days[key] = DaySlotAvailability.model_validate({**entry, "date": key})
            except (ModelValidationError, TypeError) as e:
                logger.warning(f"Malformed day {key}, marking it unavailable: {e}")
                days[key] = DaySlotAvailability.unavailable(key, MALFORMED_DAY_MESSAGE)
        return days

    def invalidate(self, date_str: str) -> None:
        self.cache.invalidate(date_str)

    def submit_booking(self, booking: BookingRequest) -> BookingResult:
        response = self._call("POST", "/api/booking", json=booking.model_dump(by_alias=True, exclude_none=True))
        if isinstance(response, UpstreamUnavailable):
            return BookingResult(success=False, reason=NETWORK_ERROR_MESSAGE)

        data = self._body(response)
        if response.ok and data.get("success"):
            self.cache.invalidate(booking.date)
            event_id = data.get("eventId")
            return BookingResult(
                success=True,
                message=data.get("message"),
                event_id=str(event_id) if event_id is not None else None,
            )

        reason = data.get("reason") or f"Booking failed ({response.status_code})"
        logger.warning(f"Booking for {booking.date} {booking.time} failed: {reason}")
        return BookingResult(success=False, reason=reason)

    def verify_email(self, email: str) -> VerifyResult:
        response = self._call("POST", "/api/verify", json={"email": email})
        if isinstance(response, UpstreamUnavailable):
            return VerifyResult(allowed=False, reason=NETWORK_ERROR_MESSAGE)
        data = self._body(response)
        if response.ok and data.get("allowed"):
            return VerifyResult(allowed=True)
        return VerifyResult(allowed=False, reason=data.get("reason") or "Access denied.")
