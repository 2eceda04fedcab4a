import logging
from typing import Any, Dict, Optional

import requests

from appointment_booking import config
from appointment_booking.errors import AuthorizationDenied, UpstreamUnavailable
from appointment_booking.models import VerifyResult

logger = logging.getLogger(__name__)

DEFAULT_DENIED_REASON = "Email not authorized for bookings."


def build_headers() -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if config.AUTOMATION_API_KEY:
        headers["X-Api-Key"] = config.AUTOMATION_API_KEY
    return headers


def _json_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        logger.debug("Automation backend answered with a non-JSON body")
        return {}


def _request(method: str, url: Optional[str], what: str, **kwargs) -> requests.Response:
    if not url:
        raise UpstreamUnavailable(f"No automation backend URL configured for {what}")

    logger.info(f"{method} {what} -> {url}")
    try:
        response = requests.request(method, url, headers=build_headers(), timeout=config.REQUEST_TIMEOUT, **kwargs)
    except requests.exceptions.RequestException as e:
        logger.error(f"Error calling automation backend for {what}: {e}")
        raise UpstreamUnavailable(f"Connection error with the automation backend: {e}")

    logger.debug(f"Response status: {response.status_code}")
    return response


def _get_json(url: Optional[str], what: str, params: Optional[Dict[str, str]] = None) -> Any:
    response = _request("GET", url, what, params=params)
    if not response.ok:
        logger.error(f"Automation backend returned {response.status_code} for {what}: {response.text[:200]}")
        raise UpstreamUnavailable(
            f"Automation backend error: {response.status_code}", status_code=response.status_code
        )
    return _json_body(response)


def fetch_daily_payload(date_str: str) -> Any:
    """Raw availability payload for a single day."""
    return _get_json(config.AUTOMATION_DAILY_URL, f"daily availability {date_str}", params={"date": date_str})


def fetch_range_payload(start_date: str, end_date: str, check_agendar: bool = False) -> Any:
    """Raw availability payload for a date range."""
    url = config.AUTOMATION_RANGE_URL
    if check_agendar and config.AUTOMATION_AGENDAR_URL:
        url = config.AUTOMATION_AGENDAR_URL
    params = {"startDate": start_date, "endDate": end_date}
    return _get_json(url, f"range availability {start_date}..{end_date}", params=params)


def check_email_allowed(email: str) -> VerifyResult:
    """Asks the automation backend whether this email may book."""
    if not config.AUTOMATION_VALIDATE_URL:
        logger.warning("Email validation URL missing. Allowing email without check.")
        return VerifyResult(allowed=True)

    response = _request("POST", config.AUTOMATION_VALIDATE_URL, "email verification", json={"email": email})
    if not response.ok and response.status_code != 403:
        raise UpstreamUnavailable("Verification failed (upstream).", status_code=response.status_code)

    data = _json_body(response)
    if not isinstance(data, dict):
        data = {}
    if response.ok and data.get("allowed"):
        return VerifyResult(allowed=True)
    return VerifyResult(allowed=False, reason=data.get("reason") or DEFAULT_DENIED_REASON)


def authorize_booking(email: str) -> None:
    """Raises AuthorizationDenied unless the email may book."""
    verdict = check_email_allowed(email)
    if not verdict.allowed:
        raise AuthorizationDenied(verdict.reason or DEFAULT_DENIED_REASON)


def create_booking(booking_data: Dict[str, Any]) -> Dict[str, Any]:
    """Forwards a validated booking to the calendar. Returns the backend's JSON answer."""
    response = _request("POST", config.AUTOMATION_BOOKING_URL, "booking", json=booking_data)
    if not response.ok:
        logger.error(f"Calendar booking failed with {response.status_code}: {response.text[:200]}")
        raise UpstreamUnavailable("Failed to create the appointment in the calendar.", status_code=response.status_code)

    data = _json_body(response)
    return data if isinstance(data, dict) else {}
