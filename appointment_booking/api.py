import logging
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as ModelValidationError

from appointment_booking import availability, config, upstream
from appointment_booking.errors import AuthorizationDenied, UpstreamUnavailable, ValidationError
from appointment_booking.models import BookingRequest, BookingResult, VerifyResult
from appointment_booking.timeutils import BusinessClock
from appointment_booking.validation import is_valid_email, validate_booking_data

logger = logging.getLogger(__name__)

ALLOWED_HEADERS = "Content-Type, X-Requested-With"
INVALID_PARAMS_REASON = "Invalid parameters. Use date=YYYY-MM-DD OR startDate=YYYY-MM-DD&endDate=YYYY-MM-DD"

app = FastAPI(
    title="Appointment Booking API",
    description="Availability, booking and email verification functions in front of the automation backend",
    version="0.1.0",
)


def get_clock() -> BusinessClock:
    return BusinessClock()


def cors_headers(request: Request, methods: str) -> Dict[str, str]:
    """Echo the caller's origin so previews on other hosts are not blocked."""
    return {
        "Access-Control-Allow-Origin": request.headers.get("origin") or "*",
        "Vary": "Origin",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
    }


def _methods_for(path: str) -> str:
    return "GET, OPTIONS" if path.endswith("/availability") else "POST, OPTIONS"


def json_response(request: Request, payload: Dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=payload, headers=cors_headers(request, _methods_for(request.url.path))
    )


def _failure_payload(request: Request, reason: str) -> Dict[str, Any]:
    if request.url.path.endswith("/verify"):
        return {"allowed": False, "reason": reason}
    return {"success": False, "reason": reason}


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Unparseable bodies are a client error, not a 422."""
    logger.debug(f"Rejected request body on {request.url.path}: {exc.errors()}")
    return json_response(request, _failure_payload(request, "Invalid payload."), 400)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return json_response(request, _failure_payload(request, "Internal server error."), 500)


@app.options("/api/availability")
@app.options("/api/booking")
@app.options("/api/verify")
def preflight(request: Request) -> Response:
    return Response(status_code=204, headers=cors_headers(request, _methods_for(request.url.path)))


@app.get("/api/availability")
def get_availability(
    request: Request,
    date: Optional[str] = Query(default=None),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    check_agendar: bool = Query(default=False, alias="checkAgendar"),
    clock: BusinessClock = Depends(get_clock),
) -> JSONResponse:
    logger.debug(f"Availability query: date={date} startDate={start_date} endDate={end_date} checkAgendar={check_agendar}")

    if start_date and end_date:
        return _range_availability(request, start_date, end_date, check_agendar, clock)
    if date and not check_agendar:
        return _daily_availability(request, date, clock)
    return json_response(request, {"success": False, "reason": INVALID_PARAMS_REASON}, 400)


def _daily_availability(request: Request, date_str: str, clock: BusinessClock) -> JSONResponse:
    try:
        outcome = availability.daily_availability(date_str, clock)
    except ValidationError as e:
        return json_response(request, {"success": False, "reason": e.message}, 400)

    payload = {
        "success": True,
        **outcome.day.to_wire(),
        "timezone": config.TIMEZONE_NAME,
        "lastUpdated": outcome.last_updated,
        "source": outcome.source,
    }
    if outcome.note:
        payload["note"] = outcome.note
    return json_response(request, payload)


def _range_availability(
    request: Request, start_date: str, end_date: str, check_agendar: bool, clock: BusinessClock
) -> JSONResponse:
    try:
        outcome = availability.range_availability(start_date, end_date, check_agendar=check_agendar, clock=clock)
    except ValidationError as e:
        return json_response(request, {"success": False, "reason": e.message}, 400)
    except UpstreamUnavailable as e:
        return json_response(
            request,
            {"success": False, "reason": e.message, "startDate": start_date, "endDate": end_date},
            500,
        )

    key = "agendarAvailability" if check_agendar else "weeklyAvailability"
    return json_response(
        request,
        {
            "success": True,
            "startDate": outcome.start_date,
            "endDate": outcome.end_date,
            key: {date_key: day.to_wire() for date_key, day in outcome.days.items()},
            "timezone": config.TIMEZONE_NAME,
            "lastUpdated": outcome.last_updated,
            "source": outcome.source,
        },
    )


@app.post("/api/booking")
def post_booking(
    request: Request,
    body: Dict[str, Any] = Body(...),
    clock: BusinessClock = Depends(get_clock),
) -> JSONResponse:
    try:
        validate_booking_data(body, config.BOOKING_REQUIRED_FIELDS, clock)
        booking = BookingRequest.model_validate(body)
    except ValidationError as e:
        logger.info(f"Rejected booking: {e.message}")
        return json_response(request, {"success": False, "reason": e.message}, 400)
    except ModelValidationError:
        return json_response(request, {"success": False, "reason": "Invalid booking data."}, 400)

    try:
        upstream.authorize_booking(booking.email)
    except AuthorizationDenied as e:
        logger.info(f"Booking denied for {booking.email}")
        return json_response(request, {"success": False, "reason": e.reason}, 403)
    except UpstreamUnavailable as e:
        return json_response(request, {"success": False, "reason": e.message}, 502)

    try:
        created = upstream.create_booking(booking.model_dump(by_alias=True, exclude_none=True))
    except UpstreamUnavailable as e:
        return json_response(request, {"success": False, "reason": e.message}, 502)

    event_id = created.get("eventId")
    result = BookingResult(
        success=True,
        message="Appointment created successfully!",
        event_id=str(event_id) if event_id is not None else None,
    )
    logger.info(f"Booking created for {booking.date} {booking.time}")
    return json_response(request, result.to_wire())


@app.post("/api/verify")
def post_verify(request: Request, body: Dict[str, Any] = Body(...)) -> JSONResponse:
    email = body.get("email")
    if not is_valid_email(email):
        return json_response(request, VerifyResult(allowed=False, reason="Invalid email.").to_wire(), 400)

    try:
        verdict = upstream.check_email_allowed(email.strip())
    except UpstreamUnavailable as e:
        return json_response(request, VerifyResult(allowed=False, reason=e.message).to_wire(), 502)

    return json_response(request, verdict.to_wire(), 200 if verdict.allowed else 403)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
