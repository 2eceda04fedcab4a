"""
Booking form state machine.

Idle -> DateSelecting -> SlotLoading -> SlotSelecting -> Submitting -> Success | Failed

The controller never performs I/O. User actions and network results go in,
commands (what to fetch or submit next) and render instructions come out.
Every outgoing request carries a tag; results whose tag is no longer the
current one belong to a superseded selection and are dropped.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from itertools import count
from typing import Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as ModelValidationError

from appointment_booking import config
from appointment_booking.date_range import iter_dates
from appointment_booking.errors import UpstreamUnavailable
from appointment_booking.models import BookingRequest, BookingResult, DaySlotAvailability
from appointment_booking.slots import slot_end
from appointment_booking.time_filter import filter_passed
from appointment_booking.timeutils import BusinessClock
from appointment_booking.validation import is_valid_email, missing_fields

logger = logging.getLogger(__name__)

UPSTREAM_ERROR_MESSAGE = "Could not load availability. Please try again."
FULLY_BOOKED_TODAY_MESSAGE = "Today is fully booked. Please choose another day."
FULLY_BOOKED_MESSAGE = "This day is fully booked. Please choose another day."
ELAPSED_TODAY_MESSAGE = "Today's slots have already passed. Please choose another day."
NO_EVENTS_MESSAGE = "No appointments are offered on this day."
SUCCESS_MESSAGE = "Appointment booked! We will contact you to confirm."
NETWORK_ERROR_MESSAGE = "Network error. Please try again."
REQUIRED_FIELD_MESSAGE = "This field is required."

# Filled in from the selection, not typed by the user.
SELECTION_FIELDS = ("date", "time", "datetime")


class FormState(str, Enum):
    IDLE = "idle"
    DATE_SELECTING = "date_selecting"
    SLOT_LOADING = "slot_loading"
    SLOT_SELECTING = "slot_selecting"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


# --- Commands ---


@dataclass(frozen=True)
class FetchRange:
    start_date: str
    end_date: str
    tag: int
    check_agendar: bool = False


@dataclass(frozen=True)
class FetchDay:
    date: str
    tag: int
    force: bool = False


@dataclass(frozen=True)
class SubmitBooking:
    request: BookingRequest
    tag: int


@dataclass(frozen=True)
class InvalidateCache:
    date: str


Command = Union[FetchRange, FetchDay, SubmitBooking, InvalidateCache]


# --- Render instructions ---


@dataclass
class DateOption:
    date: str
    has_availability: Optional[bool]
    selected: bool
    disabled: bool


@dataclass
class SlotOption:
    start: str
    end: str
    bookable: bool
    selected: bool


@dataclass
class RenderInstructions:
    state: FormState
    dates: List[DateOption]
    slots: List[SlotOption]
    empty_message: Optional[str] = None
    notice: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, str] = field(default_factory=dict)
    submit_enabled: bool = False
    show_retry: bool = False


def one_month_window(start: date) -> date:
    """Last day of the month-long window starting at `start`."""
    year, month = (start.year + 1, 1) if start.month == 12 else (start.year, start.month + 1)
    same_day_next_month = date(year, month, min(start.day, calendar.monthrange(year, month)[1]))
    return same_day_next_month - timedelta(days=1)


def booking_required_fields() -> List[str]:
    """Form fields a BookingRequest cannot be built without."""
    return [
        name
        for name, info in BookingRequest.model_fields.items()
        if info.is_required() and name not in SELECTION_FIELDS
    ]


class BookingFormController:
    def __init__(
        self,
        clock: Optional[BusinessClock] = None,
        window_days: Optional[int] = None,
        window_mode: Optional[str] = None,
        required_fields: Optional[Sequence[str]] = None,
        show_booked: Optional[bool] = None,
    ):
        self.clock = clock or BusinessClock()
        self.window_days = config.DATE_WINDOW_DAYS if window_days is None else window_days
        self.window_mode = window_mode or config.WINDOW_MODE
        required = list(config.FORM_REQUIRED_FIELDS if required_fields is None else required_fields)
        self.required_fields = required + [name for name in booking_required_fields() if name not in required]
        self.show_booked = config.SHOW_BOOKED_SLOTS if show_booked is None else show_booked

        self.state = FormState.IDLE
        self.window: List[str] = []
        self.days: Dict[str, DaySlotAvailability] = {}
        self.selected_date: Optional[str] = None
        self.selected_slot: Optional[str] = None
        self.fields: Dict[str, str] = {}
        self.errors: Dict[str, str] = {}
        self.notice: Optional[str] = None
        self.load_error: Optional[str] = None

        self._tags = count(1)
        self._range_tag: Optional[int] = None
        self._day_tag: Optional[int] = None
        self._submit_tag: Optional[int] = None

    # --- Date window ---

    @property
    def check_agendar(self) -> bool:
        return self.window_mode == "agendar"

    def window_bounds(self):
        today = self.clock.today()
        if self.check_agendar:
            return today, one_month_window(today)
        return today, today + timedelta(days=max(self.window_days, 1) - 1)

    def first_available_date(self) -> Optional[str]:
        for key in self.window:
            day = self.days.get(key)
            if day is not None and day.has_availability:
                return key
        return self.window[0] if self.window else None

    # --- Inputs ---

    def mount(self) -> List[Command]:
        if self.state is not FormState.IDLE:
            return []
        start, end = self.window_bounds()
        self.window = [d.isoformat() for d in iter_dates(start, end)]
        self.state = FormState.DATE_SELECTING
        self._range_tag = next(self._tags)
        logger.debug(f"Mounted with window {self.window[0]}..{self.window[-1]}")
        return [FetchRange(self.window[0], self.window[-1], self._range_tag, check_agendar=self.check_agendar)]

    def handle_range_loaded(
        self, tag: int, result: Union[Dict[str, DaySlotAvailability], UpstreamUnavailable]
    ) -> List[Command]:
        if tag != self._range_tag:
            logger.debug(f"Dropping stale range result (tag {tag})")
            return []
        self._range_tag = None
        if isinstance(result, UpstreamUnavailable):
            logger.warning(f"Range availability failed: {result.message}")
        else:
            self.days.update(result)

        first = self.first_available_date()
        return self.select_date(first) if first else []

    def select_date(self, date_str: str) -> List[Command]:
        if self.state is FormState.SUBMITTING:
            return []
        if date_str == self.selected_date and self._day_tag is not None:
            # already loading this date; the control is disabled
            return []
        self.state = FormState.SLOT_LOADING
        return self._load_date(date_str)

    def _load_date(self, date_str: str, force: bool = False) -> List[Command]:
        self.selected_date = date_str
        self.selected_slot = None
        self.errors.pop("time", None)
        self.load_error = None
        self._day_tag = next(self._tags)
        return [FetchDay(date_str, self._day_tag, force=force)]

    def handle_day_loaded(self, tag: int, result: Union[DaySlotAvailability, UpstreamUnavailable]) -> List[Command]:
        if tag != self._day_tag:
            logger.debug(f"Dropping stale day result (tag {tag})")
            return []
        self._day_tag = None
        if isinstance(result, UpstreamUnavailable):
            self.load_error = result.message or UPSTREAM_ERROR_MESSAGE
        else:
            self.days[result.date] = result
        if self.state in (FormState.SLOT_LOADING, FormState.SUCCESS):
            self.state = FormState.SLOT_SELECTING
        return []

    def select_slot(self, slot: str) -> bool:
        if self.state in (FormState.SLOT_LOADING, FormState.SUBMITTING) or self._day_tag is not None:
            return False
        day = self.current_day()
        if day is None or slot not in day.available_slots:
            return False
        self.selected_slot = slot
        self.errors.pop("time", None)
        return True

    def update_field(self, name: str, value: str) -> None:
        self.fields[name] = value
        self.errors.pop(name, None)

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.selected_date:
            errors["date"] = "Choose a date."
        if not self.selected_slot:
            errors["time"] = "Choose a time slot."
        for name in missing_fields(self.fields, self.required_fields):
            errors[name] = REQUIRED_FIELD_MESSAGE
        if "email" not in errors and self.fields.get("email") and not is_valid_email(self.fields["email"]):
            errors["email"] = "Invalid email address."
        return errors

    def build_request(self) -> BookingRequest:
        starts_at = self.clock.slot_start(self.selected_date, self.selected_slot)
        data = {
            "duration": f"{config.SLOT_DURATION_MINUTES} min",
            **self.fields,
            "date": self.selected_date,
            "time": self.selected_slot,
            "datetime": starts_at.isoformat(),
        }
        return BookingRequest.model_validate(data)

    def submit(self) -> List[Command]:
        if self.state in (FormState.SUBMITTING, FormState.SLOT_LOADING, FormState.IDLE):
            return []
        self.errors = self.validate()
        if self.errors:
            logger.debug(f"Submission rejected: {sorted(self.errors)}")
            return []
        try:
            booking = self.build_request()
        except ModelValidationError as e:
            self.errors = {str(error["loc"][0]): REQUIRED_FIELD_MESSAGE for error in e.errors() if error["loc"]}
            logger.warning(f"Submission rejected by booking model: {sorted(self.errors)}")
            return []
        self.state = FormState.SUBMITTING
        self.notice = None
        self._submit_tag = next(self._tags)
        return [SubmitBooking(booking, self._submit_tag)]

    def handle_submit_result(self, tag: int, result: BookingResult) -> List[Command]:
        if tag != self._submit_tag:
            logger.debug(f"Dropping stale booking result (tag {tag})")
            return []
        self._submit_tag = None

        if not result.success:
            self.state = FormState.FAILED
            self.notice = result.reason or NETWORK_ERROR_MESSAGE
            return []

        booked_date, booked_slot = self.selected_date, self.selected_slot
        self.state = FormState.SUCCESS
        self.notice = result.message or SUCCESS_MESSAGE
        self.fields = {}
        self.errors = {}
        if booked_date in self.days:
            self.days[booked_date] = self.days[booked_date].book(booked_slot)

        commands: List[Command] = [InvalidateCache(booked_date)]
        next_date = self.first_available_date()
        if next_date:
            commands.extend(self._load_date(next_date))
        return commands

    def refresh(self) -> List[Command]:
        if self.state is FormState.SUBMITTING:
            return []
        if self.state is FormState.IDLE:
            return self.mount()
        if self.selected_date is None:
            return []
        self.state = FormState.SLOT_LOADING
        date_str = self.selected_date
        return [InvalidateCache(date_str), *self._load_date(date_str, force=True)]

    # --- Outputs ---

    def current_day(self) -> Optional[DaySlotAvailability]:
        day = self.days.get(self.selected_date) if self.selected_date else None
        if day is None:
            return None
        return filter_passed(day, self.clock.now(), self.clock)

    def empty_state_message(self, day: Optional[DaySlotAvailability]) -> str:
        if self.load_error or day is None:
            return UPSTREAM_ERROR_MESSAGE
        if day.elapsed_slots:
            return ELAPSED_TODAY_MESSAGE
        if day.booked_slots:
            return FULLY_BOOKED_TODAY_MESSAGE if self.clock.is_today(day.date) else FULLY_BOOKED_MESSAGE
        return NO_EVENTS_MESSAGE

    def render(self) -> RenderInstructions:
        loading = self._day_tag is not None
        submitting = self.state is FormState.SUBMITTING

        dates = [
            DateOption(
                date=key,
                has_availability=self.days[key].has_availability if key in self.days else None,
                selected=key == self.selected_date,
                disabled=submitting or (loading and key == self.selected_date),
            )
            for key in self.window
        ]

        slot_options: List[SlotOption] = []
        empty_message = None
        if self.selected_date and not loading:
            day = None if self.load_error else self.current_day()
            if day is not None:
                for slot in day.available_slots:
                    slot_options.append(SlotOption(slot, slot_end(slot), True, slot == self.selected_slot))
                if self.show_booked:
                    for slot in day.booked_slots:
                        slot_options.append(SlotOption(slot, slot_end(slot), False, False))
                slot_options.sort(key=lambda option: option.start)
            if day is None or not day.available_slots:
                empty_message = self.empty_state_message(day)

        return RenderInstructions(
            state=self.state,
            dates=dates,
            slots=slot_options,
            empty_message=empty_message,
            notice=self.notice,
            errors=dict(self.errors),
            fields=dict(self.fields),
            submit_enabled=(
                not loading
                and not submitting
                and self.state not in (FormState.IDLE, FormState.DATE_SELECTING)
                and bool(self.selected_date and self.selected_slot)
            ),
            show_retry=self.load_error is not None,
        )
