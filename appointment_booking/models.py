from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DaySlotAvailability(WireModel):
    date: str  # YYYY-MM-DD
    has_availability: bool = False
    available_slots: List[str] = Field(default_factory=list)
    booked_slots: List[str] = Field(default_factory=list)
    elapsed_slots: List[str] = Field(default_factory=list)
    event_name: Optional[str] = None
    event_status: Optional[str] = None
    message: str = ""

    @model_validator(mode="after")
    def _enforce_invariants(self):
        booked = sorted(set(self.booked_slots))
        elapsed = sorted(set(self.elapsed_slots) - set(booked))
        available = sorted(set(self.available_slots) - set(booked) - set(elapsed))
        self.booked_slots = booked
        self.elapsed_slots = elapsed
        self.available_slots = available
        self.has_availability = bool(available)
        return self

    def replace(self, **changes) -> "DaySlotAvailability":
        """Returns a validated copy with the given fields changed."""
        return DaySlotAvailability(**{**self.model_dump(), **changes})

    def book(self, slot: str) -> "DaySlotAvailability":
        """Moves a slot from available to booked."""
        return self.replace(
            available_slots=[s for s in self.available_slots if s != slot],
            booked_slots=[*self.booked_slots, slot],
        )

    @classmethod
    def unavailable(cls, date: str, message: str) -> "DaySlotAvailability":
        return cls(date=date, message=message)


class BookingRequest(WireModel):
    """What the widget posts to /api/booking. Unknown form fields travel along untouched."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    date: str
    time: str
    datetime: str
    name: str
    email: str
    phone: str
    rg: str = ""
    cpf: str = ""
    reason: str = ""
    conheceu: Optional[str] = None
    duration: Optional[str] = None


class BookingResult(WireModel):
    success: bool
    message: Optional[str] = None
    reason: Optional[str] = None
    event_id: Optional[str] = None


class VerifyResult(WireModel):
    allowed: bool
    reason: Optional[str] = None
