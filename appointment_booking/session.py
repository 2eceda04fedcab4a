import logging
from collections import deque
from typing import Iterable, List, Optional

from appointment_booking.client import AvailabilityClient
from appointment_booking.controller import (
    BookingFormController,
    Command,
    FetchDay,
    FetchRange,
    InvalidateCache,
    RenderInstructions,
    SubmitBooking,
)
from appointment_booking.models import VerifyResult

logger = logging.getLogger(__name__)


class BookingSession:
    """Runs the controller's commands against the client, one at a time, until none are left."""

    def __init__(
        self,
        controller: Optional[BookingFormController] = None,
        client: Optional[AvailabilityClient] = None,
    ):
        self.controller = controller or BookingFormController()
        self.client = client or AvailabilityClient()

    def execute(self, command: Command) -> List[Command]:
        logger.debug(f"Executing {command!r}")
        if isinstance(command, FetchRange):
            result = self.client.fetch_range(command.start_date, command.end_date, check_agendar=command.check_agendar)
            return self.controller.handle_range_loaded(command.tag, result)
        if isinstance(command, FetchDay):
            result = self.client.fetch_day(command.date, force=command.force)
            return self.controller.handle_day_loaded(command.tag, result)
        if isinstance(command, SubmitBooking):
            result = self.client.submit_booking(command.request)
            return self.controller.handle_submit_result(command.tag, result)
        if isinstance(command, InvalidateCache):
            self.client.invalidate(command.date)
            return []
        raise TypeError(f"Unknown command: {command!r}")

    def dispatch(self, commands: Iterable[Command]) -> RenderInstructions:
        queue = deque(commands)
        while queue:
            queue.extend(self.execute(queue.popleft()))
        return self.controller.render()

    # --- User actions ---

    def start(self) -> RenderInstructions:
        return self.dispatch(self.controller.mount())

    def select_date(self, date_str: str) -> RenderInstructions:
        return self.dispatch(self.controller.select_date(date_str))

    def select_slot(self, slot: str) -> RenderInstructions:
        self.controller.select_slot(slot)
        return self.controller.render()

    def update_field(self, name: str, value: str) -> RenderInstructions:
        self.controller.update_field(name, value)
        return self.controller.render()

    def submit(self) -> RenderInstructions:
        return self.dispatch(self.controller.submit())

    def refresh(self) -> RenderInstructions:
        return self.dispatch(self.controller.refresh())

    def verify_email(self, email: str) -> VerifyResult:
        return self.client.verify_email(email)
