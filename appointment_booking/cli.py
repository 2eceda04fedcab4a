import argparse
import logging
import sys
import time
from datetime import timedelta
from typing import Optional

import uvicorn

from appointment_booking import availability, date_range
from appointment_booking.errors import UpstreamUnavailable, ValidationError
from appointment_booking.models import DaySlotAvailability
from appointment_booking.timeutils import BusinessClock

# --- Logging Setup ---

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool):
    """Configures logging to stderr with local time."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    formatter.converter = time.localtime
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def parse_arguments(argv=None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(description="Appointment availability and booking service.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP functions.")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Bind address. Defaults to 127.0.0.1.")
    serve.add_argument("--port", type=int, default=8000, help="Port. Defaults to 8000.")

    report = subparsers.add_parser("report", help="Print availability for upcoming days.")
    report.add_argument("--start-date", type=str, help="Start date in YYYY-MM-DD format. Defaults to today.")
    report.add_argument("--days", type=int, default=8, help="Number of days to check. Defaults to 8.")
    report.add_argument("--agendar", action="store_true", help="Only days with an attend event are open.")

    return parser.parse_args(argv)


def print_availability_report(day: DaySlotAvailability):
    """Prints one day's availability to stdout."""
    print(f"\n--- Availability Report for {day.date} ---")

    for slot in sorted([*day.available_slots, *day.booked_slots, *day.elapsed_slots]):
        if slot in day.available_slots:
            prefix = "[AVAILABLE]"
        elif slot in day.booked_slots:
            prefix = "[BOOKED]   "
        else:
            prefix = "[ELAPSED]  "
        print(f"{prefix} {slot}")

    if day.has_availability:
        print(f"Summary: {len(day.available_slots)} slots open on {day.date}.")
    else:
        print(f"Summary: {day.message or 'No slots available'} ({day.date}).")


def report(start_date: Optional[str] = None, days: int = 8, agendar: bool = False, clock=None) -> int:
    clock = clock or BusinessClock()
    try:
        start = date_range.parse_date(start_date) if start_date else clock.today()
    except ValidationError as e:
        logger.error(e.message)
        return 1
    end = start + timedelta(days=max(days, 1) - 1)

    try:
        outcome = availability.range_availability(
            start.isoformat(), end.isoformat(), check_agendar=agendar, clock=clock
        )
    except (ValidationError, UpstreamUnavailable) as e:
        logger.error(f"Could not fetch availability: {e.message}")
        return 1

    for day in outcome.days.values():
        print_availability_report(day)

    open_days = [key for key, day in outcome.days.items() if day.has_availability]
    print(f"\n{len(open_days)} of {len(outcome.days)} days have open slots.")
    return 0


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    if args.command == "serve":
        logger.info(f"Serving on {args.host}:{args.port}")
        uvicorn.run("appointment_booking.api:app", host=args.host, port=args.port, log_level="info")
        return

    sys.exit(report(start_date=args.start_date, days=args.days, agendar=args.agendar))


if __name__ == "__main__":
    main()
