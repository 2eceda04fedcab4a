import logging
import os
from typing import List

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


# --- Automation backend (webhooks) ---
AUTOMATION_DAILY_URL = os.environ.get("AUTOMATION_DAILY_URL")
AUTOMATION_RANGE_URL = os.environ.get("AUTOMATION_RANGE_URL")
# Day-granularity variant; falls back to the range webhook when unset.
AUTOMATION_AGENDAR_URL = os.environ.get("AUTOMATION_AGENDAR_URL")
AUTOMATION_VALIDATE_URL = os.environ.get("AUTOMATION_VALIDATE_URL")
AUTOMATION_BOOKING_URL = os.environ.get("AUTOMATION_BOOKING_URL")
AUTOMATION_API_KEY = os.environ.get("AUTOMATION_API_KEY")

REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "10"))

# --- Slot catalogue ---
BASE_SLOTS: List[str] = _env_list("BASE_SLOTS", "13:30,15:30,17:30,19:30,21:30")
SLOT_DURATION_MINUTES = int(os.environ.get("SLOT_DURATION_MINUTES", "60"))
EXCLUDE_ADJACENT_SLOTS = _env_flag("EXCLUDE_ADJACENT_SLOTS")

# --- Business timezone (fixed offset, no daylight saving) ---
BUSINESS_UTC_OFFSET_HOURS = int(os.environ.get("BUSINESS_UTC_OFFSET_HOURS", "-3"))
TIMEZONE_NAME = os.environ.get("TIMEZONE_NAME", "America/Sao_Paulo")

# --- Attend marker ---
ATTEND_EVENT_NAME = os.environ.get("ATTEND_EVENT_NAME", "Atender")
CONFIRMED_EVENT_STATUS = os.environ.get("CONFIRMED_EVENT_STATUS", "confirmed")

# --- HTTP functions ---
MAX_RANGE_DAYS = int(os.environ.get("MAX_RANGE_DAYS", "62"))
BOOKING_REQUIRED_FIELDS: List[str] = _env_list(
    "BOOKING_REQUIRED_FIELDS", "date,time,datetime,name,rg,cpf,email,phone,reason"
)

# --- Client widget ---
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000")
CACHE_TTL_SECONDS = float(os.environ.get("CACHE_TTL_SECONDS", "300"))
DATE_WINDOW_DAYS = int(os.environ.get("DATE_WINDOW_DAYS", "8"))
# "days" shows DATE_WINDOW_DAYS days, "agendar" shows a full month of attend-event days.
WINDOW_MODE = os.environ.get("WINDOW_MODE", "days")
SHOW_BOOKED_SLOTS = _env_flag("SHOW_BOOKED_SLOTS", "true")
# Form fields the widget requires before it lets a booking through.
FORM_REQUIRED_FIELDS: List[str] = _env_list("FORM_REQUIRED_FIELDS", "name,rg,cpf,email,phone,reason")

if not AUTOMATION_DAILY_URL or not AUTOMATION_RANGE_URL:
    logger.warning("Automation backend URLs incomplete. Availability will use fallbacks.")
