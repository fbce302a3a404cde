import logging
import os
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

# --- File Paths ---
DATA_DIR = os.environ.get("BOOKING_DATA_DIR", os.path.join(os.path.expanduser("~"), ".driving_booking"))
TOKEN_FILE = os.path.join(DATA_DIR, "session.json")

# --- URLs & API ---
API_BASE_URL = os.environ.get("BOOKING_API_URL", "http://localhost:3000").rstrip("/")
REQUEST_TIMEOUT = int(os.environ.get("BOOKING_API_TIMEOUT", "10"))

COMMON_HEADERS: Dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": os.environ.get("BOOKING_ACCEPT_LANGUAGE", "en-AU,en;q=0.9"),
}

# --- Slot grid ---
# The availability feed is always queried on a 15 minute grid so that
# neighbouring slots can be inspected, whatever the lesson duration.
SLOT_STEP_MINUTES = 15
DAY_START_MINUTES = 8 * 60
# Wall clock zone for zone-aware slot timestamps. None means the local zone.
BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE") or None

# --- Reservation lock ---
COUNTDOWN_TICK_SECONDS = 1.0
LOCK_INVALID_STATUS_CODES: Tuple[int, ...] = (410,)

# --- Packages ---
SINGLE_LESSON_PACKAGES: Tuple[str, ...] = ("45MIN LESSON", "1HR LESSON", "1.5HR LESSON", "2HR LESSON")
SINGLE_LESSON_MAX_SLOTS = 10
# Checked in order, first name fragment found wins.
MULTI_PACK_SLOTS: Tuple[Tuple[str, int], ...] = (("5 X 1HR", 5), ("10 X 1HR", 10), ("3 X 1HR", 3))
SINGLE_LESSON_MARGINS: Dict[str, int] = {
    "45MIN LESSON": 15,
    "1HR LESSON": 15,
    "1.5HR LESSON": 30,
    "2HR LESSON": 30,
}
DEFAULT_MARGIN_MINUTES = 15
DEFAULT_DURATION_MINUTES = 60

# --- Portal ---
DEFAULT_PAGE_SIZE = 10
STUDENT_ROLE = "Student"
# Roles allowed to use the admin portal, comma separated
PORTAL_ROLES: Tuple[str, ...] = tuple(
    role.strip() for role in os.environ.get("BOOKING_PORTAL_ROLES", "Admin").split(",") if role.strip()
)
LOGIN_ROUTE = "/login"
HOME_ROUTE = "/"
STUDENT_ROUTE = "/my-bookings"
PORTAL_ROUTE = "/portal"

if "BOOKING_API_URL" not in os.environ:
    logger.debug(f"BOOKING_API_URL not set. Using default {API_BASE_URL}.")
