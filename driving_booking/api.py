import logging
from typing import Any, Dict, List

import cloudscraper
import requests

from driving_booking import config, persist
from driving_booking.exceptions import ApiError
from driving_booking.models import (
    BookingConfirmation,
    DateOption,
    Holiday,
    LockGrant,
    Package,
    SelectedSlot,
    Suburb,
    TestingCenter,
    TimeSlot,
)

logger = logging.getLogger(__name__)


def create_session():
    """Creates an HTTP session with the common headers and the stored bearer token."""
    session = cloudscraper.create_scraper()
    session.headers.update(config.COMMON_HEADERS)
    token = persist.load_token()
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
    return session


def _server_message(response) -> str | None:
    """Extracts the 'message' field from an error response body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if isinstance(message, list):
        return "; ".join(str(m) for m in message)
    return message


def request(method: str, path: str, **kwargs) -> Any:
    """Sends a request to the booking API and returns the decoded JSON body."""
    url = f"{config.API_BASE_URL}{path}"
    logger.debug(f"{method} {url} params={kwargs.get('params')}")

    try:
        session = create_session()
        response = session.request(method, url, timeout=config.REQUEST_TIMEOUT, **kwargs)
        logger.debug(f"Response status: {response.status_code}")
        response.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        message = (_server_message(e.response) if e.response is not None else None) or str(e)
        logger.error(f"{method} {path} failed with status {status}: {message}")
        raise ApiError(message, status_code=status) from e
    except requests.exceptions.RequestException as e:
        logger.error(f"{method} {path} failed: {e}")
        raise ApiError(f"Could not reach the booking service: {e}") from e

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise ApiError(f"Unexpected response from {path}", status_code=response.status_code) from e


def _slot_payload(slots: List[SelectedSlot]) -> List[Dict[str, str]]:
    return [slot.model_dump() for slot in slots]


# --- Reference data ---


def fetch_testing_centers() -> List[TestingCenter]:
    data = request("GET", "/testing-centers") or []
    return [TestingCenter.model_validate(item) for item in data]


def fetch_suburbs() -> List[Suburb]:
    data = request("GET", "/suburbs") or []
    return [Suburb.model_validate(item) for item in data]


def fetch_packages() -> List[Package]:
    data = request("GET", "/packages") or []
    return [Package.model_validate(item) for item in data]


def get_available_dates(start_date: str) -> List[DateOption]:
    """Per-day availability flags starting at start_date (YYYY-MM-DD)."""
    data = request("GET", "/bookings/dates", params={"startDate": start_date}) or []
    return [DateOption.model_validate(item) for item in data]


# --- Slots & locking ---


def fetch_slots(date: str, duration: int, margin: int | None = None, step: int | None = None) -> List[TimeSlot]:
    """Fetches the raw slot feed for one date at `step` minute granularity."""
    params = {"date": date, "duration": duration, "margin": margin, "step": step}
    logger.info(f"Fetching slots for {date} (duration={duration}, margin={margin}, step={step})")
    data = request("GET", "/slots/availability", params=params) or []
    return [TimeSlot.model_validate(item) for item in data]


def lock_slots(slots: List[SelectedSlot]) -> LockGrant:
    data = request("POST", "/bookings/lock", json={"slots": _slot_payload(slots)})
    if not data:
        raise ApiError("Lock response was empty")
    return LockGrant.model_validate(data)


def unlock_slots(slots: List[SelectedSlot], token: str) -> Any:
    return request("POST", "/bookings/unlock", json={"token": token, "slots": _slot_payload(slots)})


def create_booking(payload: Dict[str, Any]) -> BookingConfirmation:
    data = request("POST", "/bookings/create", json=payload) or {}
    return BookingConfirmation.model_validate(data)


# --- Auth ---


def login_user(email: str, password: str) -> str:
    """Returns the access token issued for the credentials."""
    data = request("POST", "/auth/login", json={"email": email, "password": password}) or {}
    token = data.get("access_token")
    if not token:
        raise ApiError("Login response did not contain an access token")
    return token


# --- Portal ---


def fetch_bookings(
    date: str | None = None,
    suburb_id: str | None = None,
    center_id: str | None = None,
    page: int = 1,
    limit: int = config.DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    params = {"date": date, "suburbId": suburb_id, "centerId": center_id, "page": page, "limit": limit}
    return request("GET", "/bookings", params=params) or {"data": [], "total": 0}


def fetch_my_bookings(page: int = 1, limit: int = config.DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
    return request("GET", "/bookings/my-bookings", params={"page": page, "limit": limit}) or {"data": [], "total": 0}


def fetch_holidays() -> List[Holiday]:
    data = request("GET", "/holidays") or []
    return [Holiday.model_validate(item) for item in data]


def create_holiday(date: str, reason: str, suburb_id: str | None = None) -> Any:
    payload = {"date": date, "reason": reason}
    if suburb_id:
        payload["suburbId"] = suburb_id
    return request("POST", "/holidays", json=payload)


def delete_holiday(holiday_id: str) -> Any:
    return request("DELETE", f"/holidays/{holiday_id}")


def confirm_booking_admin(booking_id: str) -> Any:
    return request("POST", f"/bookings/{booking_id}/confirm")


def cancel_booking_admin(booking_id: str) -> Any:
    return request("POST", f"/bookings/{booking_id}/cancel")
