"""
Admin and student portal operations: booking lists, holidays, admin actions.
"""
import logging
from dataclasses import dataclass
from typing import List

from driving_booking import api, config
from driving_booking.models import BookingPage, Holiday

logger = logging.getLogger(__name__)


@dataclass
class BookingFilters:
    date: str | None = None
    suburb_id: str | None = None
    center_id: str | None = None
    page: int = 1

    def reset(self):
        self.date = None
        self.suburb_id = None
        self.center_id = None
        self.page = 1


def _to_page(response: dict, page: int, limit: int) -> BookingPage:
    return BookingPage(
        bookings=response.get("data") or [],
        total=response.get("total") or 0,
        page=page,
        limit=limit,
    )


def load_admin_bookings(filters: BookingFilters | None = None, limit: int = config.DEFAULT_PAGE_SIZE) -> BookingPage:
    filters = filters or BookingFilters()
    response = api.fetch_bookings(
        date=filters.date or None,
        suburb_id=filters.suburb_id or None,
        center_id=filters.center_id or None,
        page=filters.page,
        limit=limit,
    )
    return _to_page(response, filters.page, limit)


def load_student_bookings(page: int = 1, limit: int = config.DEFAULT_PAGE_SIZE) -> BookingPage:
    return _to_page(api.fetch_my_bookings(page, limit), page, limit)


def list_holidays() -> List[Holiday]:
    return api.fetch_holidays()


def add_holiday(date: str, reason: str, suburb_id: str | None = None) -> List[Holiday]:
    """Creates a holiday and returns the refreshed holiday list."""
    api.create_holiday(date, reason, suburb_id or None)
    logger.info(f"Added holiday on {date}: {reason}")
    return api.fetch_holidays()


def remove_holiday(holiday_id: str) -> List[Holiday]:
    api.delete_holiday(holiday_id)
    logger.info(f"Deleted holiday {holiday_id}")
    return api.fetch_holidays()


def confirm_booking(booking_id: str):
    result = api.confirm_booking_admin(booking_id)
    logger.info(f"Booking {booking_id} confirmed")
    return result


def cancel_booking(booking_id: str):
    result = api.cancel_booking_admin(booking_id)
    logger.info(f"Booking {booking_id} cancelled")
    return result
