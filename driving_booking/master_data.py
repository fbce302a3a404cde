import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List

from pydantic import ValidationError

from driving_booking import api
from driving_booking.exceptions import ApiError
from driving_booking.models import DateOption, Package, Suburb, TestingCenter

logger = logging.getLogger(__name__)


@dataclass
class MasterData:
    suburbs: List[Suburb] = field(default_factory=list)
    testing_centers: List[TestingCenter] = field(default_factory=list)
    error: str | None = None

    def find_center(self, center_id: str) -> TestingCenter | None:
        return next((c for c in self.testing_centers if str(c.id) == str(center_id)), None)

    def find_suburb(self, suburb_id: str) -> Suburb | None:
        return next((s for s in self.suburbs if str(s.id) == str(suburb_id)), None)


def load_master_data() -> MasterData:
    """Fetches suburbs and testing centers side by side."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        suburbs_future = pool.submit(api.fetch_suburbs)
        centers_future = pool.submit(api.fetch_testing_centers)
        try:
            suburbs = suburbs_future.result()
            centers = centers_future.result()
        except (ApiError, ValidationError) as e:
            logger.error(f"Failed to load master data: {e}")
            return MasterData(error=str(e))

    logger.info(f"Loaded {len(suburbs)} suburbs and {len(centers)} testing centers")
    return MasterData(suburbs=suburbs, testing_centers=centers)


def load_packages() -> List[Package]:
    try:
        return api.fetch_packages()
    except (ApiError, ValidationError) as e:
        logger.error(f"Failed to load packages: {e}")
        return []


def find_package(packages: List[Package], package_id: str) -> Package | None:
    return next((p for p in packages if str(p.id) == str(package_id)), None)


def load_available_dates(today: date | None = None) -> List[DateOption]:
    """Bookable dates start tomorrow."""
    today = today or date.today()
    start_date = (today + timedelta(days=1)).isoformat()
    try:
        return api.get_available_dates(start_date)
    except (ApiError, ValidationError) as e:
        logger.error(f"Failed to load dates: {e}")
        return []
