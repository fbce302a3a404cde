import logging
from typing import List, Tuple

from pydantic import ValidationError

from driving_booking import api, config
from driving_booking.exceptions import ApiError
from driving_booking.models import TimeSlot

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Unable to load slots for this date."

CatalogKey = Tuple[str, int, int]


class SlotCatalog:
    """Raw slot feed for one (date, duration, margin) query."""

    def __init__(self, step: int = config.SLOT_STEP_MINUTES):
        self.step = step
        self.slots: List[TimeSlot] = []
        self.error: str | None = None
        self.key: CatalogKey | None = None
        self._generation = 0

    def load(self, date: str | None, duration: int, margin: int) -> List[TimeSlot]:
        """Loads the slots for the query, re-fetching when any input changed."""
        if duration <= 0:
            raise ValueError(f"duration must be positive, got {duration}")
        if margin < 0:
            raise ValueError(f"margin must not be negative, got {margin}")

        if not date:
            self.clear()
            return self.slots

        key = (date, duration, margin)
        if key == self.key and self.error is None:
            return self.slots
        return self._fetch(key)

    def refresh(self) -> List[TimeSlot]:
        """Re-fetches the current query, e.g. after slots were taken by someone else."""
        if self.key is None:
            return self.slots
        return self._fetch(self.key)

    def clear(self):
        self._generation += 1
        self.slots = []
        self.error = None
        self.key = None

    def _fetch(self, key: CatalogKey) -> List[TimeSlot]:
        self._generation += 1
        generation = self._generation
        date, duration, margin = key

        # Never show the previous query's slots while or after loading this one.
        self.key = key
        self.slots = []
        self.error = None

        try:
            slots = api.fetch_slots(date, duration, margin, self.step)
        except (ApiError, ValidationError) as e:
            if generation == self._generation:
                logger.error(f"Failed to load slots for {date}: {e}")
                self.error = LOAD_ERROR_MESSAGE
            return self.slots

        if generation != self._generation:
            logger.debug(f"Discarding stale slot response for {date}")
            return self.slots

        self.slots = sorted(slots, key=lambda s: s.start)
        logger.info(f"Loaded {len(self.slots)} slots for {date}")
        return self.slots
