"""
Multi-step booking flow.

Steps:
  1 Location     pick a testing centre and a suburb
  2 Package      pick a lesson package
  3 Date & Time  pick a date and one or more slots
  4 Details      slots are locked, customer details are entered
  5 Done         booking created

The flow owns the BookingDraft, the SlotCatalog and the ReservationLock.
Every reset bumps a generation counter; API responses that come back for an
older generation are ignored.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from pydantic import ValidationError

from driving_booking import api, config, packages, projector
from driving_booking.catalog import SlotCatalog
from driving_booking.exceptions import (
    ApiError,
    BookingCreateError,
    LockConflictError,
    LockExpiredError,
    SlotCapacityError,
    SlotNotSelectableError,
    StepError,
)
from driving_booking.models import (
    BookingConfirmation,
    CustomerDetails,
    LockGrant,
    Package,
    SelectedSlot,
    Suburb,
    TestingCenter,
    TimeSlot,
)
from driving_booking.reservation import ReservationLock

logger = logging.getLogger(__name__)

STEP_LOCATION = 1
STEP_PACKAGE = 2
STEP_SLOTS = 3
STEP_DETAILS = 4
STEP_DONE = 5
STEP_TITLES = ("Location", "Package", "Date & Time", "Details")

EXPIRED_MESSAGE = "Session expired. Please start over."
BOOKING_FAILED_MESSAGE = "Booking failed."


@dataclass
class BookingDraft:
    center: TestingCenter | None = None
    suburb: Suburb | None = None
    package: Package | None = None
    date: str = ""
    selected: List[SelectedSlot] = field(default_factory=list)
    # Full slot objects for the selection, for display
    selected_details: List[TimeSlot] = field(default_factory=list)


def lock_rejected(error: ApiError) -> bool:
    """True if a booking failure says the reservation lock is no longer valid."""
    if error.status_code in config.LOCK_INVALID_STATUS_CODES:
        return True
    message = (error.message or "").lower()
    return "lock" in message and ("expired" in message or "invalid" in message)


class BookingFlow:
    def __init__(
        self,
        catalog: SlotCatalog | None = None,
        on_notice: Callable[[str], None] | None = None,
        start_timer: bool = True,
        clock: Callable[[], int] | None = None,
    ):
        self.step = STEP_LOCATION
        self.draft = BookingDraft()
        self.catalog = catalog or SlotCatalog()
        lock_kwargs: Dict[str, Any] = {"on_expire": self._on_lock_expired, "start_timer": start_timer}
        if clock is not None:
            lock_kwargs["clock"] = clock
        self.lock = ReservationLock(**lock_kwargs)
        self.notices: List[str] = []
        self.confirmation: BookingConfirmation | None = None
        self.submitting = False
        self._on_notice = on_notice
        self._generation = 0
        self._mutex = threading.RLock()

    # --- Derived state ---

    @property
    def rules(self) -> packages.LessonRules:
        return packages.rules_for(self.draft.package)

    @property
    def time_left(self) -> str:
        return self.lock.time_left

    def display_slots(self) -> List[TimeSlot]:
        rules = self.rules
        return projector.project_display_slots(self.catalog.slots, self.draft.selected, rules.duration, rules.margin)

    def total_price(self) -> float:
        return packages.total_price(self.draft.package, len(self.draft.selected))

    def selection_label(self) -> str:
        return packages.selection_label(self.draft.package, len(self.draft.selected))

    # --- Step 1: location ---

    def select_center(self, center: TestingCenter | None):
        with self._mutex:
            self._require_step(STEP_LOCATION)
            self.draft.center = center
            self.draft.suburb = None

    def select_suburb(self, suburb: Suburb | None):
        with self._mutex:
            self._require_step(STEP_LOCATION)
            if suburb is not None and self.draft.center is None:
                raise StepError("Select a testing center first.")
            self.draft.suburb = suburb

    def next_from_location(self):
        with self._mutex:
            self._require_step(STEP_LOCATION)
            if self.draft.suburb is None:
                raise StepError("Select a suburb first.")
            self.step = STEP_PACKAGE

    # --- Step 2: package ---

    def select_package(self, package: Package):
        with self._mutex:
            self._require_step(STEP_PACKAGE)
            self.draft.package = package

    def next_from_package(self):
        with self._mutex:
            self._require_step(STEP_PACKAGE)
            if self.draft.package is None:
                raise StepError("Select a package first.")
            self._clear_selection()
            self.step = STEP_SLOTS
            if self.draft.date:
                self._load_catalog()

    def back(self):
        with self._mutex:
            if self.step == STEP_SLOTS:
                self.step = STEP_PACKAGE
            elif self.step == STEP_PACKAGE:
                self.step = STEP_LOCATION
            else:
                raise StepError(f"Cannot go back from step {self.step}.")

    # --- Step 3: date & time ---

    def select_date(self, date: str) -> List[TimeSlot]:
        with self._mutex:
            self._require_step(STEP_SLOTS)
            self.draft.date = date
            return self._load_catalog()

    def toggle_slot(self, slot: TimeSlot) -> List[SelectedSlot]:
        with self._mutex:
            self._require_step(STEP_SLOTS)
            removing = projector.is_selected(slot, self.draft.selected)
            try:
                selected = projector.toggle_slot(
                    self.draft.selected,
                    slot,
                    self.draft.date,
                    self.rules.max_slots,
                    displayed=self.display_slots(),
                )
            except (SlotCapacityError, SlotNotSelectableError) as e:
                self._notify(str(e))
                raise

            self.draft.selected = selected
            if removing:
                self.draft.selected_details = [
                    s for s in self.draft.selected_details if s.start_time != slot.start_time
                ]
            else:
                self.draft.selected_details = [*self.draft.selected_details, slot]
            return selected

    def proceed_to_details(self) -> LockGrant | None:
        """Locks the selected slots and moves on to the details step."""
        with self._mutex:
            self._require_step(STEP_SLOTS)
            if not self.draft.selected:
                raise StepError("Select at least one slot first.")
            generation = self._generation
            slots = list(self.draft.selected)

        try:
            grant = self.lock.acquire(slots)
        except LockConflictError as e:
            with self._mutex:
                self._notify(str(e))
                if generation == self._generation:
                    self._refresh_catalog()
            raise

        with self._mutex:
            if generation != self._generation:
                logger.warning("Discarding a lock granted after the booking was reset.")
                self.lock.release()
                return None
            self.step = STEP_DETAILS
            return grant

    # --- Step 4: details ---

    def cancel_details(self):
        """Unlocks the slots and returns to slot selection, keeping location and package."""
        with self._mutex:
            self._require_step(STEP_DETAILS)
            self._generation += 1
            self.lock.release()
            self.step = STEP_SLOTS
            self._refresh_catalog()

    def submit(self, details: CustomerDetails) -> BookingConfirmation | None:
        with self._mutex:
            self._require_step(STEP_DETAILS)
            if not self.lock.is_held:
                raise LockExpiredError(EXPIRED_MESSAGE)
            generation = self._generation
            payload = self._booking_payload(details)
            self.submitting = True

        try:
            confirmation = api.create_booking(payload)
        except (ApiError, ValidationError) as e:
            with self._mutex:
                if generation != self._generation:
                    raise LockExpiredError(EXPIRED_MESSAGE) from e
                if isinstance(e, ApiError) and lock_rejected(e):
                    self._expire()
                    raise LockExpiredError(EXPIRED_MESSAGE) from e
                # A malformed confirmation body carries no message for the user
                message = (e.message if isinstance(e, ApiError) else None) or BOOKING_FAILED_MESSAGE
                logger.error(f"Booking creation failed: {e}")
                self._notify(message)
                raise BookingCreateError(message) from e
        finally:
            with self._mutex:
                self.submitting = False

        with self._mutex:
            if generation != self._generation:
                logger.warning("Ignoring a booking confirmation that arrived after the booking was reset.")
                return None
            self.lock.consume()
            self._clear_selection()
            self.confirmation = confirmation
            self.step = STEP_DONE
            logger.info(f"Booking created: {confirmation.id}")
            return confirmation

    # --- Resets ---

    def expire(self):
        """Hard reset after the reservation ran out."""
        with self._mutex:
            self._expire()

    def start_over(self):
        with self._mutex:
            self._generation += 1
            if self.lock.is_held:
                self.lock.release()
            self.step = STEP_LOCATION
            self.draft = BookingDraft()
            self.catalog.clear()
            self.confirmation = None
            self.submitting = False

    # --- Internals ---

    def _on_lock_expired(self, token: str):
        with self._mutex:
            # A countdown of a lock that was already released must not reset the flow.
            if token != self.lock.token:
                return
            self._expire()

    def _expire(self):
        self._generation += 1
        self.lock.release()
        self._clear_selection()
        self.step = STEP_LOCATION
        self._notify(EXPIRED_MESSAGE)

    def _clear_selection(self):
        self.draft.selected = []
        self.draft.selected_details = []

    def _load_catalog(self) -> List[TimeSlot]:
        if self.draft.suburb is None:
            return []
        rules = self.rules
        slots = self.catalog.load(self.draft.date, rules.duration, rules.margin)
        if self.catalog.error:
            self._notify(self.catalog.error)
        return slots

    def _refresh_catalog(self):
        self.catalog.refresh()
        if self.catalog.error:
            self._notify(self.catalog.error)

    def _booking_payload(self, details: CustomerDetails) -> Dict[str, Any]:
        draft = self.draft
        return {
            "testingCenterId": draft.center.id if draft.center else None,
            "suburbId": details.suburb or (draft.suburb.id if draft.suburb else None),
            "packageId": draft.package.id if draft.package else None,
            "duration": self.rules.duration,
            "token": self.lock.token,
            "totalAmount": self.total_price(),
            "customerDetails": details.model_dump(by_alias=True, exclude_none=True, exclude={"suburb"}),
            "slots": [slot.model_dump() for slot in draft.selected],
        }

    def _require_step(self, step: int):
        if self.step != step:
            raise StepError(f"Action needs step {step}, the booking is at step {self.step}.")

    def _notify(self, message: str):
        logger.info(f"Notice: {message}")
        self.notices.append(message)
        if self._on_notice:
            self._on_notice(message)
