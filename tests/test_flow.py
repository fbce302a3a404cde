from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from driving_booking import flow as booking_flow
from driving_booking import models
from driving_booking.exceptions import (
    ApiError,
    BookingCreateError,
    LockConflictError,
    LockExpiredError,
    SlotCapacityError,
    SlotNotSelectableError,
    StepError,
)
from driving_booking.models import BookingConfirmation, CustomerDetails, LockGrant, Package, Suburb, TimeSlot

DATE = "2025-03-10"
CENTER = models.TestingCenter(id=1, name="Liverpool", code="LIV")
SUBURB = Suburb(id=7, name="Casula", postalcode="2170")
PACK = Package(id=3, name="3 X 1HR PACKAGE", price=195)
LESSON = Package(id=2, name="1HR LESSON", price=60)


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


def day_feed():
    slots = []
    current = datetime.strptime(f"{DATE} 08:00", "%Y-%m-%d %H:%M")
    while current.hour < 16 or (current.hour == 16 and current.minute == 0):
        end = current + timedelta(minutes=60)
        slots.append(TimeSlot(startTime=current.isoformat(), endTime=end.isoformat(), available=True))
        current += timedelta(minutes=15)
    return slots


def at(slots, clock):
    return next(s for s in slots if s.start_time.endswith(f"T{clock}:00"))


def details():
    return CustomerDetails(
        customerName="Sam Driver",
        customerEmail="sam@example.com",
        customerPhone="0400000000",
        pickupAddress="1 Main St",
    )


@pytest.fixture
def api_mocks():
    with patch("driving_booking.api.fetch_slots") as fetch_slots, \
            patch("driving_booking.api.lock_slots") as lock_slots, \
            patch("driving_booking.api.unlock_slots") as unlock_slots, \
            patch("driving_booking.api.create_booking") as create_booking:
        fetch_slots.return_value = day_feed()
        lock_slots.return_value = LockGrant(token="tok-1", expiresAt=300000, sessionDuration=300)
        create_booking.return_value = BookingConfirmation(id=99)
        yield {
            "fetch_slots": fetch_slots,
            "lock_slots": lock_slots,
            "unlock_slots": unlock_slots,
            "create_booking": create_booking,
        }


def flow_at_slots(package=PACK, clock=None):
    notices = []
    flow = booking_flow.BookingFlow(on_notice=notices.append, start_timer=False, clock=clock or FakeClock(0))
    flow.select_center(CENTER)
    flow.select_suburb(SUBURB)
    flow.next_from_location()
    flow.select_package(package)
    flow.next_from_package()
    flow.select_date(DATE)
    return flow, notices


def flow_at_details(clock=None):
    flow, notices = flow_at_slots(clock=clock)
    slots = flow.catalog.slots
    flow.toggle_slot(at(slots, "08:00"))
    flow.toggle_slot(at(slots, "09:00"))
    flow.proceed_to_details()
    return flow, notices


def test_location_step_requires_suburb(api_mocks):
    flow = booking_flow.BookingFlow(start_timer=False)
    with pytest.raises(StepError):
        flow.next_from_location()
    with pytest.raises(StepError):
        flow.select_suburb(SUBURB)

    flow.select_center(CENTER)
    flow.select_suburb(SUBURB)
    flow.select_center(models.TestingCenter(id=2, name="Penrith"))
    assert flow.draft.suburb is None


def test_package_step_and_back(api_mocks):
    flow = booking_flow.BookingFlow(start_timer=False)
    flow.select_center(CENTER)
    flow.select_suburb(SUBURB)
    flow.next_from_location()

    with pytest.raises(StepError):
        flow.next_from_package()
    flow.back()
    assert flow.step == booking_flow.STEP_LOCATION
    with pytest.raises(StepError):
        flow.back()


def test_select_date_loads_catalog_with_package_rules(api_mocks):
    flow, _ = flow_at_slots()

    api_mocks["fetch_slots"].assert_called_once_with(DATE, 60, 15, 15)
    assert flow.step == booking_flow.STEP_SLOTS
    assert len(flow.catalog.slots) == 33


def test_changing_package_clears_selection_and_reloads(api_mocks):
    flow, _ = flow_at_slots()
    flow.toggle_slot(at(flow.catalog.slots, "08:00"))

    flow.back()
    flow.select_package(Package(id=4, name="1.5HR LESSON", price=90))
    flow.next_from_package()

    assert flow.draft.selected == []
    api_mocks["fetch_slots"].assert_called_with(DATE, 90, 30, 15)


def test_pack_capacity(api_mocks):
    flow, notices = flow_at_slots()
    slots = flow.catalog.slots
    for clock in ("08:00", "09:00", "10:00"):
        flow.toggle_slot(at(slots, clock))

    assert flow.selection_label() == "Selected Slots (3/3)"
    with pytest.raises(SlotCapacityError):
        flow.toggle_slot(at(slots, "11:00"))

    assert len(flow.draft.selected) == 3
    assert notices == ["You can only select 3 slots for this package."]


def test_hidden_slot_is_rejected_with_notice(api_mocks):
    flow, notices = flow_at_slots()

    with pytest.raises(SlotNotSelectableError):
        flow.toggle_slot(at(flow.catalog.slots, "08:15"))

    assert flow.draft.selected == []
    assert notices == ["Slot 8:15 AM cannot be selected."]


def test_deselect_updates_details(api_mocks):
    flow, _ = flow_at_slots()
    slot = at(flow.catalog.slots, "08:00")
    flow.toggle_slot(slot)
    assert flow.draft.selected_details == [slot]

    flow.toggle_slot(slot)
    assert flow.draft.selected == []
    assert flow.draft.selected_details == []


def test_single_lesson_price_per_slot(api_mocks):
    flow, _ = flow_at_slots(package=LESSON)
    slots = flow.catalog.slots
    flow.toggle_slot(at(slots, "08:00"))
    flow.toggle_slot(at(slots, "09:00"))

    assert flow.total_price() == 120
    assert flow.selection_label() == "2 Slot Selected"


def test_proceed_needs_selection(api_mocks):
    flow, _ = flow_at_slots()
    with pytest.raises(StepError):
        flow.proceed_to_details()
    api_mocks["lock_slots"].assert_not_called()


def test_proceed_locks_selection(api_mocks):
    flow, _ = flow_at_details()

    assert flow.step == booking_flow.STEP_DETAILS
    assert flow.lock.token == "tok-1"
    assert flow.time_left == "5:00"
    locked = api_mocks["lock_slots"].call_args[0][0]
    assert [s.time for s in locked] == ["2025-03-10T08:00:00", "2025-03-10T09:00:00"]


def test_lock_conflict_refreshes_slots(api_mocks):
    flow, notices = flow_at_slots()
    flow.toggle_slot(at(flow.catalog.slots, "08:00"))
    api_mocks["lock_slots"].side_effect = ApiError("Slots already locked", status_code=409)

    with pytest.raises(LockConflictError):
        flow.proceed_to_details()

    assert flow.step == booking_flow.STEP_SLOTS
    assert flow.lock.token is None
    assert notices == ["Slots already locked"]
    assert api_mocks["fetch_slots"].call_count == 2


def test_lock_granted_after_reset_is_released(api_mocks):
    flow, _ = flow_at_slots()
    flow.toggle_slot(at(flow.catalog.slots, "08:00"))

    def reset_then_grant(slots):
        flow.start_over()
        return LockGrant(token="late", expiresAt=300000, sessionDuration=300)

    api_mocks["lock_slots"].side_effect = reset_then_grant

    assert flow.proceed_to_details() is None
    assert flow.step == booking_flow.STEP_LOCATION
    assert flow.lock.token is None
    assert api_mocks["unlock_slots"].call_args[0][1] == "late"


def test_expiry_resets_to_location(api_mocks):
    clock = FakeClock(0)
    flow, notices = flow_at_details(clock=clock)

    clock.now = 300000
    flow.lock.countdown.tick()

    assert flow.step == booking_flow.STEP_LOCATION
    assert flow.lock.token is None
    assert flow.draft.selected == []
    assert flow.time_left == ""
    api_mocks["unlock_slots"].assert_called_once()
    assert notices == [booking_flow.EXPIRED_MESSAGE]


def test_cancel_details_unlocks_and_keeps_choices(api_mocks):
    flow, _ = flow_at_details()

    flow.cancel_details()

    assert flow.step == booking_flow.STEP_SLOTS
    assert flow.lock.token is None
    assert flow.draft.package == PACK
    assert flow.draft.suburb == SUBURB
    assert len(flow.draft.selected) == 2
    api_mocks["unlock_slots"].assert_called_once()
    assert api_mocks["fetch_slots"].call_count == 2


def test_submit_creates_booking(api_mocks):
    flow, _ = flow_at_details()

    confirmation = flow.submit(details())

    assert confirmation.id == 99
    assert flow.step == booking_flow.STEP_DONE
    assert flow.lock.token is None
    assert flow.draft.selected == []
    api_mocks["unlock_slots"].assert_not_called()

    payload = api_mocks["create_booking"].call_args[0][0]
    assert payload["testingCenterId"] == 1
    assert payload["suburbId"] == 7
    assert payload["packageId"] == 3
    assert payload["duration"] == 60
    assert payload["token"] == "tok-1"
    assert payload["totalAmount"] == 195
    assert payload["customerDetails"] == {
        "customerName": "Sam Driver",
        "customerEmail": "sam@example.com",
        "customerPhone": "0400000000",
        "pickupAddress": "1 Main St",
    }
    assert payload["slots"] == [
        {"date": DATE, "time": "2025-03-10T08:00:00"},
        {"date": DATE, "time": "2025-03-10T09:00:00"},
    ]


def test_submit_failure_keeps_lock(api_mocks):
    flow, notices = flow_at_details()
    api_mocks["create_booking"].side_effect = ApiError("Invalid pickup address", status_code=400)

    with pytest.raises(BookingCreateError, match="Invalid pickup address"):
        flow.submit(details())

    assert flow.step == booking_flow.STEP_DETAILS
    assert flow.lock.token == "tok-1"
    assert flow.submitting is False
    assert notices == ["Invalid pickup address"]


def test_malformed_confirmation_keeps_lock_and_allows_retry(api_mocks):
    flow, notices = flow_at_details()
    api_mocks["create_booking"].side_effect = lambda payload: BookingConfirmation.model_validate("Booking created")

    with pytest.raises(BookingCreateError):
        flow.submit(details())

    assert flow.submitting is False
    assert flow.step == booking_flow.STEP_DETAILS
    assert flow.lock.token == "tok-1"
    assert notices == [booking_flow.BOOKING_FAILED_MESSAGE]

    api_mocks["create_booking"].side_effect = None
    assert flow.submit(details()).id == 99
    assert flow.step == booking_flow.STEP_DONE


def test_submit_with_rejected_lock_expires(api_mocks):
    flow, notices = flow_at_details()
    api_mocks["create_booking"].side_effect = ApiError("Gone", status_code=410)

    with pytest.raises(LockExpiredError):
        flow.submit(details())

    assert flow.step == booking_flow.STEP_LOCATION
    assert flow.lock.token is None
    assert notices == [booking_flow.EXPIRED_MESSAGE]


def test_confirmation_after_reset_is_ignored(api_mocks):
    flow, _ = flow_at_details()

    def reset_then_confirm(payload):
        flow.start_over()
        return BookingConfirmation(id=5)

    api_mocks["create_booking"].side_effect = reset_then_confirm

    assert flow.submit(details()) is None
    assert flow.step == booking_flow.STEP_LOCATION
    assert flow.confirmation is None


def test_submit_outside_details_step(api_mocks):
    flow, _ = flow_at_slots()
    with pytest.raises(StepError):
        flow.submit(details())


def test_start_over_releases_lock(api_mocks):
    flow, _ = flow_at_details()

    flow.start_over()

    assert flow.step == booking_flow.STEP_LOCATION
    assert flow.draft == booking_flow.BookingDraft()
    assert flow.catalog.slots == []
    api_mocks["unlock_slots"].assert_called_once()


def test_lock_rejected():
    assert booking_flow.lock_rejected(ApiError("anything", status_code=410))
    assert booking_flow.lock_rejected(ApiError("Lock expired", status_code=400))
    assert booking_flow.lock_rejected(ApiError("Invalid lock token", status_code=400))
    assert not booking_flow.lock_rejected(ApiError("Slot unavailable", status_code=409))
