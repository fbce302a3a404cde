import logging
from datetime import datetime
from typing import List, Sequence

from driving_booking import config, master_data, packages, portal, projector
from driving_booking.auth import AuthSession, guard_route
from driving_booking.catalog import SlotCatalog
from driving_booking.exceptions import AuthError, BookingClientError, StepError
from driving_booking.flow import BookingFlow
from driving_booking.models import BookingConfirmation, BookingPage, CustomerDetails, SelectedSlot, TimeSlot, User

logger = logging.getLogger(__name__)


def find_slot_by_clock(slots: Sequence[TimeSlot], clock: str) -> TimeSlot | None:
    """Finds the slot starting at a wall clock time given as HH:MM."""
    try:
        parsed = datetime.strptime(clock, "%H:%M")
    except ValueError:
        raise StepError(f"Invalid time {clock}, expected HH:MM")
    target = parsed.hour * 60 + parsed.minute
    return next((s for s in slots if projector.slot_minutes(s.start_time) == target), None)


def print_slot_report(date: str, display: Sequence[TimeSlot], selected: Sequence[SelectedSlot]):
    """Prints the selectable slots of a day to stdout."""
    print(f"\n--- Available Time Slots for {date} ---")

    for slot in display:
        state = projector.slot_state(slot, selected)
        prefix = "[SELECTED] " if state == projector.SELECTED else "[AVAILABLE]"
        print(f"{prefix} {projector.format_clock(slot.start_time)} to {projector.format_clock(slot.end_time)}")

    if not display:
        print("No available slots for this date.")


def show_slots(package_id: str, date: str, select: Sequence[str] = ()) -> List[TimeSlot]:
    """Shows the slot grid of a date for a package, optionally with slots pre-selected."""
    package = master_data.find_package(master_data.load_packages(), package_id)
    if package is None:
        raise StepError(f"Unknown package {package_id}")
    rules = packages.rules_for(package)

    catalog = SlotCatalog()
    raw = catalog.load(date, rules.duration, rules.margin)
    if catalog.error:
        print(catalog.error)
        return []

    selected: List[SelectedSlot] = []
    for clock in select:
        display = projector.project_display_slots(raw, selected, rules.duration, rules.margin)
        slot = find_slot_by_clock(display, clock)
        if slot is None:
            raise StepError(f"No selectable slot at {clock} on {date}")
        selected = projector.toggle_slot(selected, slot, date, rules.max_slots, displayed=display)

    display = projector.project_display_slots(raw, selected, rules.duration, rules.margin)
    print(f"Package: {package.name} ({rules.duration} min lessons, {rules.margin} min gap)")
    print_slot_report(date, display, selected)
    print(f"{packages.selection_label(package, len(selected))} | Total: ${packages.total_price(package, len(selected)):g}")
    return display


def book(
    center_id: str,
    suburb_id: str,
    package_id: str,
    date: str,
    slot_times: Sequence[str],
    details: CustomerDetails,
) -> BookingConfirmation | None:
    """Runs the whole booking flow for one set of slots."""
    flow = BookingFlow(on_notice=lambda message: print(f"! {message}"))

    data = master_data.load_master_data()
    if data.error:
        raise StepError(f"Could not load locations: {data.error}")
    center = data.find_center(center_id)
    suburb = data.find_suburb(suburb_id)
    if center is None or suburb is None:
        raise StepError(f"Unknown testing center {center_id} or suburb {suburb_id}")
    flow.select_center(center)
    flow.select_suburb(suburb)
    flow.next_from_location()

    package = master_data.find_package(master_data.load_packages(), package_id)
    if package is None:
        raise StepError(f"Unknown package {package_id}")
    flow.select_package(package)
    flow.next_from_package()

    flow.select_date(date)
    for clock in slot_times:
        slot = find_slot_by_clock(flow.display_slots(), clock)
        if slot is None:
            raise StepError(f"No selectable slot at {clock} on {date}")
        flow.toggle_slot(slot)

    flow.proceed_to_details()
    print(f"Slots held. Time remaining: {flow.time_left}")
    try:
        confirmation = flow.submit(details)
    except BookingClientError:
        if flow.lock.is_held:
            flow.cancel_details()
        raise

    if confirmation is not None:
        print_confirmation(confirmation, flow.rules.duration)
    return confirmation


def print_confirmation(confirmation: BookingConfirmation, duration: int):
    print("\nBooking Submitted!")
    print("Your booking has been submitted successfully. An instructor will contact you shortly.")
    if confirmation.instructor:
        print(f"Assigned Instructor: {confirmation.instructor.name} ({confirmation.instructor.contact})")
    logger.debug(f"Confirmation payload: {confirmation.model_dump()} ({duration} min lessons)")


def print_booking_page(booking_page: BookingPage):
    for booking in booking_page.bookings:
        slots = ", ".join(
            f"{projector.format_clock(s['startTime'])}-{projector.format_clock(s['endTime'])}"
            for s in booking.get("bookingSlots") or []
            if s.get("startTime") and s.get("endTime")
        )
        print(f"[{booking.get('status', '?'):>9}] {booking.get('id')}: {booking.get('package', '')} {slots}".rstrip())
    if not booking_page.bookings:
        print("No bookings found.")
    print(f"Page {booking_page.page} of {max(1, booking_page.total_pages)} ({booking_page.total} bookings)")


def list_bookings(filters: portal.BookingFilters) -> BookingPage:
    booking_page = portal.load_admin_bookings(filters)
    print_booking_page(booking_page)
    return booking_page


def list_my_bookings(page: int = 1) -> BookingPage:
    booking_page = portal.load_student_bookings(page)
    print_booking_page(booking_page)
    return booking_page


def list_holidays():
    holidays = portal.list_holidays()
    for holiday in holidays:
        scope = f" (suburb {holiday.suburb_id})" if holiday.suburb_id else ""
        print(f"{holiday.id}: {holiday.date} {holiday.reason}{scope}")
    if not holidays:
        print("No holidays.")
    return holidays


def list_dates():
    dates = master_data.load_available_dates()
    for option in dates:
        suffix = "" if option.is_available else f" - {option.reason or 'Unavailable'}"
        print(f"{option.date}{suffix}")
    return dates


def list_packages():
    package_list = master_data.load_packages()
    for package in package_list:
        rules = packages.rules_for(package)
        print(f"{package.id}: {package.name} ${package.price:g} (up to {rules.max_slots} slot(s), {rules.duration} min)")
    return package_list


def list_locations():
    data = master_data.load_master_data()
    print("Testing centers:")
    for center in data.testing_centers:
        print(f"  {center.id}: {center.name} ({center.postalcode})")
    print("Suburbs:")
    for suburb in data.suburbs:
        print(f"  {suburb.id}: {suburb.name} ({suburb.postalcode})")
    return data


def login(email: str, password: str) -> str:
    session = AuthSession()
    route = session.login(email, password)
    print(f"Logged in as {session.user.name or session.user.email}. Landing page: {route}")
    return route


def logout():
    AuthSession().logout()
    print("Logged out.")


def whoami():
    session = AuthSession()
    user = session.restore()
    if user is None:
        print("Not logged in.")
    else:
        print(f"{user.name} <{user.email}> ({user.role})")
    return user


def require_user(allowed_roles: Sequence[str] | None = None) -> User:
    """Restores the stored session and checks the user may use a portal command."""
    session = AuthSession()
    user = session.restore()
    redirect = guard_route(user, allowed_roles)
    if redirect == config.LOGIN_ROUTE:
        raise AuthError("Please log in first.")
    if redirect is not None:
        raise AuthError(f"Your account cannot use this command. Try {redirect} instead.")
    return user
