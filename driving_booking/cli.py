import argparse
import getpass
import logging
import sys

from pydantic import ValidationError

from driving_booking import config, portal, run
from driving_booking.exceptions import BookingClientError
from driving_booking.models import CustomerDetails

# --- Logging Setup ---

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool):
    """Configures logging to stderr with local time."""
    import time

    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    # Use local time instead of UTC for logging
    formatter.converter = time.localtime
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def parse_arguments(argv=None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(description="Book driving lessons and manage bookings.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Log in and store the session token.")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="Prompted for when omitted.")
    commands.add_parser("logout", help="Forget the stored session token.")
    commands.add_parser("whoami", help="Show the logged in user.")

    commands.add_parser("locations", help="List testing centers and suburbs.")
    commands.add_parser("packages", help="List lesson packages.")
    commands.add_parser("dates", help="List bookable dates starting tomorrow.")

    slots = commands.add_parser("slots", help="Show the selectable slots of a date.")
    slots.add_argument("--package", required=True, help="Package id.")
    slots.add_argument("--date", required=True, help="Date in YYYY-MM-DD format.")
    slots.add_argument("--select", action="append", default=[], metavar="HH:MM", help="Pre-select a slot.")

    book = commands.add_parser("book", help="Lock slots and create a booking.")
    book.add_argument("--center", required=True, help="Testing center id.")
    book.add_argument("--suburb", required=True, help="Suburb id.")
    book.add_argument("--package", required=True, help="Package id.")
    book.add_argument("--date", required=True, help="Date in YYYY-MM-DD format.")
    book.add_argument("--slot", action="append", required=True, metavar="HH:MM", help="Slot start time, repeatable.")
    book.add_argument("--name", required=True)
    book.add_argument("--email", required=True)
    book.add_argument("--phone", required=True)
    book.add_argument("--address", required=True, help="Pickup address.")
    book.add_argument("--notes")

    bookings = commands.add_parser("bookings", help="List all bookings (admin).")
    bookings.add_argument("--date")
    bookings.add_argument("--suburb")
    bookings.add_argument("--center")
    bookings.add_argument("--page", type=int, default=1)

    my_bookings = commands.add_parser("my-bookings", help="List your own bookings.")
    my_bookings.add_argument("--page", type=int, default=1)

    commands.add_parser("holidays", help="List holidays (admin).")
    holiday_add = commands.add_parser("holiday-add", help="Add a holiday (admin).")
    holiday_add.add_argument("--date", required=True)
    holiday_add.add_argument("--reason", required=True)
    holiday_add.add_argument("--suburb", help="Limit the holiday to one suburb.")
    holiday_delete = commands.add_parser("holiday-delete", help="Delete a holiday (admin).")
    holiday_delete.add_argument("id")

    confirm = commands.add_parser("confirm", help="Confirm a booking (admin).")
    confirm.add_argument("id")
    cancel = commands.add_parser("cancel", help="Cancel a booking (admin).")
    cancel.add_argument("id")

    return parser.parse_args(argv)


def dispatch(args):
    if args.command == "login":
        run.login(args.email, args.password or getpass.getpass("Password: "))
    elif args.command == "logout":
        run.logout()
    elif args.command == "whoami":
        run.whoami()
    elif args.command == "locations":
        run.list_locations()
    elif args.command == "packages":
        run.list_packages()
    elif args.command == "dates":
        run.list_dates()
    elif args.command == "slots":
        run.show_slots(args.package, args.date, args.select)
    elif args.command == "book":
        details = CustomerDetails(
            customer_name=args.name,
            customer_email=args.email,
            customer_phone=args.phone,
            pickup_address=args.address,
            notes=args.notes,
        )
        run.book(args.center, args.suburb, args.package, args.date, args.slot, details)
    elif args.command == "my-bookings":
        run.require_user([config.STUDENT_ROLE])
        run.list_my_bookings(args.page)
    else:
        run.require_user(config.PORTAL_ROLES)
        if args.command == "bookings":
            filters = portal.BookingFilters(date=args.date, suburb_id=args.suburb, center_id=args.center, page=args.page)
            run.list_bookings(filters)
        elif args.command == "holidays":
            run.list_holidays()
        elif args.command == "holiday-add":
            portal.add_holiday(args.date, args.reason, args.suburb)
            run.list_holidays()
        elif args.command == "holiday-delete":
            portal.remove_holiday(args.id)
            print(f"Holiday {args.id} deleted.")
        elif args.command == "confirm":
            portal.confirm_booking(args.id)
            print("Booking confirmed successfully")
        elif args.command == "cancel":
            portal.cancel_booking(args.id)
            print("Booking cancelled successfully")


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(args.verbose)
    try:
        dispatch(args)
    except (BookingClientError, ValidationError) as e:
        logger.error(str(e))
        sys.exit(1)
