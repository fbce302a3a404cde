from unittest.mock import MagicMock, patch

import pytest

from driving_booking import cli, config
from driving_booking.exceptions import AuthError, LockConflictError
from driving_booking.models import Package


@patch("driving_booking.cli.run.show_slots")
def test_slots_command(mock_show):
    cli.main(["slots", "--package", "5", "--date", "2025-03-10", "--select", "08:00", "--select", "09:00"])

    mock_show.assert_called_once_with("5", "2025-03-10", ["08:00", "09:00"])


@patch("driving_booking.cli.run.book")
def test_book_command_builds_details(mock_book):
    cli.main([
        "book", "--center", "1", "--suburb", "7", "--package", "2", "--date", "2025-03-10",
        "--slot", "08:00", "--name", "Sam", "--email", "sam@example.com",
        "--phone", "0400", "--address", "1 Main St",
    ])

    args = mock_book.call_args[0]
    assert args[:5] == ("1", "7", "2", "2025-03-10", ["08:00"])
    assert args[5].customer_email == "sam@example.com"
    assert args[5].notes is None


@patch("driving_booking.cli.run.book")
def test_book_command_invalid_email_exits(mock_book):
    with pytest.raises(SystemExit) as excinfo:
        cli.main([
            "book", "--center", "1", "--suburb", "7", "--package", "2", "--date", "2025-03-10",
            "--slot", "08:00", "--name", "Sam", "--email", "not-an-email",
            "--phone", "0400", "--address", "1 Main St",
        ])
    assert excinfo.value.code == 1
    mock_book.assert_not_called()


@patch("driving_booking.cli.run.show_slots")
def test_client_errors_exit_with_status_1(mock_show):
    mock_show.side_effect = LockConflictError("Slots already locked")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["slots", "--package", "5", "--date", "2025-03-10"])
    assert excinfo.value.code == 1


@patch("driving_booking.cli.run.list_my_bookings")
@patch("driving_booking.cli.run.require_user")
def test_my_bookings_requires_student(mock_require, mock_list):
    cli.main(["my-bookings", "--page", "2"])

    mock_require.assert_called_once_with([config.STUDENT_ROLE])
    mock_list.assert_called_once_with(2)


@patch("driving_booking.cli.portal.confirm_booking")
@patch("driving_booking.cli.run.require_user")
def test_admin_command_requires_portal_role(mock_require, mock_confirm):
    cli.main(["confirm", "42"])

    mock_require.assert_called_once_with(config.PORTAL_ROLES)
    mock_confirm.assert_called_once_with("42")


@patch("driving_booking.cli.portal.cancel_booking")
@patch("driving_booking.cli.run.require_user")
def test_admin_command_denied(mock_require, mock_cancel):
    mock_require.side_effect = AuthError("Please log in first.")

    with pytest.raises(SystemExit):
        cli.main(["cancel", "42"])
    mock_cancel.assert_not_called()


@patch("driving_booking.cli.run.list_bookings")
@patch("driving_booking.cli.run.require_user")
def test_bookings_filters(mock_require, mock_list):
    cli.main(["bookings", "--date", "2025-03-10", "--suburb", "7"])

    filters = mock_list.call_args[0][0]
    assert filters.date == "2025-03-10"
    assert filters.suburb_id == "7"
    assert filters.center_id is None
    assert filters.page == 1


@patch("driving_booking.cli.getpass.getpass")
@patch("driving_booking.cli.run.login")
def test_login_prompts_for_password(mock_login, mock_getpass):
    mock_getpass.return_value = "secret"

    cli.main(["login", "--email", "sam@example.com"])

    mock_login.assert_called_once_with("sam@example.com", "secret")


@patch("driving_booking.cli.dispatch")
@patch("driving_booking.cli.setup_logging")
@patch("driving_booking.cli.parse_arguments")
def test_main_sets_up_logging(mock_args, mock_logging, mock_dispatch):
    mock_args.return_value = MagicMock(verbose=True)

    cli.main()

    mock_logging.assert_called_once_with(True)
    mock_dispatch.assert_called_once_with(mock_args.return_value)


@patch("driving_booking.run.master_data.load_packages")
@patch("driving_booking.catalog.api.fetch_slots")
def test_malformed_slot_time_exits(mock_fetch, mock_packages):
    mock_packages.return_value = [Package(id=1, name="1HR LESSON", price=60)]
    mock_fetch.return_value = []

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["slots", "--package", "1", "--date", "2025-03-10", "--select", "9am"])
    assert excinfo.value.code == 1
