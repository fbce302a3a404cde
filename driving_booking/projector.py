"""
Slot grid projection: which slots of a day are shown for selection.

Pure functions of (raw slot feed, current selection, lesson rules). Nothing
here talks to the API or keeps state, so the projection can be recomputed
after every click.
"""
import logging
from datetime import datetime
from typing import Dict, List, Sequence
from zoneinfo import ZoneInfo

from driving_booking import config
from driving_booking.exceptions import SlotCapacityError, SlotNotSelectableError
from driving_booking.models import SelectedSlot, TimeSlot, parse_timestamp

logger = logging.getLogger(__name__)

SELECTED = "selected"
AVAILABLE = "available"
DISABLED = "disabled"


def _wall_clock(timestamp: str) -> datetime:
    dt = parse_timestamp(timestamp)
    if dt.tzinfo is None:
        return dt
    if config.BUSINESS_TIMEZONE:
        return dt.astimezone(ZoneInfo(config.BUSINESS_TIMEZONE))
    return dt.astimezone()


def slot_minutes(timestamp: str) -> int:
    """Minutes past midnight of a slot timestamp, in the business wall clock."""
    dt = _wall_clock(timestamp)
    return dt.hour * 60 + dt.minute


def format_clock(timestamp: str) -> str:
    """Formats a timestamp as '9:15 AM', without a leading zero on the hour."""
    dt = _wall_clock(timestamp)
    hour = dt.hour % 12 or 12
    ampm = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {ampm}"


def is_selected(slot: TimeSlot, selected: Sequence[SelectedSlot]) -> bool:
    return any(s.time == slot.start_time for s in selected)


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """True if window [a_start, a_end) overlaps [b_start, b_end)."""
    return a_start < b_end and a_end > b_start


def project_display_slots(
    raw_slots: Sequence[TimeSlot],
    selected: Sequence[SelectedSlot],
    duration: int,
    margin: int,
    step: int = config.SLOT_STEP_MINUTES,
    day_start: int = config.DAY_START_MINUTES,
) -> List[TimeSlot]:
    """Returns the slots to display, in feed order."""
    if not raw_slots:
        return []

    total_step = duration + margin

    # Only selections present in this feed take part in overlap and anchoring.
    current_selected = [s for s in raw_slots if is_selected(s, selected)]
    selected_windows = [(slot_minutes(s.start_time), slot_minutes(s.end_time)) for s in current_selected]
    last_end = max((end for _, end in selected_windows), default=None)

    by_start: Dict[int, TimeSlot] = {}
    for slot in raw_slots:
        by_start.setdefault(slot_minutes(slot.start_time), slot)

    def include(slot: TimeSlot) -> bool:
        # 1. Selected slots stay visible so they can be removed again
        if is_selected(slot, selected):
            return True

        # 2. Availability
        if not slot.available:
            return False

        start = slot_minutes(slot.start_time)
        end = slot_minutes(slot.end_time)

        # 3. Overlap with anything already selected
        if any(_overlaps(start, end, sel_start, sel_end) for sel_start, sel_end in selected_windows):
            return False

        # 4. Consecutive lessons are anchored on the end of the selection
        if last_end is not None and start >= last_end:
            return (start - last_end) % total_step == 0

        # 5. Standard grid from the start of the business day
        if (start - day_start) % total_step == 0:
            return True

        # 6. Edge: the slot right before was booked by someone else
        previous = by_start.get(start - step)
        return previous is not None and not previous.available

    display = [slot for slot in raw_slots if include(slot)]
    logger.debug(f"Projected {len(display)} of {len(raw_slots)} slots (step={total_step}, selected={len(selected)})")
    return display


def slot_state(slot: TimeSlot, selected: Sequence[SelectedSlot]) -> str:
    if is_selected(slot, selected):
        return SELECTED
    return AVAILABLE if slot.available else DISABLED


def toggle_slot(
    selected: Sequence[SelectedSlot],
    slot: TimeSlot,
    date: str,
    max_slots: int,
    displayed: Sequence[TimeSlot] | None = None,
) -> List[SelectedSlot]:
    """
    Returns the selection after clicking `slot`.

    A selected slot is always removed. An unselected slot is added when it is
    displayed, available and the selection still has room.
    """
    if is_selected(slot, selected):
        return [s for s in selected if s.time != slot.start_time]

    if displayed is not None and not any(d.start_time == slot.start_time for d in displayed):
        raise SlotNotSelectableError(f"Slot {format_clock(slot.start_time)} cannot be selected.")
    if not slot.available:
        raise SlotNotSelectableError(f"Slot {format_clock(slot.start_time)} is not available.")
    if len(selected) >= max_slots:
        raise SlotCapacityError(f"You can only select {max_slots} slots for this package.")

    return [*selected, SelectedSlot(date=date, time=slot.start_time)]
