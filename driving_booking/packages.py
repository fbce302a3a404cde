"""
Lesson rules derived from a package.

The API only tells us a package's name, price and slot count; lesson length,
the gap between lessons and how many slots may be picked follow from the
package name.
"""
from dataclasses import dataclass

from driving_booking import config
from driving_booking.models import Package


@dataclass(frozen=True)
class LessonRules:
    """
    Attributes:
        duration: Lesson length in minutes (45/60/90/120)
        margin: Required gap between consecutive lessons in minutes (15/30)
        max_slots: How many slots may be selected at once
    """
    duration: int = config.DEFAULT_DURATION_MINUTES
    margin: int = config.DEFAULT_MARGIN_MINUTES
    max_slots: int = 1

    @property
    def total_step(self) -> int:
        """Distance between two bookable start times on the grid."""
        return self.duration + self.margin


def is_single_lesson(package: Package | None) -> bool:
    return package is not None and package.name in config.SINGLE_LESSON_PACKAGES


def max_slots(package: Package | None) -> int:
    if package is None:
        return 1
    for fragment, count in config.MULTI_PACK_SLOTS:
        if fragment in package.name:
            return count
    if is_single_lesson(package):
        return config.SINGLE_LESSON_MAX_SLOTS
    if package.maximum_slots_count > 0:
        return package.maximum_slots_count
    return 1


def margin_for(name: str) -> int:
    if name in config.SINGLE_LESSON_MARGINS:
        return config.SINGLE_LESSON_MARGINS[name]
    if "2HR" in name:
        return 30
    return config.DEFAULT_MARGIN_MINUTES


def duration_for(name: str) -> int:
    if "45MIN" in name:
        return 45
    if "1.5HR" in name:
        return 90
    if "2HR" in name:
        return 120
    return config.DEFAULT_DURATION_MINUTES


def rules_for(package: Package | None) -> LessonRules:
    if package is None:
        return LessonRules()
    return LessonRules(
        duration=duration_for(package.name),
        margin=margin_for(package.name),
        max_slots=max_slots(package),
    )


def total_price(package: Package | None, selected_count: int) -> float:
    """Single lessons are billed per slot, packs have a flat price."""
    if package is None:
        return 0
    if is_single_lesson(package):
        return package.price * max(1, selected_count)
    return package.price


def selection_label(package: Package | None, selected_count: int) -> str:
    if package is not None and ("PACKAGE" in package.name or "DRIVE TEST" in package.name):
        return f"Selected Slots ({selected_count}/{max_slots(package)})"
    return f"{selected_count} Slot Selected"
