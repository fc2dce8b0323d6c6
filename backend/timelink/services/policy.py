"""Pre-submission policy checks. Advisory only: they never block a submit."""

import os

from timelink.schemas.timesheet import WeeklyGrid
from timelink.services.week import is_weekend

OVERTIME_THRESHOLD_HOURS = float(os.getenv("OVERTIME_THRESHOLD_HOURS", "8"))

WEEKEND_WARNING = "You have logged hours on a weekend (Saturday or Sunday)."
OVERTIME_WARNING = f"You have logged more than {OVERTIME_THRESHOLD_HOURS:g} hours in a single day."


def has_weekend_hours(grid: WeeklyGrid) -> bool:
    return any(total > 0 for day, total in zip(grid.days, grid.day_totals) if is_weekend(day))


def has_overtime(grid: WeeklyGrid, threshold: float = OVERTIME_THRESHOLD_HOURS) -> bool:
    return any(total > threshold for total in grid.day_totals)


def check_policies(grid: WeeklyGrid) -> list[str]:
    warnings = []
    if has_weekend_hours(grid):
        warnings.append(WEEKEND_WARNING)
    if has_overtime(grid):
        warnings.append(OVERTIME_WARNING)
    return warnings
