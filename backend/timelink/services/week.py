"""
Week and duration helpers used by the weekly grid, policy checks and export.

Weeks start on Monday; Sunday is the last day of the week before it.
"""

import math
from datetime import date, datetime, timedelta
from typing import Optional, Union

DateLike = Union[date, datetime]

SATURDAY = 5
SUNDAY = 6


def _as_date(d: DateLike) -> date:
    return d.date() if isinstance(d, datetime) else d


def week_start(d: DateLike) -> date:
    """Monday of the week containing ``d``."""
    day = _as_date(d)
    return day - timedelta(days=day.weekday())


def week_days(start: DateLike) -> list[date]:
    first = _as_date(start)
    return [first + timedelta(days=i) for i in range(7)]


def date_key(d: DateLike) -> str:
    return _as_date(d).isoformat()


def is_same_day(a: DateLike, b: DateLike) -> bool:
    return _as_date(a) == _as_date(b)


def is_weekend(d: DateLike) -> bool:
    return _as_date(d).weekday() in (SATURDAY, SUNDAY)


def day_name(d: DateLike) -> str:
    """Short weekday name, e.g. ``Mon``."""
    return _as_date(d).strftime("%a")


def day_label(d: DateLike) -> str:
    """Day number and short month, e.g. ``20 Nov``."""
    day = _as_date(d)
    return f"{day.day} {day.strftime('%b')}"


def format_duration(hours: Optional[float]) -> str:
    """Render fractional hours as ``H:MM`` (1.5 -> ``1:30``)."""
    if not hours:
        return "0:00"
    h, m = divmod(round(hours * 60), 60)
    return f"{h}:{m:02d}"


def parse_duration(text: Optional[str]) -> float:
    """Parse ``H:MM`` or a bare decimal; anything unusable is 0."""
    if not text or not text.strip():
        return 0.0
    text = text.strip()

    if ":" in text:
        h_part, _, m_part = text.partition(":")
        try:
            h = float(h_part) if h_part.strip() else 0.0
            m = float(m_part) if m_part.strip() else 0.0
        except ValueError:
            return 0.0
        value = h + m / 60
    else:
        try:
            value = float(text)
        except ValueError:
            return 0.0

    if not math.isfinite(value) or value < 0:
        return 0.0
    return value
