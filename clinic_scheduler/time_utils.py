"""
time_utils.py — Minute/clock conversions for the clinic day.

Everything downstream works in minutes after midnight; strings only appear at
the data boundary ("8:30", "8:30-11:30") and in display labels.
"""

import re
from typing import Optional, Tuple

from clinic_scheduler.schedule_config import LunchTime

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def time_string_to_minutes(value: str) -> int:
    """Parse "H:MM" / "HH:MM" (24-hour) into minutes after midnight."""
    match = _TIME_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid time string: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time string: {value!r}")
    return hours * 60 + minutes


def time_string_to_minutes_pm_context(value: str) -> int:
    """
    Parse a clinic-sheet time where 1:00–6:59 means afternoon.

    "1:00" → 780, "12:30" → 750, "8:30" → 510.
    """
    minutes = time_string_to_minutes(value)
    if 60 <= minutes < 420:
        minutes += 12 * 60
    return minutes


def minutes_to_time_string(minutes: int) -> str:
    """780 → "13:00"."""
    return f"{minutes // 60}:{minutes % 60:02d}"


def minutes_to_display_time(minutes: int) -> str:
    """780 → "1:00 PM", 690 → "11:30 AM"."""
    hours, mins = divmod(minutes, 60)
    suffix = "PM" if hours >= 12 else "AM"
    hours12 = hours % 12 or 12
    return f"{hours12}:{mins:02d} {suffix}"


def format_block_minutes(minutes: int) -> str:
    """12-hour clock without suffix, as printed on the day grid (780 → "1:00")."""
    hours, mins = divmod(minutes, 60)
    hours12 = hours % 12 or 12
    return f"{hours12}:{mins:02d}"


def format_block_range(start: int, end: int) -> str:
    return f"{format_block_minutes(start)}-{format_block_minutes(end)}"


def parse_block_to_minutes(label: str) -> Tuple[int, int]:
    """
    Parse a grid label like "8:30-11:30" or "12:30-4:00" into minutes.

    The end is read in PM context; the start only when it is not a morning
    time ("12:30" stays 750, "1:00" becomes 780).
    """
    parts = str(label).split("-")
    if len(parts) != 2:
        raise ValueError(f"Invalid block label: {label!r}")
    start = time_string_to_minutes_pm_context(parts[0])
    end = time_string_to_minutes_pm_context(parts[1])
    if end <= start:
        raise ValueError(f"Block ends before it starts: {label!r}")
    return start, end


def parse_time_window(start: Optional[str], end: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse an optional exception window; blanks stay None."""
    start_min = time_string_to_minutes_pm_context(start) if start else None
    end_min = time_string_to_minutes_pm_context(end) if end else None
    return start_min, end_min


def time_ranges_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Half-open overlap: touching ranges do not overlap."""
    return start1 < end2 and end1 > start2


def canonical_lunch_label(minutes: int) -> str:
    """Snap an arbitrary lunch start to the nearest canonical slot label."""
    if minutes < 675:
        return LunchTime.AT_1100.value
    if minutes < 705:
        return LunchTime.AT_1130.value
    if minutes < 735:
        return LunchTime.AT_1200.value
    return LunchTime.AT_1230.value


def lunch_time_for_minute(minutes: int) -> LunchTime:
    return LunchTime(canonical_lunch_label(minutes))
