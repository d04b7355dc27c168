"""Wall-clock time parsing and interval arithmetic on minute-of-day integers."""

import logging
import re
from datetime import datetime, time
from typing import Union

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

# HH:MM at the start of the text or after a date separator (space or "T").
_CLOCK_RE = re.compile(r"(?:^|[\sT])(\d{1,2}):(\d{2})")

TimeInput = Union[str, datetime, time, None]


def to_minutes(value: TimeInput) -> int:
    """Convert a wall-clock value to minutes since midnight.

    Accepts a bare ``HH:MM`` string, a date-time string whose time part
    follows a space or ``T`` (``2025-03-01 10:30``, ``2025-03-01T10:30:00``),
    or a ``datetime``/``time`` object. Any date component is ignored.

    Unparseable input yields ``0``.
    """
    if isinstance(value, (datetime, time)):
        return value.hour * 60 + value.minute

    if not value or ":" not in value:
        logger.warning(f"Unparseable time {value!r}; treating as 00:00")
        return 0

    match = _CLOCK_RE.search(value.strip())
    if not match:
        logger.warning(f"Unparseable time {value!r}; treating as 00:00")
        return 0

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        logger.warning(f"Out-of-range time {value!r}; treating as 00:00")
        return 0
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    """Render minutes since midnight as ``HH:MM``."""
    minutes = max(0, minutes)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap; intervals that only touch do not overlap."""
    return start_a < end_b and end_a > start_b
