from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Tuple

from ..core.constants import CORRECTION_DATE_FORMAT, CORRECTION_TIME_FORMAT, PUNCH_TIMESTAMP_FORMAT
from ..core.exceptions import ValidationError


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now().replace(second=0, microsecond=0)


def parse_punch_timestamp(value: Optional[str], *, default: Optional[datetime] = None) -> datetime:
    """Parse "dd/mm/yyyy hh:mm"; empty input falls back to ``default`` or now."""

    text = (value or "").strip()
    if not text:
        return default or now_local()
    try:
        return datetime.strptime(text, PUNCH_TIMESTAMP_FORMAT)
    except ValueError:
        raise ValidationError(f"Invalid punch time {text!r}, expected dd/mm/yyyy hh:mm")


def parse_correction_date(value: str) -> date:
    text = (value or "").strip()
    try:
        return datetime.strptime(text, CORRECTION_DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f"Invalid corrected punch date {text!r}, expected dd/mm/yyyy")


def parse_correction_time(value: str) -> time:
    text = (value or "").strip()
    try:
        return datetime.strptime(text, CORRECTION_TIME_FORMAT).time()
    except ValueError:
        raise ValidationError(f"Invalid corrected punch time {text!r}, expected HH:mm")


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0


def ceil_minutes(start: datetime, end: datetime) -> int:
    return max(0, math.ceil(minutes_between(start, end)))


def normalize_time(value: Any) -> Optional[time]:
    """Normalize TIME-like values (time, timedelta, 'HH:MM[:SS]').

    mysql-connector can return TIME as:
    - datetime.time
    - datetime.timedelta
    - string (e.g. '08:30:00')
    """

    if value is None:
        return None

    if isinstance(value, time):
        return value

    if isinstance(value, timedelta):
        total_seconds = int(value.total_seconds()) % 86400
        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        seconds = total_seconds % 60
        return time(hour=hours, minute=minutes, second=seconds)

    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) < 2:
            raise ValueError(f"Invalid time string: {value!r}")
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(parts[2]) if len(parts) >= 3 and parts[2] else 0
        return time(hour=hours, minute=minutes, second=seconds)

    raise TypeError(f"Unsupported TIME value type: {type(value)!r}")
