from __future__ import annotations

import calendar
import math
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" and "YYYY-MM-DDTHH:MM" (naive) are interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_datetime(value, *, field: str = "date") -> Optional[datetime]:
    """
    Normalize a datetime-ish value to canonical UTC-naive datetime.

    Accepts None, datetime (aware or naive) or ISO-8601 strings.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValueError(f"invalid {field}")
        return dt

    raise ValueError(f"invalid {field}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def add_months(dt: datetime, months: int) -> datetime:
    """
    Shift dt by a number of calendar months.

    The day is clamped to the last day of the target month
    (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def days_until(target: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole days (rounded up) from now until target, never negative."""
    if target is None:
        return 0
    now = now or utcnow()
    seconds = (target - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)
