from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is read as midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
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

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


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


def start_of_day(dt: datetime) -> datetime:
    """Midnight (UTC-naive) of the day containing dt."""
    return datetime.combine(dt.date(), time.min)


def end_of_day(value: date | datetime) -> datetime:
    """Last whole second of the given day; rental windows end here."""
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time(23, 59, 59))


def day_bucket(dt: datetime) -> date:
    """Calendar day (UTC) used to key once-per-day records."""
    return dt.date()


def ceil_days(delta: timedelta) -> int:
    """Whole days covered by delta, rounding any partial day up."""
    return math.ceil(delta / ONE_DAY)
