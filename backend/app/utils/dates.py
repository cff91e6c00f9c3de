"""
UTC timestamp helpers shared by services and stores.
"""

from __future__ import annotations

import time
from datetime import datetime, time as dt_time, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_iso_now() -> str:
    return utc_now().isoformat()


def epoch_ms() -> int:
    return int(time.time() * 1000)


def parse_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def date_bound_iso(value: str | None, end_of_day: bool = False) -> str | None:
    """
    Normalize a user supplied date or datetime to a UTC ISO string.

    Date-only upper bounds are widened to the last microsecond of that day.
    """
    if not value:
        return None
    raw = str(value).strip()
    parsed = parse_datetime(raw)
    if parsed is None:
        return None
    if end_of_day and len(raw) == 10:
        parsed = datetime.combine(parsed.date(), dt_time.max, tzinfo=timezone.utc)
    return parsed.isoformat()


def days_ago_iso(days: int) -> str:
    return (utc_now() - timedelta(days=days)).isoformat()
