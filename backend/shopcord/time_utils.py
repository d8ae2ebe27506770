from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


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


STATS_PERIODS = ("day", "week", "month", "year")


def period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """
    Start of a reporting window, UTC-naive.

    - day: midnight today
    - week: exactly seven days ago
    - month: first day of the current month
    - year: January 1st

    Unknown periods fall back to month.
    """
    now = now or utcnow()
    if period == "day":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "year":
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def format_display_time(dt: Optional[datetime]) -> str:
    """Human-readable timestamp for embeds (UTC, minute precision)."""
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M UTC")
