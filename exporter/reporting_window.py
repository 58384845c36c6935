"""Weekly reporting window used by the summary sheets."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

PERIOD_RULE = "⎯⎯⎯⎯⎯"


def week_start_end(base: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return Monday 00:00:00 and Sunday 23:59:59 (UTC) of the ISO week of ``base``."""

    if base is None:
        base = datetime.now(timezone.utc)
    elif base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    else:
        base = base.astimezone(timezone.utc)

    year, week, _ = base.isocalendar()
    monday = date.fromisocalendar(year, week, 1)
    sunday = date.fromisocalendar(year, week, 7)
    start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    end = datetime.combine(sunday, time(23, 59, 59), tzinfo=timezone.utc)
    return start, end


def format_date(value: datetime) -> str:
    """Return ``August-6-2022`` style dates used in summary keys."""

    return f"{value.strftime('%B')}-{value.day}-{value.year}"


def window_label(start: datetime, end: datetime) -> str:
    return f"{format_date(start)} to {format_date(end)}"


def period_label(start: datetime, end: datetime) -> str:
    """Single-cell separator row written ahead of a weekly summary."""

    return f"{PERIOD_RULE} {window_label(start, end)} {PERIOD_RULE}"


__all__ = ["format_date", "period_label", "week_start_end", "window_label"]
