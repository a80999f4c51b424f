# Calendar helpers. Every "today" in the engine is the UTC calendar date.
from __future__ import annotations

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def nights_between(check_in: date, check_out: date) -> int:
    # Whole calendar dates, so the ceiling of the day difference is the difference itself
    return (check_out - check_in).days


def days_until(day: date, today: date | None = None) -> int:
    """Calendar days from today (UTC) until `day`; negative once it has passed.

    For any instant after midnight this equals ceil((day - now) / 1 day).
    """
    return (day - (today or utc_today())).days
