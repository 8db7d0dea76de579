"""Calendar helpers. All dates are UTC calendar days formatted YYYY-MM-DD."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterator

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_iso_date(value: str) -> bool:
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_iso_date(value: str) -> date:
    if not is_iso_date(value):
        raise ValueError(f"Invalid date {value!r}. Use YYYY-MM-DD.")
    return date.fromisoformat(value)


def format_utc_date(value: date | datetime) -> str:
    """Format a date, or the UTC calendar day of a datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return value.isoformat()


def today_utc() -> str:
    return format_utc_date(datetime.now(timezone.utc))


def parse_date_arg(value: str | None) -> str:
    """CLI date argument: default today (UTC), otherwise a validated YYYY-MM-DD."""
    if not value:
        return today_utc()
    return parse_iso_date(value).isoformat()


def date_range_inclusive(start: str, end: str) -> Iterator[str]:
    """Yield every date from start to end inclusive, ascending."""
    start_d = parse_iso_date(start)
    end_d = parse_iso_date(end)
    if start_d > end_d:
        raise ValueError(f"Start date {start} is after end date {end}")
    d = start_d
    while d <= end_d:
        yield d.isoformat()
        d += timedelta(days=1)
