import calendar
from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Server-side 'now' in UTC, naive like every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def add_months(value: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping the day to the month end.

    Jan 31 + 1 month is Feb 28 (or 29), Jan 31 + 2 months is Mar 31.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)
