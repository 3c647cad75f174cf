"""Date parsing utilities."""

from datetime import date, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
PERIODS = ("this-week", "this-month", "this-year", "last-week", "last-month", "last-year")


def parse_date(date_str: str, today: Optional[date] = None) -> date:
    """Parse a date string into a date object.

    Supports absolute dates ("2024-01-15", "January 15, 2024") and a few
    relative forms: "today", "yesterday", "tomorrow", "last monday",
    "this month", "last month", "next month", and the same for week/year.
    Week and month forms return the first day of the period.

    Args:
        date_str: Date string
        today: Reference day for relative forms (defaults to the current date)

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    text = (date_str or "").strip().lower()
    today = today or date.today()

    simple = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "tomorrow": today + timedelta(days=1),
    }
    if text in simple:
        return simple[text]

    word, _, period = text.partition(" ")
    if word in ("last", "this", "next") and period:
        shift = {"last": -1, "this": 0, "next": 1}[word]
        if period == "week":
            return today - timedelta(days=today.weekday()) + timedelta(weeks=shift)
        if period == "month":
            return today.replace(day=1) + relativedelta(months=shift)
        if period == "year":
            return today.replace(month=1, day=1) + relativedelta(years=shift)
        if word == "last" and period in WEEKDAYS:
            days_ago = (today.weekday() - WEEKDAYS.index(period)) % 7 or 7
            return today - timedelta(days=days_ago)

    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError, TypeError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def get_date_range(period: str, today: Optional[date] = None) -> tuple[date, date]:
    """Start and end dates of a named period.

    "this-*" periods end today; "last-*" periods cover the whole previous
    week, month or year.

    Raises:
        ValueError: If period is not one of PERIODS
    """
    period = period.strip().lower()
    today = today or date.today()
    kind, _, unit = period.partition("-")
    if period not in PERIODS:
        raise ValueError(f"Unknown period: '{period}'. Supported periods: {', '.join(PERIODS)}")

    start = parse_date(f"this {unit}", today=today)
    if kind == "this":
        return start, today
    previous = parse_date(f"last {unit}", today=today)
    return previous, start - timedelta(days=1)
