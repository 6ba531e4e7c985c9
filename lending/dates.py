"""
Date Utilities

Calendar helpers shared by the schedule engine plus timezone-aware conversion
and locale formatting. Timezone and locale are always passed in explicitly;
nothing here changes process-wide time settings.
"""

from datetime import date, datetime, timedelta
from typing import Union
from zoneinfo import ZoneInfo
import calendar
import re


DateInput = Union[date, datetime, str]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

WEEKDAY_NAMES = {
    "pt_BR": ['Domingo', 'Segunda', 'Terça', 'Quarta', 'Quinta', 'Sexta', 'Sábado'],
    "en_US": ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday'],
}

WEEKDAY_ABBREVIATIONS = {
    "pt_BR": ['Dom', 'Seg', 'Ter', 'Qua', 'Qui', 'Sex', 'Sáb'],
    "en_US": ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat'],
}

DATE_FORMATS = {
    "pt_BR": "%d/%m/%Y",
    "en_US": "%m/%d/%Y",
}


def weekday_index(value: date) -> int:
    """Day of week numbered 0 = Sunday .. 6 = Saturday"""
    return (value.weekday() + 1) % 7


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_days(start_date: date, days: int) -> date:
    return start_date + timedelta(days=days)


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping the day to the target month's length"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, days_in_month(year, month))
    return date(year, month, day)


def add_years(start_date: date, years: int) -> date:
    """Add years to a date; Feb 29 becomes Feb 28 on non-leap years"""
    return add_months(start_date, 12 * years)


def with_day(value: date, day: int) -> date:
    """Move to another day of the same month, clamped to the month's length"""
    return value.replace(day=min(day, days_in_month(value.year, value.month)))


def today(tz: str) -> date:
    """Current calendar date in the given IANA timezone"""
    return datetime.now(ZoneInfo(tz)).date()


def to_local_date(value: DateInput, tz: str) -> date:
    """
    Normalize user input to a calendar date in the given timezone.

    Accepts a date (returned as is), a timezone-aware datetime (converted to
    tz before taking the date), a naive datetime (taken as already local) or
    an ISO "YYYY-MM-DD" string (taken as a local calendar date).
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(ZoneInfo(tz)).date()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if _ISO_DATE.match(text):
            return date.fromisoformat(text)
        return to_local_date(datetime.fromisoformat(text.replace("Z", "+00:00")), tz)
    raise TypeError(f"Unsupported date value: {value!r}")


def format_date(value: date, locale: str) -> str:
    """Format a date for display ("31/01/2024" for pt_BR)"""
    return value.strftime(DATE_FORMATS.get(locale, "%Y-%m-%d"))
