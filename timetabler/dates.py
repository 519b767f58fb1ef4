"""Calendar helpers for the Sunday-anchored school week.

Dates travel as ``YYYY-MM-DD`` strings and times as ``HH:MM``. The school
day-of-week runs Sunday=1 .. Thursday=5; Friday and Saturday map to 6 and 7
and never carry templates.
"""
import calendar
from datetime import datetime, date, time, timedelta

from timetabler.errors import ValidationError

DATE_FORMAT = '%Y-%m-%d'
TIME_FORMAT = '%H:%M'

SUNDAY = 1
THURSDAY = 5
SCHOOL_DAYS = range(SUNDAY, THURSDAY + 1)


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f'Invalid date: {value!r} (expected YYYY-MM-DD)')


def parse_time(value) -> time:
    if isinstance(value, time):
        return value
    raw = str(value).strip()
    for fmt in (TIME_FORMAT, '%H:%M:%S'):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f'Invalid time: {value!r} (expected HH:MM)')


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def format_time(t) -> str:
    return t.strftime(TIME_FORMAT) if t is not None else None


def school_day_of_week(d: date) -> int:
    """Sunday=1, Monday=2, ... Saturday=7."""
    return (d.weekday() + 1) % 7 + 1


def is_week_start(d: date) -> bool:
    return school_day_of_week(d) == SUNDAY


def week_start(d: date) -> date:
    """The Sunday on or before ``d``."""
    return d - timedelta(days=school_day_of_week(d) - 1)


def iter_dates(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def school_week(week_start_date: date, days=THURSDAY):
    return [week_start_date + timedelta(days=i) for i in range(days)]


def month_bounds(year: int, month: int):
    if not 1 <= int(month) <= 12:
        raise ValidationError(f'Invalid month: {month}')
    last = calendar.monthrange(int(year), int(month))[1]
    return date(int(year), int(month), 1), date(int(year), int(month), last)


def intervals_overlap(start_a, end_a, start_b, end_b) -> bool:
    return start_a < end_b and start_b < end_a
