"""Calendar windows used by the summary actions."""

from datetime import date, timedelta

from prabaraja.numbering import month_bounds, parse_date
from prabaraja.queries import to_number


def today():
    return date.today()


def current_month(day=None):
    return month_bounds(day or today())


def previous_month(day=None):
    start, _ = month_bounds(day or today())
    return month_bounds(start - timedelta(days=1))


def last_days(days, day=None):
    """Inclusive window ``[day - days, day]`` as (start, end-exclusive)."""
    end = day or today()
    return end - timedelta(days=days), end + timedelta(days=1)


def total_between(data, date_column, value_column, start, end):
    """Sum ``value_column`` over rows whose date falls in ``[start, end)``."""
    total = 0.0
    for row in data:
        raw = row.get(date_column)
        if not raw:
            continue
        if start <= parse_date(raw) < end:
            total += to_number(row.get(value_column), value_column)
    return round(total, 2)
