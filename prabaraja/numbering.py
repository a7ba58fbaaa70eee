"""
Sequential document numbers.

Schemes in use:
- yearly tag:     YYYY + 3-digit counter                (assets: 2025001)
- monthly number: YYYYMM + unpadded counter             (expenses, sales: 2025041, 20250410)
- base sequence:  max(last, base) + 1                   (cashbank 10001, contacts 101, products 1001)
- global:         max(number) + 1                       (purchase documents)
- journal code:   JRN-YYYY-NNNN, counter per year

Numbers are computed read-then-write. ``insert_with_retry`` regenerates and
retries when the insert hits a unique violation left by a concurrent writer.
"""

import logging
import re
from datetime import date

from postgrest.exceptions import APIError

from prabaraja.errors import ApiError, ConflictError, db_error

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = '23505'
MAX_INSERT_ATTEMPTS = 3
MAX_JOURNAL_COUNTER = 9999

_JOURNAL_CODE_PATTERN = re.compile(r'^JRN-(\d{4})-(\d+)$')


def parse_date(value):
    """Accept a date, datetime or ISO string and return a ``date``."""
    if isinstance(value, date):
        return value if type(value) is date else value.date()
    if not value:
        raise ApiError('Invalid date', 400)
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ApiError(f'Invalid date: {value}', 400)


def month_bounds(day):
    """Return (first day of month, first day of next month)."""
    start = day.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


# --- pure formatting helpers ---

def compose_yearly_tag(year, counter):
    if counter > 999:
        raise ConflictError(f'Asset tag limit reached for {year}')
    return int(f'{year}{counter:03d}')


def compose_monthly_number(year, month, counter):
    return int(f'{year}{month:02d}{counter}')


def monthly_counter(number, year, month):
    """Counter part of a YYYYMM-prefixed number, 0 when it belongs elsewhere."""
    prefix = f'{year}{month:02d}'
    text = str(number) if number is not None else ''
    if not text.startswith(prefix) or len(text) == len(prefix):
        return 0
    try:
        return int(text[len(prefix):])
    except ValueError:
        return 0


def format_journal_code(year, counter):
    return f'JRN-{year}-{counter:04d}'


def journal_counter(code, year):
    match = _JOURNAL_CODE_PATTERN.match(code or '')
    if not match or int(match.group(1)) != year:
        return 0
    return int(match.group(2))


def pad_number(number, width=5):
    return str(number if number is not None else '').zfill(width)


# --- generators that look at existing rows ---

def _latest(db, query_label, build):
    try:
        rows = build().execute().data
    except APIError as e:
        logger.error(f'Number lookup failed ({query_label}): {e.message}')
        raise db_error(f'generate {query_label}', e)
    return rows[0] if rows else None


def next_asset_tag(db, purchase_date):
    year = parse_date(purchase_date).year
    low, high = int(f'{year}000'), int(f'{year}999')
    row = _latest(db, 'asset tag', lambda: (
        db.table('assets').select('asset_tag')
        .gte('asset_tag', low).lte('asset_tag', high)
        .order('asset_tag', desc=True).limit(1)))
    last = int(row['asset_tag']) - low if row and row.get('asset_tag') is not None else 0
    return compose_yearly_tag(year, last + 1)


def next_monthly_number(db, table, date_column, doc_date, column='number'):
    day = parse_date(doc_date)
    start, end = month_bounds(day)
    row = _latest(db, f'{table} number', lambda: (
        db.table(table).select(column)
        .gte(date_column, start.isoformat()).lt(date_column, end.isoformat())
        .order(column, desc=True).limit(1)))
    last = monthly_counter(row.get(column), day.year, day.month) if row else 0
    return compose_monthly_number(day.year, day.month, last + 1)


def next_sequential_number(db, table, base, column='number'):
    row = _latest(db, f'{table} number', lambda: (
        db.table(table).select(column).order(column, desc=True).limit(1)))
    last = int(row[column]) if row and row.get(column) is not None else base
    return max(last, base) + 1


def next_global_number(db, table, column='number'):
    return next_sequential_number(db, table, 0, column)


def next_journal_code(db, journal_date):
    year = parse_date(journal_date).year
    row = _latest(db, 'journal code', lambda: (
        db.table('journals').select('code')
        .like('code', f'JRN-{year}-%')
        .order('code', desc=True).limit(1)))
    last = journal_counter(row.get('code'), year) if row else 0
    # codes sort as text, so the counter must stay at four digits
    if last >= MAX_JOURNAL_COUNTER:
        raise ConflictError(f'Journal numbers for {year} are exhausted')
    return format_journal_code(year, last + 1)


def insert_with_retry(db, table, build_row, label, attempts=MAX_INSERT_ATTEMPTS):
    """
    Insert ``build_row()`` into ``table``. ``build_row`` is called again for
    each attempt so the generated number is re-read after a collision.
    """
    for attempt in range(1, attempts + 1):
        row = build_row()
        try:
            return db.table(table).insert(row).execute().data
        except APIError as e:
            if e.code == UNIQUE_VIOLATION and attempt < attempts:
                logger.warning(f'Number collision inserting into {table}, retrying ({attempt}/{attempts})')
                continue
            logger.error(f'Insert into {table} failed: {e.message}')
            raise db_error(label, e)
