"""Small helpers shared by the handler modules for running Supabase queries."""

import logging
from datetime import datetime, timezone

from postgrest.exceptions import APIError

from prabaraja.errors import ApiError, NotFoundError, db_error

logger = logging.getLogger(__name__)


def execute(query, label):
    """Run a query builder; backend errors become ``500 Failed to <label>``."""
    try:
        return query.execute()
    except APIError as e:
        logger.error(f'Failed to {label}: {e.message}')
        raise db_error(label, e)


def rows(query, label):
    return execute(query, label).data or []


def first_row(query, label):
    data = rows(query.limit(1), label)
    return data[0] if data else None


def require_id(payload, message='Missing required field: id'):
    value = payload.get('id')
    if value is None or value == '':
        raise ApiError(message, 400)
    return value


def get_owned(db, table, record_id, user_id, label, not_found, columns='*'):
    """Fetch one of the caller's rows by id or raise a 404 with ``not_found``."""
    row = first_row(
        db.table(table).select(columns).eq('id', record_id).eq('user_id', user_id),
        label)
    if row is None:
        raise NotFoundError(not_found)
    return row


def delete_owned(db, table, record_id, user_id, label, not_found):
    """Delete one of the caller's rows; 404 when nothing matched."""
    deleted = rows(
        db.table(table).delete().eq('id', record_id).eq('user_id', user_id),
        label)
    if not deleted:
        raise NotFoundError(not_found)
    return deleted[0]


def utc_now():
    return datetime.now(timezone.utc).isoformat()


def to_number(value, field='value'):
    """Coerce an item quantity or price to float; missing means 0."""
    if value is None or value == '':
        return 0.0
    if isinstance(value, bool):
        raise ApiError(f'Invalid number for {field}', 400)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ApiError(f'Invalid number for {field}', 400)


def sum_column(data, column):
    return round(sum(to_number(row.get(column), column) for row in data), 2)


def price_items(items, qty_key='qty', price_key='price', discount_key=None):
    """
    Return a copy of ``items`` with ``total_per_item`` filled in as
    ``qty * price`` (minus the discount when ``discount_key`` is given).
    """
    priced = []
    for item in items or []:
        total = to_number(item.get(qty_key), qty_key) * to_number(item.get(price_key), price_key)
        if discount_key:
            total -= to_number(item.get(discount_key), discount_key)
        priced.append({**item, 'total_per_item': round(total, 2)})
    return priced


def items_total(items):
    return round(sum(item['total_per_item'] for item in items), 2)
