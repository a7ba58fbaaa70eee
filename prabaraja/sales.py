"""
Sales documents: sale invoices, order deliveries, quotations and sales
offers.

Each kind lives in its own table with its own date column. Numbers follow
the monthly scheme keyed on that date. Attachments are paths in the
``private`` storage bucket listed in ``attachment_url``.
"""

import json
import logging
import re

from prabaraja.actions import ActionRouter, success
from prabaraja.errors import ApiError, NotFoundError
from prabaraja.listing import page_window, build_search_filter, apply_search
from prabaraja.numbering import next_monthly_number, insert_with_retry, pad_number
from prabaraja.periods import last_days, total_between
from prabaraja.queries import rows, first_row, require_id, price_items, items_total, utc_now, sum_column
from validators import (SaleSchema, OrderDeliverySchema, QuotationSchema, SalesOfferSchema,
                        load_payload)

logger = logging.getLogger(__name__)

router = ActionRouter('sales')
sales_blueprint = router.blueprint

ATTACHMENT_BUCKET = 'private'

SALE_ROLES = ('sales', 'manager', 'admin')
DELIVERY_ROLES = ('sales', 'logistics', 'manager', 'admin')
QUOTATION_ROLES = ('sales', 'marketing', 'manager', 'admin')
OFFER_READ_ROLES = ('procurement', 'manager', 'admin')


class SalesKind:
    """Table layout and presentation of one sales document type."""

    def __init__(self, name, table, date_column, schema, display, code_pattern,
                 search_columns, total_column, item_keys, plural):
        self.name = name
        self.table = table
        self.date_column = date_column
        self.schema = schema
        self.display = display
        self.code_pattern = code_pattern
        self.search_columns = search_columns
        self.total_column = total_column
        self.item_keys = item_keys
        self.plural = plural

    @property
    def label(self):
        return self.name.lower()

    def format(self, row):
        return {**row, 'number': f'{self.display}{pad_number(row.get("number"))}'}

    def price(self, items):
        return price_items(items, *self.item_keys)


SALE = SalesKind(
    'Sale', 'sales', 'invoice_date', SaleSchema, 'Sales Invoice #',
    re.compile(r'^sales invoice\s?#?0*(\d{7,})$', re.IGNORECASE),
    ('customer_name',), 'grand_total', ('qty', 'unit_price'), 'sales')
ORDER_DELIVERY = SalesKind(
    'Order delivery', 'order_deliveries', 'order_date', OrderDeliverySchema, 'Order #',
    re.compile(r'^order\s?#?0*(\d{7,})$', re.IGNORECASE),
    ('customer_name',), 'grand_total', ('quantity', 'price', 'discount'), 'order deliveries')
QUOTATION = SalesKind(
    'Quotation', 'quotations', 'quotation_date', QuotationSchema, 'Quotation #',
    re.compile(r'^quotation\s?#?0*(\d{7,})$', re.IGNORECASE),
    ('customer_name',), 'total', ('qty', 'unit_price'), 'quotations')
OFFER = SalesKind(
    'Offer', 'offers_sales', 'date', SalesOfferSchema, 'OFR-',
    re.compile(r'^OFR-?0*(\d{5,})$', re.IGNORECASE),
    ('discount_terms',), 'grand_total', ('qty', 'price'), 'offers')


def parse_paths(value):
    """``filesToDelete`` arrives as a list or a JSON-encoded list of paths."""
    if value in (None, '', []):
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise ApiError(f'Invalid filesToDelete JSON: {e}', 400)
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise ApiError('Invalid filesToDelete JSON: expected an array of paths', 400)
    return value


def remove_files(db, paths):
    if not paths:
        return
    try:
        db.storage.from_(ATTACHMENT_BUCKET).remove(paths)
    except Exception as e:
        logger.error(f'Failed to remove attachments {paths}: {e}')
        raise ApiError(f'Failed to delete files: {e}', 500)
    logger.info(f'Removed {len(paths)} attachment(s)')


def _add(ctx, kind):
    data = load_payload(kind.schema(), ctx.payload)
    data['items'] = kind.price(data['items'])
    if kind is OFFER or (kind is ORDER_DELIVERY and data.get('grand_total') is None):
        data['grand_total'] = items_total(data['items'])

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'number': next_monthly_number(ctx.db, kind.table, kind.date_column, data[kind.date_column]),
        }

    created = insert_with_retry(ctx.db, kind.table, build_row, f'create {kind.label}')
    logger.info(f'{kind.name} created by {ctx.user_id}')
    row = created[0] if created else None
    return success(kind.format(row) if row else None, f'{kind.name} created successfully', 201)


def _edit(ctx, kind):
    record_id = require_id(ctx.payload, 'Missing required fields')
    files_to_delete = parse_paths(ctx.payload.get('filesToDelete'))
    changes = load_payload(kind.schema(), ctx.payload, partial=True)

    existing = first_row(ctx.db.table(kind.table).select('*').eq('id', record_id),
                         f'fetch {kind.label}')
    if existing is None:
        raise NotFoundError(f'{kind.name} not found or unauthorized')

    if 'items' in changes:
        changes['items'] = kind.price(changes['items'])
        if kind is OFFER:
            changes['grand_total'] = items_total(changes['items'])

    if files_to_delete:
        remove_files(ctx.db, files_to_delete)
        remaining = [p for p in (existing.get('attachment_url') or []) if p not in files_to_delete]
        changes['attachment_url'] = remaining

    changes['updated_at'] = utc_now()
    updated = rows(ctx.db.table(kind.table).update(changes).eq('id', record_id),
                   f'update {kind.label}')
    row = updated[0] if updated else {**existing, **changes}
    return success(kind.format(row), f'{kind.name} updated successfully')


def _delete(ctx, kind, missing_id):
    record_id = require_id(ctx.payload, missing_id)
    existing = first_row(ctx.db.table(kind.table).select('id, attachment_url').eq('id', record_id),
                         f'fetch {kind.label}')
    if existing is None:
        raise NotFoundError(f'{kind.name} not found')
    rows(ctx.db.table(kind.table).delete().eq('id', record_id), f'delete {kind.label}')
    remove_files(ctx.db, existing.get('attachment_url') or [])
    return success(message=f'{kind.name} deleted successfully')


def _list(ctx, kind):
    page, limit, start, end = page_window(ctx.payload)
    query = (ctx.db.table(kind.table).select('*')
             .order(kind.date_column, desc=True)
             .range(start, end))
    if ctx.payload.get('status'):
        query = query.eq('status', ctx.payload['status'])
    query = apply_search(query, build_search_filter(
        (ctx.payload.get('search') or '').lower(),
        kind.search_columns,
        int_columns=('number',),
        float_columns=(kind.total_column,),
        code_patterns=((kind.code_pattern, 'number'),)))
    return success([kind.format(row) for row in rows(query, f'fetch {kind.plural}')])


@router.action('addNewSale', 'POST', roles=SALE_ROLES, aliases=('addSale',))
def add_sale(ctx):
    """Create a sales invoice."""
    return _add(ctx, SALE)


@router.action('addNewOrderDelivery', 'POST', roles=DELIVERY_ROLES, aliases=('addOrderDelivery',))
def add_order_delivery(ctx):
    """Create an order delivery."""
    return _add(ctx, ORDER_DELIVERY)


@router.action('addNewQuotation', 'POST', roles=QUOTATION_ROLES, aliases=('addQuotation',))
def add_quotation(ctx):
    """Create a quotation."""
    return _add(ctx, QUOTATION)


@router.action('addNewOffer', 'POST', roles=QUOTATION_ROLES)
def add_offer(ctx):
    """Create a sales offer."""
    return _add(ctx, OFFER)


@router.action('editNewSale', 'PUT', roles=SALE_ROLES, aliases=('editSale',))
def edit_sale(ctx):
    """Update a sales invoice."""
    return _edit(ctx, SALE)


@router.action('editNewOrderDelivery', 'PUT', roles=DELIVERY_ROLES, aliases=('editOrderDelivery',))
def edit_order_delivery(ctx):
    """Update an order delivery."""
    return _edit(ctx, ORDER_DELIVERY)


@router.action('editNewQuotation', 'PUT', roles=QUOTATION_ROLES, aliases=('editQuotation',))
def edit_quotation(ctx):
    """Update a quotation."""
    return _edit(ctx, QUOTATION)


@router.action('editNewOffer', 'PUT', roles=QUOTATION_ROLES)
def edit_offer(ctx):
    """Update a sales offer."""
    return _edit(ctx, OFFER)


@router.action('deleteSale', 'DELETE', roles=SALE_ROLES)
def delete_sale(ctx):
    """Delete a sales invoice and its attachments."""
    return _delete(ctx, SALE, 'Sale ID is required')


@router.action('deleteOrderDelivery', 'DELETE', roles=DELIVERY_ROLES)
def delete_order_delivery(ctx):
    """Delete an order delivery and its attachments."""
    return _delete(ctx, ORDER_DELIVERY, 'Order Delivery ID is required')


@router.action('deleteQuotation', 'DELETE', roles=QUOTATION_ROLES)
def delete_quotation(ctx):
    """Delete a quotation and its attachments."""
    return _delete(ctx, QUOTATION, 'Quotation ID is required')


@router.action('deleteOffer', 'DELETE', roles=QUOTATION_ROLES)
def delete_offer(ctx):
    """Delete a sales offer and its attachments."""
    return _delete(ctx, OFFER, 'Offer ID is required')


@router.action('getSale', 'GET', roles=SALE_ROLES)
def get_sales(ctx):
    """List sales invoices."""
    return _list(ctx, SALE)


@router.action('getOrderDelivery', 'GET', roles=DELIVERY_ROLES)
def get_order_deliveries(ctx):
    """List order deliveries."""
    return _list(ctx, ORDER_DELIVERY)


@router.action('getQuotation', 'GET', roles=QUOTATION_ROLES)
def get_quotations(ctx):
    """List quotations."""
    return _list(ctx, QUOTATION)


@router.action('getOffer', 'GET', roles=OFFER_READ_ROLES)
def get_offers(ctx):
    """List sales offers."""
    return _list(ctx, OFFER)


@router.action('summarySale', 'GET', roles=QUOTATION_ROLES)
def summary_sale(ctx):
    """Unpaid and last-30-days sales totals."""
    data = rows(ctx.db.table('sales').select('invoice_date, grand_total, status'), 'fetch sales')
    unpaid = sum_column([row for row in data if row.get('status') == 'Unpaid'], 'grand_total')
    start, end = last_days(30)
    return success({
        'unpaid_total': unpaid,
        'last_30_days_total': total_between(data, 'invoice_date', 'grand_total', start, end),
    })
