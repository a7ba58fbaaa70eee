"""
Purchase documents: invoices, offers, orders, requests and shipments.

All five share one lifecycle (add, delete, list) and differ in table,
display prefix and a handful of fields. Numbers are a global running
sequence per table.
"""

import logging

from prabaraja.actions import ActionRouter, success
from prabaraja.numbering import next_global_number, insert_with_retry, pad_number
from prabaraja.queries import rows, first_row, require_id, price_items, items_total
from prabaraja.errors import NotFoundError
from validators import (PurchaseInvoiceSchema, PurchaseOfferSchema, PurchaseOrderSchema,
                        PurchaseRequestSchema, PurchaseShipmentSchema, load_payload)

logger = logging.getLogger(__name__)

router = ActionRouter('purchases')
purchases_blueprint = router.blueprint


class PurchaseKind:
    def __init__(self, name, table, prefix, schema, plural):
        self.name = name
        self.table = table
        self.prefix = prefix
        self.schema = schema
        self.plural = plural

    @property
    def label(self):
        return self.name.lower()

    def format(self, row):
        return {**row, 'number': f'{self.prefix}-{pad_number(row.get("number"))}'}


KINDS = {
    'Invoice': PurchaseKind('Invoice', 'invoices', 'INV', PurchaseInvoiceSchema, 'invoices'),
    'Offer': PurchaseKind('Offer', 'offers', 'OFR', PurchaseOfferSchema, 'offers'),
    'Order': PurchaseKind('Order', 'orders', 'ORD', PurchaseOrderSchema, 'orders'),
    'Request': PurchaseKind('Request', 'requests', 'REQ', PurchaseRequestSchema, 'requests'),
    'Shipment': PurchaseKind('Shipment', 'shipments', 'SH', PurchaseShipmentSchema, 'shipments'),
}


def invoice_totals(items, ppn_percentage, pph_percentage):
    """DPP is the item sum; VAT (PPN) is added and withholding tax (PPh) deducted."""
    dpp = items_total(items)
    ppn = round(dpp * (ppn_percentage or 0) / 100, 2)
    pph = round(dpp * (pph_percentage or 0) / 100, 2)
    return {'dpp': dpp, 'ppn': ppn, 'pph': pph, 'grand_total': round(dpp + ppn - pph, 2)}


def _add(ctx, kind):
    """Create a purchase document with the next global number."""
    data = load_payload(kind.schema(), ctx.payload)
    data['items'] = price_items(data['items'], 'qty', 'price')
    if kind.name == 'Invoice':
        data.update(invoice_totals(data['items'], data.get('ppn_percentage'), data.get('pph_percentage')))
    else:
        data['grand_total'] = items_total(data['items'])

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'number': next_global_number(ctx.db, kind.table),
        }

    created = insert_with_retry(ctx.db, kind.table, build_row, f'create {kind.label}')
    logger.info(f'Purchase {kind.label} created by {ctx.user_id}')
    row = created[0] if created else None
    return success(kind.format(row) if row else None, f'{kind.name} created successfully', 201)


def _delete(ctx, kind):
    """Delete a purchase document."""
    record_id = require_id(ctx.payload, f'{kind.name} ID is required')
    if first_row(ctx.db.table(kind.table).select('id').eq('id', record_id), f'fetch {kind.label}') is None:
        raise NotFoundError(f'{kind.name} not found')
    rows(ctx.db.table(kind.table).delete().eq('id', record_id), f'delete {kind.label}')
    return success(message=f'{kind.name} deleted successfully')


def _list(ctx, kind):
    """List the caller's documents of one kind, oldest first."""
    query = ctx.db.table(kind.table).select('*').eq('user_id', ctx.user_id)
    if ctx.payload.get('status'):
        query = query.eq('status', ctx.payload['status'])
    data = rows(query.order('date'), f'fetch {kind.plural}')
    return success([kind.format(row) for row in data])


def _register(kind):
    """Expose the add, delete and get actions for one document kind."""
    router.action(f'add{kind.name}', 'POST')(lambda ctx: _add(ctx, kind))
    router.action(f'delete{kind.name}', 'DELETE')(lambda ctx: _delete(ctx, kind))
    router.action(f'get{kind.name}', 'GET')(lambda ctx: _list(ctx, kind))


for _kind in KINDS.values():
    _register(_kind)
