"""
Fixed assets: register, edit, delete, list, sell and list sold.

Asset tags are ``YYYY`` of the purchase date plus a 3-digit counter and are
rendered ``AST-2025001`` in list responses.
"""

import logging
import re

from prabaraja.actions import ActionRouter, success
from prabaraja.listing import page_window, build_search_filter, apply_search
from prabaraja.numbering import next_asset_tag, insert_with_retry
from prabaraja.queries import rows, first_row, require_id, utc_now, to_number
from prabaraja.errors import NotFoundError
from validators import AssetSchema, SellAssetSchema, load_payload

logger = logging.getLogger(__name__)

router = ActionRouter('assets')
assets_blueprint = router.blueprint

MANAGE_ROLES = ('accounting', 'manager', 'admin')
SELL_ROLES = ('finance', 'manager', 'admin')
SOLD_ROLES = ('accounting', 'finance', 'manager', 'admin')

_ASSET_TEXT_COLUMNS = ('asset_type', 'asset_name', 'model', 'assigned_to',
                       'department', 'manufacturer', 'serial_number')
_SOLD_TEXT_COLUMNS = _ASSET_TEXT_COLUMNS + ('sold_to', 'reason_for_sale', 'invoice_no', 'notes')
_ASSET_CODE = re.compile(r'^AST-?0*(\d{6,})$', re.IGNORECASE)


def format_asset(row):
    tag = row.get('asset_tag')
    return {**row, 'asset_tag': f'AST-{tag}' if tag else None}


def with_profit_loss(row):
    purchase = to_number(row.get('purchase_price'), 'purchase_price')
    sale = to_number(row.get('sale_price'), 'sale_price')
    return {**format_asset(row), 'profit_loss': purchase - sale}


@router.action('addAsset', 'POST', roles=MANAGE_ROLES)
def add_asset(ctx):
    """Register a new asset with the next yearly tag."""
    data = load_payload(AssetSchema(), ctx.payload)

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'asset_tag': next_asset_tag(ctx.db, data['purchase_date']),
            'status': 'Active',
        }

    created = insert_with_retry(ctx.db, 'assets', build_row, 'add asset')
    logger.info(f'Asset added by {ctx.user_id}')
    return success(created[0] if created else None, 'Asset added successfully', 201)


@router.action('editAsset', 'PUT', roles=MANAGE_ROLES)
def edit_asset(ctx):
    """Update the supplied fields of an asset."""
    asset_id = require_id(ctx.payload, 'Asset ID is required for editing')
    if first_row(ctx.db.table('assets').select('id').eq('id', asset_id), 'fetch asset') is None:
        raise NotFoundError('Asset not found')

    changes = load_payload(AssetSchema(), ctx.payload, partial=True)
    changes['updated_at'] = utc_now()
    updated = rows(ctx.db.table('assets').update(changes).eq('id', asset_id), 'update asset')
    return success(updated[0] if updated else None, 'Asset updated successfully')


@router.action('deleteAsset', 'DELETE', roles=MANAGE_ROLES)
def delete_asset(ctx):
    """Delete an asset."""
    asset_id = require_id(ctx.payload, 'Asset ID is required')
    deleted = rows(ctx.db.table('assets').delete().eq('id', asset_id), 'delete asset')
    if not deleted:
        raise NotFoundError('Asset not found')
    return success(message='Asset deleted successfully')


def _list_assets(ctx, status, order_column, text_columns, float_columns, label):
    page, limit, start, end = page_window(ctx.payload)
    search = (ctx.payload.get('search') or '').lower()
    query = (ctx.db.table('assets').select('*')
             .eq('status', status)
             .order(order_column, desc=True)
             .range(start, end))
    query = apply_search(query, build_search_filter(
        search, text_columns,
        int_columns=('asset_tag',),
        float_columns=float_columns,
        code_patterns=((_ASSET_CODE, 'asset_tag'),)))
    return rows(query, label)


@router.action('getAssets', 'GET', roles=MANAGE_ROLES)
def get_assets(ctx):
    """List active assets, newest first."""
    data = _list_assets(ctx, 'Active', 'created_at', _ASSET_TEXT_COLUMNS,
                        ('purchase_price',), 'fetch assets')
    return success([format_asset(row) for row in data])


@router.action('sellAsset', 'POST', roles=SELL_ROLES)
def sell_asset(ctx):
    """Record the sale of an asset and mark it sold."""
    asset_id = require_id(ctx.payload)
    sale = load_payload(SellAssetSchema(), ctx.payload)
    if first_row(ctx.db.table('assets').select('id').eq('id', asset_id), 'fetch asset') is None:
        raise NotFoundError('Asset with provided ID not found')

    sale.update(status='Sold', updated_at=utc_now())
    rows(ctx.db.table('assets').update(sale).eq('id', asset_id), 'update asset status')
    logger.info(f'Asset {asset_id} sold by {ctx.user_id}')
    return success(message='Asset marked as sold successfully')


@router.action('getSoldAssets', 'GET', roles=SOLD_ROLES)
def get_sold_assets(ctx):
    """List sold assets, most recently sold first."""
    data = _list_assets(ctx, 'Sold', 'updated_at', _SOLD_TEXT_COLUMNS,
                        ('purchase_price', 'sale_price'), 'fetch sold assets')
    return success([with_profit_loss(row) for row in data])
