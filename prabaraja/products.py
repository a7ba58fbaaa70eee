"""Products and warehouses."""

from prabaraja.actions import ActionRouter, success
from prabaraja.errors import NotFoundError
from prabaraja.numbering import next_sequential_number, insert_with_retry
from prabaraja.queries import rows, first_row, require_id
from validators import ProductSchema, WarehouseSchema, load_payload

router = ActionRouter('products')
products_blueprint = router.blueprint

PRODUCT_NUMBER_BASE = 1000
WAREHOUSE_NUMBER_BASE = 1000


def _add_numbered(ctx, table, schema, base, label, message):
    data = load_payload(schema, ctx.payload)

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'number': next_sequential_number(ctx.db, table, base),
        }

    created = insert_with_retry(ctx.db, table, build_row, label)
    return success(created[0] if created else None, message, 201)


def _delete(ctx, table, label, missing_id, not_found, message):
    record_id = require_id(ctx.payload, missing_id)
    if first_row(ctx.db.table(table).select('id').eq('id', record_id), f'fetch {label}') is None:
        raise NotFoundError(not_found)
    rows(ctx.db.table(table).delete().eq('id', record_id), f'delete {label}')
    return success(message=message)


@router.action('addProduct', 'POST')
def add_product(ctx):
    """Add a product with the next product number."""
    return _add_numbered(ctx, 'products', ProductSchema(), PRODUCT_NUMBER_BASE,
                         'add product', 'Product added successfully')


@router.action('addWarehouse', 'POST')
def add_warehouse(ctx):
    """Add a warehouse with the next warehouse number."""
    return _add_numbered(ctx, 'warehouses', WarehouseSchema(), WAREHOUSE_NUMBER_BASE,
                         'add warehouse', 'Warehouse added successfully')


@router.action('deleteProduct', 'DELETE')
def delete_product(ctx):
    """Delete a product."""
    return _delete(ctx, 'products', 'product', 'Product ID is required',
                   'Product not found', 'Product deleted successfully')


@router.action('deleteWarehouse', 'DELETE')
def delete_warehouse(ctx):
    """Delete a warehouse."""
    return _delete(ctx, 'warehouses', 'warehouse', 'Warehouse ID is required',
                   'Warehouse not found', 'Warehouse deleted successfully')


@router.action('getProducts', 'GET')
def get_products(ctx):
    """List the caller's products."""
    return success(rows(ctx.db.table('products').select('*')
                        .eq('user_id', ctx.user_id)
                        .order('created_at', desc=True), 'fetch products'))


@router.action('getWarehouses', 'GET')
def get_warehouses(ctx):
    """List the caller's warehouses."""
    return success(rows(ctx.db.table('warehouses').select('*')
                        .eq('user_id', ctx.user_id)
                        .order('created_at', desc=True), 'fetch warehouses'))


def _by_category(ctx, category):
    return success(rows(ctx.db.table('products').select('*')
                        .eq('user_id', ctx.user_id)
                        .eq('category', category), f'fetch {category.lower()} products'))


@router.action('getElectronics', 'GET')
def get_electronics(ctx):
    """List electronics products."""
    return _by_category(ctx, 'Electronics')


@router.action('getOffice', 'GET')
def get_office(ctx):
    """List office products."""
    return _by_category(ctx, 'Office')


@router.action('getFurniture', 'GET')
def get_furniture(ctx):
    """List furniture products."""
    return _by_category(ctx, 'Furniture')
