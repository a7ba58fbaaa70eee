"""Customers, vendors and employees."""

from prabaraja.actions import ActionRouter, success
from prabaraja.numbering import next_sequential_number, insert_with_retry
from prabaraja.queries import rows, to_number
from validators import ContactSchema, load_payload

router = ActionRouter('contacts', unknown_status=400, unknown_message='Invalid action')
contacts_blueprint = router.blueprint

CONTACT_NUMBER_BASE = 100


@router.action('addContact', 'POST')
def add_contact(ctx):
    """Create a customer, vendor or employee contact."""
    data = load_payload(ContactSchema(), ctx.payload)

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'number': next_sequential_number(ctx.db, 'contacts', CONTACT_NUMBER_BASE),
        }

    created = insert_with_retry(ctx.db, 'contacts', build_row, 'add contact')
    return success(created[0] if created else None, 'Contact added successfully', 201)


def _by_category(ctx, category, label):
    return success(rows(ctx.db.table('contacts').select('*')
                        .eq('user_id', ctx.user_id)
                        .eq('category', category)
                        .order('created_at', desc=True), label))


@router.action('getCustomer', 'GET')
def get_customers(ctx):
    """List customer contacts."""
    return _by_category(ctx, 'Customer', 'fetch customers')


@router.action('getVendor', 'GET')
def get_vendors(ctx):
    """List vendor contacts."""
    return _by_category(ctx, 'Vendor', 'fetch vendors')


@router.action('getEmployee', 'GET')
def get_employees(ctx):
    """List employee contacts."""
    return _by_category(ctx, 'Employee', 'fetch employees')


@router.action('getContactExpenses', 'GET')
def get_contact_expenses(ctx):
    """Total of the caller's purchase invoices, keyed by user."""
    invoices = rows(ctx.db.table('invoices').select('user_id, grand_total')
                    .eq('user_id', ctx.user_id), 'fetch invoices')
    totals = {}
    for invoice in invoices:
        key = str(invoice.get('user_id'))
        totals[key] = totals.get(key, 0) + to_number(invoice.get('grand_total'), 'grand_total')
    return success({key: round(value, 2) for key, value in totals.items()})
