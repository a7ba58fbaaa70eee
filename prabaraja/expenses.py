"""
Expenses.

Numbers follow the monthly scheme (``YYYYMM`` + counter) keyed on the
expense date and are rendered ``Expense #2025041`` in list responses.
"""

import logging
import re

from prabaraja.actions import ActionRouter, success
from prabaraja.errors import NotFoundError
from prabaraja.listing import page_window, build_search_filter, apply_search
from prabaraja.numbering import next_monthly_number, insert_with_retry, pad_number
from prabaraja.periods import current_month, last_days, total_between
from prabaraja.queries import rows, first_row, require_id, price_items
from validators import ExpenseSchema, load_payload

logger = logging.getLogger(__name__)

router = ActionRouter('expenses')
expenses_blueprint = router.blueprint

EXPENSE_ROLES = ('finance', 'accounting', 'manager', 'admin')

_EXPENSE_CODE = re.compile(r'^expense\s?#?0*(\d{7,})$', re.IGNORECASE)


def format_expense(row):
    return {**row, 'number': f'Expense #{pad_number(row.get("number"))}'}


@router.action('addExpense', 'POST', roles=EXPENSE_ROLES)
def add_expense(ctx):
    """Record an expense with the next monthly number."""
    data = load_payload(ExpenseSchema(), ctx.payload)
    data['items'] = price_items(data['items'], 'qty', 'unit_price')

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'number': next_monthly_number(ctx.db, 'expenses', 'date', data['date']),
        }

    created = insert_with_retry(ctx.db, 'expenses', build_row, 'create expense')
    logger.info(f'Expense created by {ctx.user_id}')
    return success(created[0] if created else None, 'Expense created successfully', 201)


@router.action('editExpense', 'PUT', roles=EXPENSE_ROLES)
def edit_expense(ctx):
    """Update the supplied fields of an expense."""
    expense_id = require_id(ctx.payload, 'Missing required fields')
    changes = load_payload(ExpenseSchema(), ctx.payload, partial=True)
    if 'items' in changes:
        changes['items'] = price_items(changes['items'], 'qty', 'unit_price')

    updated = rows(ctx.db.table('expenses').update(changes).eq('id', expense_id), 'update expense')
    if not updated:
        raise NotFoundError('Expense not found')
    return success(updated[0], 'Expense updated successfully')


@router.action('approveExpense', 'PATCH', roles=EXPENSE_ROLES)
def approve_expense(ctx):
    """Mark an expense as paid."""
    expense_id = require_id(ctx.payload, 'Expense ID is required')
    updated = rows(ctx.db.table('expenses').update({'status': 'Paid'}).eq('id', expense_id),
                   'approve expense')
    if not updated:
        raise NotFoundError('Expense not found with the given ID')
    logger.info(f'Expense {expense_id} approved by {ctx.user_id}')
    return success(updated[0], 'Expense approved successfully')


@router.action('deleteExpense', 'DELETE', roles=EXPENSE_ROLES)
def delete_expense(ctx):
    """Delete an expense."""
    expense_id = require_id(ctx.payload, 'Expense ID is required')
    if first_row(ctx.db.table('expenses').select('id').eq('id', expense_id), 'fetch expense') is None:
        raise NotFoundError('Expense not found')
    rows(ctx.db.table('expenses').delete().eq('id', expense_id), 'delete expense')
    return success(message='Expense deleted successfully')


@router.action('getExpense', 'GET', roles=EXPENSE_ROLES)
def get_expenses(ctx):
    """List expenses, newest first."""
    page, limit, start, end = page_window(ctx.payload)
    query = ctx.db.table('expenses').select('*').order('date', desc=True).range(start, end)
    if ctx.payload.get('status'):
        query = query.eq('status', ctx.payload['status'])
    query = apply_search(query, build_search_filter(
        (ctx.payload.get('search') or '').lower(),
        ('category', 'beneficiary'),
        int_columns=('number',),
        float_columns=('grand_total',),
        code_patterns=((_EXPENSE_CODE, 'number'),)))
    return success([format_expense(row) for row in rows(query, 'fetch expenses')])


@router.action('summaryExpense', 'GET', roles=EXPENSE_ROLES)
def summary_expense(ctx):
    """Expense totals for this month and the last 30 days."""
    data = rows(ctx.db.table('expenses').select('date, grand_total'), 'fetch expenses')
    month_start, month_end = current_month()
    window_start, window_end = last_days(30)
    return success({
        'monthly_total': total_between(data, 'date', 'grand_total', month_start, month_end),
        'last_30_days_total': total_between(data, 'date', 'grand_total', window_start, window_end),
    })
