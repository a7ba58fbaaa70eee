"""Cash & bank accounts owned by the caller."""

import logging

from prabaraja.actions import ActionRouter, success
from prabaraja.errors import ApiError, NotFoundError
from prabaraja.numbering import next_sequential_number, insert_with_retry
from prabaraja.queries import rows, first_row, require_id, sum_column
from validators import BankAccountSchema, BankAccountEditSchema, load_payload

logger = logging.getLogger(__name__)

router = ActionRouter('cashbank', unknown_status=400, unknown_message='Invalid action')
cashbank_blueprint = router.blueprint

ACCOUNT_NUMBER_BASE = 10000


@router.action('addAccount', 'POST')
def add_account(ctx):
    """Open a cash or bank account."""
    data = load_payload(BankAccountSchema(), ctx.payload)

    def build_row():
        return {
            **data,
            'user_id': ctx.user_id,
            'number': next_sequential_number(ctx.db, 'cashbank', ACCOUNT_NUMBER_BASE),
            'status': 'Active',
        }

    created = insert_with_retry(ctx.db, 'cashbank', build_row, 'add account')
    return success(created[0] if created else None, 'Account added successfully', 201)


@router.action('editAccount', 'PUT')
def edit_account(ctx):
    """Replace the details of a cash or bank account."""
    account_id = require_id(ctx.payload)
    data = load_payload(BankAccountEditSchema(), ctx.payload)
    changes = {
        'account_name': data['account_name'],
        'bank_name': data['bank_name'],
        'bank_number': data['account_number'],
        'balance': data['balance'],
    }
    if data.get('account_type'):
        changes['account_type'] = data['account_type']

    updated = rows(ctx.db.table('cashbank').update(changes)
                   .eq('id', account_id).eq('user_id', ctx.user_id), 'update account')
    if not updated:
        raise NotFoundError("Account not found or you don't have permission")
    return success(updated[0], 'Account updated successfully')


def _set_status(ctx, status, verb):
    account_id = require_id(ctx.payload)
    updated = rows(ctx.db.table('cashbank').update({'status': status})
                   .eq('id', account_id).eq('user_id', ctx.user_id), f'{verb} account')
    if not updated:
        raise NotFoundError("Account not found or you don't have permission")
    return success(message=f'Account {verb}d successfully')


@router.action('archiveAccount', 'PATCH')
def archive_account(ctx):
    """Archive a cash or bank account."""
    return _set_status(ctx, 'Archive', 'archive')


@router.action('unarchiveAccount', 'PATCH')
def unarchive_account(ctx):
    """Reactivate an archived account."""
    return _set_status(ctx, 'Active', 'unarchive')


@router.action('deleteAccount', 'DELETE')
def delete_account(ctx):
    """Delete a cash or bank account."""
    account_id = require_id(ctx.payload, 'Missing account ID')
    account = first_row(ctx.db.table('cashbank').select('id, status')
                        .eq('id', account_id).eq('user_id', ctx.user_id), 'fetch account')
    if account is None:
        raise NotFoundError("Account not found or you don't have permission")
    if account.get('status') != 'Archive':
        raise ApiError('Only archived accounts can be deleted', 400)

    rows(ctx.db.table('cashbank').delete()
         .eq('id', account_id).eq('user_id', ctx.user_id), 'delete account')
    logger.info(f'Cash/bank account {account_id} deleted by {ctx.user_id}')
    return success(message='Account deleted successfully')


@router.action('getAccounts', 'GET')
def get_accounts(ctx):
    """List the caller's cash and bank accounts."""
    query = ctx.db.table('cashbank').select('*').eq('user_id', ctx.user_id)
    if ctx.payload.get('status'):
        query = query.eq('status', ctx.payload['status'])
    return success(rows(query.order('created_at', desc=True), 'fetch accounts'))


def _active_balance(ctx, account_type, label):
    data = rows(ctx.db.table('cashbank').select('balance')
                .eq('user_id', ctx.user_id)
                .eq('account_type', account_type)
                .eq('status', 'Active'), label)
    return sum_column(data, 'balance')


@router.action('getCashBalance', 'GET')
def get_cash_balance(ctx):
    """Total balance of active cash accounts."""
    return success(total_cash_balance=_active_balance(ctx, 'Cash', 'fetch cash balance'))


@router.action('getCreditBalance', 'GET')
def get_credit_balance(ctx):
    """Total balance of active credit accounts."""
    return success(total_credit_balance=_active_balance(ctx, 'Credit', 'fetch credit balance'))
