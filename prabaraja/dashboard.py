"""
Dashboard: finance summary, chart of accounts, journals and profit & loss.

The chart-of-accounts rules (code scheme, lock inheritance, what may be
deleted) live in ``prabaraja.coa``; journal balancing lives in
``prabaraja.journals``. This module loads rows, applies those rules and
writes the result.
"""

import logging

from postgrest.exceptions import APIError

from prabaraja import coa
from prabaraja.actions import ActionRouter, success
from prabaraja.errors import ApiError, ConflictError, db_error
from prabaraja.journals import JournalError, validate_journal, profit_and_loss
from prabaraja.listing import page_window, sanitize_search
from prabaraja.numbering import next_journal_code, insert_with_retry, parse_date
from prabaraja.periods import current_month, previous_month, total_between
from prabaraja.queries import rows, first_row, require_id, get_owned, utc_now
from validators import COASchema, COAEditSchema, JournalSchema, load_payload

logger = logging.getLogger(__name__)

router = ActionRouter('dashboard')
dashboard_blueprint = router.blueprint

LEDGER_WRITE_ROLES = ('accounting', 'manager', 'admin')
LEDGER_READ_ROLES = ('accounting', 'finance', 'manager', 'admin')


# --- finance summary ---

@router.action('summaryFinance', 'GET')
def summary_finance(ctx):
    """Sales and payments received this month and last month."""
    sales = rows(ctx.db.table('sales').select('invoice_date, grand_total'), 'fetch sales')
    payments = rows(ctx.db.table('bank_receive_transactions').select('date_received, amount'),
                    'fetch payment transactions')
    this_start, this_end = current_month()
    prev_start, prev_end = previous_month()
    return success({
        'total_sales_current_month': total_between(sales, 'invoice_date', 'grand_total', this_start, this_end),
        'total_sales_previous_month': total_between(sales, 'invoice_date', 'grand_total', prev_start, prev_end),
        'payments_received_current_month': total_between(payments, 'date_received', 'amount', this_start, this_end),
        'payments_received_previous_month': total_between(payments, 'date_received', 'amount', prev_start, prev_end),
    })


# --- chart of accounts ---

def _coa_query(ctx, columns='*'):
    return ctx.db.table('chart_of_accounts').select(columns).eq('user_id', ctx.user_id)


def _find_account(ctx, code):
    return first_row(_coa_query(ctx).eq('code', code), 'fetch account')


def _accounts_by_code(ctx, codes):
    codes = sorted(set(codes))
    if not codes:
        return {}
    data = rows(_coa_query(ctx).in_('code', codes), 'fetch accounts')
    return {row['code']: row for row in data}


def _child_codes(ctx, code):
    prefix = coa.descendant_prefix(code)
    if prefix is None:
        return []
    data = rows(_coa_query(ctx, 'code').like('code', f'{prefix}%').neq('code', code),
                'fetch child accounts')
    return [row['code'] for row in data]


def _resolve_new_code(ctx, level, category, parent_code, supplied):
    """Work out (code, parent row) for a new account or raise a 400."""
    try:
        if level == 1:
            if category is None:
                raise ApiError('Category is required for level 1 accounts', 400)
            code = supplied or coa.make_code(category)
            ok, reason = coa.check_code_placement(code, 1, category=category)
            if not ok:
                raise ApiError(reason, 400)
            return code, None

        if not parent_code:
            raise ApiError('Parent code is required for level 2 and 3 accounts', 400)
        parent = _find_account(ctx, parent_code)
        ok, reason = coa.can_create_under(parent, level)
        if not ok:
            raise ApiError(reason, 404 if parent is None else 400)
        if supplied:
            ok, reason = coa.check_code_placement(supplied, level, parent=parent_code)
            if not ok:
                raise ApiError(reason, 400)
            return supplied, parent
        return coa.next_child_code(parent_code, _child_codes(ctx, parent_code)), parent
    except coa.CodeError as e:
        raise ApiError(str(e), 400)


@router.action('getCOA', 'GET', roles=LEDGER_READ_ROLES)
def get_coa(ctx):
    """List chart-of-accounts entries, flat or as a tree."""
    query = _coa_query(ctx)
    if ctx.payload.get('level'):
        query = query.eq('level', _int_param(ctx.payload, 'level'))
    if ctx.payload.get('category'):
        query = query.eq('category', _int_param(ctx.payload, 'category'))
    term = sanitize_search(ctx.payload.get('search'))
    if term:
        query = query.or_(f'name.ilike.%{term}%,code.ilike.%{term}%')
    data = rows(query.order('code'), 'fetch accounts')
    if str(ctx.payload.get('tree', '')).lower() in ('1', 'true', 'yes'):
        return success(coa.build_tree(data))
    return success(data)


def _int_param(payload, name):
    try:
        return int(payload.get(name))
    except (TypeError, ValueError):
        raise ApiError(f'Invalid {name}', 400)


@router.action('getNextCOACode', 'GET', roles=LEDGER_WRITE_ROLES)
def get_next_coa_code(ctx):
    """Suggest the next free code for a new account."""
    level = _int_param(ctx.payload, 'level')
    if level not in (1, 2, 3):
        raise ApiError('Level must be 1, 2 or 3', 400)
    category = _int_param(ctx.payload, 'category') if ctx.payload.get('category') else None
    code, _ = _resolve_new_code(ctx, level, category, ctx.payload.get('parent_code'), None)
    if level == 1 and _find_account(ctx, code) is not None:
        raise ConflictError(f'Account code {code} already exists')
    return success({'code': code})


@router.action('addCOA', 'POST', roles=LEDGER_WRITE_ROLES)
def add_coa(ctx):
    """Create a chart-of-accounts entry."""
    data = load_payload(COASchema(), ctx.payload)
    level = data['level']
    supplied = (data.get('code') or '').strip() or None

    code, parent = _resolve_new_code(ctx, level, data.get('category'), data.get('parent_code'), supplied)
    if _find_account(ctx, code) is not None:
        raise ConflictError(f'Account code {code} already exists')

    def build_row():
        nonlocal code
        if parent is not None and not supplied:
            code = coa.next_child_code(parent['code'], _child_codes(ctx, parent['code']))
        return {
            'user_id': ctx.user_id,
            'code': code,
            'name': data['name'],
            'level': level,
            'parent_code': parent['code'] if parent else None,
            'category': coa.category_of(code),
            'detail_type': data.get('detail_type'),
            'description': data.get('description'),
            'is_locked': bool(parent and parent.get('is_locked')),
        }

    try:
        created = insert_with_retry(ctx.db, 'chart_of_accounts', build_row, 'add account')
    except coa.CodeError as e:
        raise ApiError(str(e), 400)
    logger.info(f'COA account {code} added by {ctx.user_id}')
    return success(created[0] if created else None, 'Account added successfully', 201)


@router.action('editCOA', 'PUT', roles=LEDGER_WRITE_ROLES)
def edit_coa(ctx):
    """Update the editable fields of an unlocked account."""
    account_id = require_id(ctx.payload, 'Account ID is required')
    account = get_owned(ctx.db, 'chart_of_accounts', account_id, ctx.user_id,
                        'fetch account', 'Account not found')
    ok, reason = coa.can_edit_account(account)
    if not ok:
        raise ApiError(reason, 400)

    changes = load_payload(COAEditSchema(), ctx.payload, partial=True)
    if not changes:
        raise ApiError('Nothing to update', 400)
    changes['updated_at'] = utc_now()
    updated = rows(ctx.db.table('chart_of_accounts').update(changes)
                   .eq('id', account_id).eq('user_id', ctx.user_id), 'update account')
    return success(updated[0] if updated else {**account, **changes}, 'Account updated successfully')


@router.action('deleteCOA', 'DELETE', roles=LEDGER_WRITE_ROLES)
def delete_coa(ctx):
    """Delete an account with no children and no journal lines."""
    account_id = require_id(ctx.payload, 'Account ID is required')
    account = get_owned(ctx.db, 'chart_of_accounts', account_id, ctx.user_id,
                        'fetch account', 'Account not found')
    has_children = bool(_child_codes(ctx, account['code']))
    has_lines = first_row(ctx.db.table('journal_lines').select('id')
                          .eq('user_id', ctx.user_id).eq('account_code', account['code']),
                          'fetch journal lines') is not None
    ok, reason = coa.can_delete_account(account, has_children, has_lines)
    if not ok:
        raise ApiError(reason, 400)

    rows(ctx.db.table('chart_of_accounts').delete()
         .eq('id', account_id).eq('user_id', ctx.user_id), 'delete account')
    logger.info(f'COA account {account["code"]} deleted by {ctx.user_id}')
    return success(message='Account deleted successfully')


def _set_locked(ctx, account, locked):
    """Apply the lock flag to the account and all of its descendants."""
    table = ctx.db.table('chart_of_accounts')
    label = 'lock account' if locked else 'unlock account'
    changed = rows(table.update({'is_locked': locked})
                   .eq('user_id', ctx.user_id).eq('code', account['code']), label)
    prefix = coa.descendant_prefix(account['code'])
    if prefix:
        changed += rows(ctx.db.table('chart_of_accounts').update({'is_locked': locked})
                        .eq('user_id', ctx.user_id).like('code', f'{prefix}%')
                        .neq('code', account['code']), label)
    return [row['code'] for row in changed]


@router.action('lockCOA', 'PATCH', roles=LEDGER_WRITE_ROLES)
def lock_coa(ctx):
    """Lock an account and everything beneath it."""
    account_id = require_id(ctx.payload, 'Account ID is required')
    account = get_owned(ctx.db, 'chart_of_accounts', account_id, ctx.user_id,
                        'fetch account', 'Account not found')
    codes = _set_locked(ctx, account, True)
    logger.info(f'Locked {len(codes)} account(s) from {account["code"]}')
    return success({'codes': codes}, 'Account locked successfully')


@router.action('unlockCOA', 'PATCH', roles=LEDGER_WRITE_ROLES)
def unlock_coa(ctx):
    """Unlock an account whose parent is unlocked."""
    account_id = require_id(ctx.payload, 'Account ID is required')
    account = get_owned(ctx.db, 'chart_of_accounts', account_id, ctx.user_id,
                        'fetch account', 'Account not found')
    parent = _find_account(ctx, account['parent_code']) if account.get('parent_code') else None
    ok, reason = coa.can_unlock_account(account, parent)
    if not ok:
        raise ApiError(reason, 400)
    codes = _set_locked(ctx, account, False)
    return success({'codes': codes}, 'Account unlocked successfully')


# --- journals ---

def _line_rows(ctx, journal_id, lines):
    return [{
        'journal_id': journal_id,
        'user_id': ctx.user_id,
        'account_code': line['account_code'],
        'description': line.get('description'),
        'debit': float(line['debit']),
        'credit': float(line['credit']),
    } for line in lines]


def _validated_lines(ctx, lines):
    codes = [(line.get('account_code') or '').strip() for line in lines]
    accounts = _accounts_by_code(ctx, [c for c in codes if c])
    try:
        return validate_journal(lines, accounts)
    except JournalError as e:
        raise ApiError(str(e), 400)


def _lines_of(ctx, journal_ids):
    if not journal_ids:
        return []
    return rows(ctx.db.table('journal_lines').select('*')
                .eq('user_id', ctx.user_id).in_('journal_id', list(journal_ids)),
                'fetch journal lines')


def _ensure_unlocked(ctx, lines):
    accounts = _accounts_by_code(ctx, [line['account_code'] for line in lines])
    locked = sorted(code for code, account in accounts.items() if account.get('is_locked'))
    if locked:
        raise ApiError(f'Journal posts to locked account(s): {", ".join(locked)}', 400)


@router.action('addJournal', 'POST', roles=LEDGER_WRITE_ROLES)
def add_journal(ctx):
    """Post a balanced journal with its lines."""
    data = load_payload(JournalSchema(), ctx.payload)
    lines, debit, credit = _validated_lines(ctx, data['lines'])

    def build_row():
        return {
            'user_id': ctx.user_id,
            'code': next_journal_code(ctx.db, data['date']),
            'date': data['date'],
            'description': data.get('description'),
            'reference': data.get('reference'),
            'total_debit': float(debit),
            'total_credit': float(credit),
        }

    created = insert_with_retry(ctx.db, 'journals', build_row, 'add journal')
    journal = created[0]
    try:
        inserted = ctx.db.table('journal_lines').insert(_line_rows(ctx, journal['id'], lines)).execute().data
    except APIError as e:
        logger.error(f'Journal lines insert failed, removing journal {journal["code"]}: {e.message}')
        rows(ctx.db.table('journals').delete().eq('id', journal['id']), 'remove journal')
        raise db_error('add journal lines', e)

    logger.info(f'Journal {journal["code"]} posted by {ctx.user_id}')
    return success({**journal, 'lines': inserted}, 'Journal added successfully', 201)


@router.action('editJournal', 'PUT', roles=LEDGER_WRITE_ROLES)
def edit_journal(ctx):
    """Update a journal header and optionally replace its lines."""
    journal_id = require_id(ctx.payload, 'Journal ID is required')
    journal = get_owned(ctx.db, 'journals', journal_id, ctx.user_id, 'fetch journal', 'Journal not found')
    old_lines = _lines_of(ctx, [journal_id])
    _ensure_unlocked(ctx, old_lines)

    changes = load_payload(JournalSchema(), ctx.payload, partial=True)
    new_lines = changes.pop('lines', None)
    if new_lines is not None:
        lines, debit, credit = _validated_lines(ctx, new_lines)
        changes.update(total_debit=float(debit), total_credit=float(credit))
    if 'date' in changes and parse_date(changes['date']).year != parse_date(journal['date']).year:
        changes['code'] = next_journal_code(ctx.db, changes['date'])
    changes['updated_at'] = utc_now()

    result_lines = old_lines
    if new_lines is not None:
        result_lines = _replace_lines(ctx, journal_id, _line_rows(ctx, journal_id, lines), old_lines)

    try:
        updated = ctx.db.table('journals').update(changes) \
            .eq('id', journal_id).eq('user_id', ctx.user_id).execute().data
    except APIError as e:
        logger.error(f'Journal {journal_id} header update failed: {e.message}')
        if new_lines is not None:
            _replace_lines(ctx, journal_id, _restorable(old_lines), result_lines)
        raise db_error('update journal', e)

    if 'code' in changes:
        logger.info(f'Journal {journal["code"]} renumbered to {changes["code"]}')
    row = updated[0] if updated else {**journal, **changes}
    return success({**row, 'lines': result_lines}, 'Journal updated successfully')


def _restorable(lines):
    return [{k: v for k, v in line.items() if k != 'id'} for line in lines]


def _replace_lines(ctx, journal_id, new_rows, old_lines):
    """Swap a journal's lines, putting ``old_lines`` back if the insert fails."""
    rows(ctx.db.table('journal_lines').delete().eq('journal_id', journal_id), 'replace journal lines')
    try:
        return ctx.db.table('journal_lines').insert(new_rows).execute().data
    except APIError as e:
        logger.error(f'Journal {journal_id} lines replace failed, restoring: {e.message}')
        restore = _restorable(old_lines)
        if restore:
            rows(ctx.db.table('journal_lines').insert(restore), 'restore journal lines')
        raise db_error('update journal lines', e)


@router.action('deleteJournal', 'DELETE', roles=LEDGER_WRITE_ROLES)
def delete_journal(ctx):
    """Delete a journal and its lines."""
    journal_id = require_id(ctx.payload, 'Journal ID is required')
    journal = get_owned(ctx.db, 'journals', journal_id, ctx.user_id, 'fetch journal', 'Journal not found')
    _ensure_unlocked(ctx, _lines_of(ctx, [journal_id]))

    rows(ctx.db.table('journal_lines').delete().eq('journal_id', journal_id), 'delete journal lines')
    rows(ctx.db.table('journals').delete().eq('id', journal_id).eq('user_id', ctx.user_id),
         'delete journal')
    logger.info(f'Journal {journal["code"]} deleted by {ctx.user_id}')
    return success(message='Journal deleted successfully')


def _date_param(payload, name):
    value = payload.get(name)
    return parse_date(value).isoformat() if value else None


def _journals_query(ctx, columns='*'):
    query = ctx.db.table('journals').select(columns).eq('user_id', ctx.user_id)
    start, end = _date_param(ctx.payload, 'start_date'), _date_param(ctx.payload, 'end_date')
    if start:
        query = query.gte('date', start)
    if end:
        query = query.lte('date', end)
    return query


@router.action('getJournals', 'GET', roles=LEDGER_READ_ROLES)
def get_journals(ctx):
    """List journals with their lines, newest first."""
    page, limit, start, end = page_window(ctx.payload)
    query = _journals_query(ctx)
    term = sanitize_search(ctx.payload.get('search'))
    if term:
        query = query.or_(f'code.ilike.%{term}%,description.ilike.%{term}%')
    journals = rows(query.order('date', desc=True).order('code', desc=True).range(start, end),
                    'fetch journals')

    grouped = {}
    for line in _lines_of(ctx, [j['id'] for j in journals]):
        grouped.setdefault(line['journal_id'], []).append(line)
    return success([{**j, 'lines': grouped.get(j['id'], [])} for j in journals])


@router.action('getProfitLoss', 'GET', roles=LEDGER_READ_ROLES)
def get_profit_loss(ctx):
    """Profit and loss statement for a date range."""
    journals = rows(_journals_query(ctx, 'id'), 'fetch journals')
    lines = _lines_of(ctx, [j['id'] for j in journals])
    accounts = _accounts_by_code(ctx, [line['account_code'] for line in lines])
    report = profit_and_loss(lines, accounts)
    report['start_date'] = _date_param(ctx.payload, 'start_date')
    report['end_date'] = _date_param(ctx.payload, 'end_date')
    return success(report)
