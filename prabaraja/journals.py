"""
Double-entry journal validation and profit & loss roll-up.

Amounts are handled as ``Decimal`` rounded to two places so that totals
compare exactly.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from prabaraja import coa

CENT = Decimal('0.01')
ZERO = Decimal('0')
MIN_LINES = 2


class JournalError(ValueError):
    """A journal that cannot be posted; the message is client-facing."""


def to_amount(value, field='amount'):
    if value is None or value == '':
        return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise JournalError(f'Invalid {field}: {value}')
    if not amount.is_finite():
        raise JournalError(f'Invalid {field}: {value}')
    try:
        rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # more digits than the decimal context can hold
        raise JournalError(f'Invalid {field}: {value}')
    if amount != rounded:
        raise JournalError(f'{field.capitalize()} must have at most two decimal places')
    return rounded


def normalize_lines(lines):
    """
    Check each line and return normalized copies.

    Every line needs an account code and exactly one positive side.
    Lines with both sides zero are an error rather than silently dropped.
    """
    if not lines or len(lines) < MIN_LINES:
        raise JournalError(f'Journal must have at least {MIN_LINES} lines')

    normalized = []
    for index, line in enumerate(lines, start=1):
        code = (line.get('account_code') or '').strip()
        if not code:
            raise JournalError(f'Line {index}: account code is required')
        debit = to_amount(line.get('debit'), 'debit')
        credit = to_amount(line.get('credit'), 'credit')
        if debit < ZERO or credit < ZERO:
            raise JournalError(f'Line {index}: amounts cannot be negative')
        if (debit > ZERO) == (credit > ZERO):
            raise JournalError(f'Line {index}: enter either a debit or a credit amount')
        normalized.append({
            'account_code': code,
            'description': line.get('description'),
            'debit': debit,
            'credit': credit,
        })
    return normalized


def totals(lines):
    debit = sum((line['debit'] for line in lines), ZERO)
    credit = sum((line['credit'] for line in lines), ZERO)
    return debit, credit


def check_balanced(lines):
    debit, credit = totals(lines)
    if debit != credit:
        raise JournalError(f'Journal is not balanced. Debit={debit} Credit={credit}')
    if debit <= ZERO:
        raise JournalError('Journal total must be greater than zero')
    return debit, credit


def check_accounts(lines, accounts_by_code):
    """Every line must post to an existing, unlocked level-3 account."""
    for line in lines:
        allowed, reason = coa.can_post_to(accounts_by_code.get(line['account_code']))
        if not allowed:
            if reason == 'Account not found':
                reason = f'Account {line["account_code"]} not found'
            raise JournalError(reason)


def validate_journal(lines, accounts_by_code):
    """Normalize, check accounts and balance. Returns (lines, debit, credit)."""
    normalized = normalize_lines(lines)
    check_accounts(normalized, accounts_by_code)
    debit, credit = check_balanced(normalized)
    return normalized, debit, credit


def profit_and_loss(lines, accounts_by_code):
    """
    Roll journal lines up per account and category.

    Revenue and other income count credit minus debit; cost of sales,
    expenses and other expenses count debit minus credit. Balance-sheet
    categories (1-3) are ignored.
    """
    per_account = {}
    for line in lines:
        code = line.get('account_code')
        try:
            category = coa.category_of(code)
        except coa.CodeError:
            continue
        if category <= 3:
            continue
        debit = to_amount(line.get('debit'), 'debit')
        credit = to_amount(line.get('credit'), 'credit')
        amount = debit - credit if coa.is_debit_normal(category) else credit - debit
        entry = per_account.setdefault(code, {
            'code': code,
            'name': (accounts_by_code.get(code) or {}).get('name'),
            'category': category,
            'amount': ZERO,
        })
        entry['amount'] += amount

    by_category = {c: ZERO for c in range(4, 9)}
    for entry in per_account.values():
        by_category[entry['category']] += entry['amount']

    revenue = by_category[4]
    cost_of_sales = by_category[5]
    expenses = by_category[6]
    other_income = by_category[7]
    other_expenses = by_category[8]
    gross_profit = revenue - cost_of_sales
    net_profit = gross_profit + other_income - expenses - other_expenses

    return {
        'revenue': float(revenue),
        'cost_of_sales': float(cost_of_sales),
        'gross_profit': float(gross_profit),
        'expenses': float(expenses),
        'other_income': float(other_income),
        'other_expenses': float(other_expenses),
        'net_profit': float(net_profit),
        'accounts': [
            {**entry, 'category_name': coa.CATEGORIES[entry['category']], 'amount': float(entry['amount'])}
            for entry in sorted(per_account.values(), key=lambda e: e['code'])
        ],
    }
