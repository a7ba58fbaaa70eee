"""
Chart of accounts: code scheme and business policies.

Codes are ``C-`` followed by five digits ``NGMMM``:

    level 1   C-N0000   category header, N is the category (1..8)
    level 2   C-NG000   group under C-N0000, G is 1..9
    level 3   C-NGMMM   postable account under C-NG000, MMM is 001..999

Policies are pure functions returning ``(allowed, reason)`` and never touch
the database; the dashboard actions load the rows and compose them.
"""

import re

CATEGORIES = {
    1: 'Assets',
    2: 'Liabilities',
    3: 'Equity',
    4: 'Revenue',
    5: 'Cost of Sales',
    6: 'Expenses',
    7: 'Other Income',
    8: 'Other Expenses',
}

# Categories whose balance grows with debits
DEBIT_NORMAL = {1, 5, 6, 8}

MAX_GROUP = 9
MAX_ACCOUNT = 999

_CODE_PATTERN = re.compile(r'^C-([1-8])(\d)(\d{3})$')


class CodeError(ValueError):
    """A COA code that is malformed or does not fit its level/parent."""


def parse_code(code):
    """Split a code into (category, group, account); raise CodeError if malformed."""
    match = _CODE_PATTERN.match(code or '')
    if not match:
        raise CodeError(f'Invalid account code: {code}')
    category, group, account = (int(g) for g in match.groups())
    if group == 0 and account != 0:
        raise CodeError(f'Invalid account code: {code}')
    return category, group, account


def code_level(code):
    _, group, account = parse_code(code)
    if group == 0:
        return 1
    return 2 if account == 0 else 3


def make_code(category, group=0, account=0):
    return f'C-{category}{group}{account:03d}'


def parent_code(code):
    """Code of the account one level up, None for a category header."""
    category, group, account = parse_code(code)
    if group == 0:
        return None
    if account == 0:
        return make_code(category)
    return make_code(category, group)


def descendant_prefix(code):
    """Prefix shared by every descendant of ``code``; None for level 3."""
    level = code_level(code)
    if level == 1:
        return code[:3]
    if level == 2:
        return code[:4]
    return None


def category_of(code):
    return parse_code(code)[0]


def is_debit_normal(category):
    return category in DEBIT_NORMAL


def next_child_code(parent, existing_codes):
    """
    First free code directly under ``parent`` given the codes already in
    use. Raises CodeError when the parent is full or is a level-3 account.
    """
    category, group, _ = parse_code(parent)
    level = code_level(parent)
    used = set(existing_codes)
    if level == 1:
        for g in range(1, MAX_GROUP + 1):
            candidate = make_code(category, g)
            if candidate not in used:
                return candidate
        raise CodeError(f'No group codes left under {parent}')
    if level == 2:
        taken = [parse_code(c)[2] for c in used
                 if _CODE_PATTERN.match(c) and parent_code_safe(c) == parent]
        nxt = max(taken, default=0) + 1
        if nxt > MAX_ACCOUNT:
            raise CodeError(f'No account codes left under {parent}')
        return make_code(category, group, nxt)
    raise CodeError('Level 3 accounts cannot have children')


def parent_code_safe(code):
    try:
        return parent_code(code)
    except CodeError:
        return None


def check_code_placement(code, level, parent=None, category=None):
    """
    Validate a supplied code against the requested level and parent (or
    category for a level-1 account). Returns (ok, reason).
    """
    try:
        actual_level = code_level(code)
    except CodeError as e:
        return False, str(e)
    if actual_level != level:
        return False, f'Code {code} is a level {actual_level} code, expected level {level}'
    if level == 1:
        if category is not None and category_of(code) != category:
            return False, f'Code {code} does not belong to category {category}'
        return True, ''
    if parent_code(code) != parent:
        return False, f'Code {code} does not belong under {parent}'
    return True, ''


# --- policies ---

def can_create_under(parent, level):
    """Parent must exist and sit exactly one level above the new account."""
    if level == 1:
        return True, ''
    if parent is None:
        return False, 'Parent account not found'
    if parent.get('level') != level - 1:
        return False, f'Parent account must be level {level - 1}'
    return True, ''


def can_edit_account(account):
    if account.get('is_locked'):
        return False, 'Account is locked'
    return True, ''


def can_delete_account(account, has_children, has_journal_lines):
    if account.get('is_locked'):
        return False, 'Account is locked'
    if has_children:
        return False, 'Account has child accounts'
    if has_journal_lines:
        return False, 'Account is used in journal entries'
    return True, ''


def can_unlock_account(account, parent):
    if not account.get('is_locked'):
        return False, 'Account is not locked'
    if parent is not None and parent.get('is_locked'):
        return False, 'Parent account is locked'
    return True, ''


def can_post_to(account):
    """Only existing, unlocked level-3 accounts accept journal lines."""
    if account is None:
        return False, 'Account not found'
    if account.get('level') != 3:
        return False, f'Account {account.get("code")} is not a level 3 account'
    if account.get('is_locked'):
        return False, f'Account {account.get("code")} is locked'
    return True, ''


def build_tree(accounts):
    """Nest a flat, code-ordered account list under ``children`` keys."""
    nodes = {a['code']: {**a, 'children': []} for a in accounts}
    roots = []
    for account in sorted(nodes.values(), key=lambda a: a['code']):
        parent = nodes.get(parent_code_safe(account['code']))
        if parent is not None:
            parent['children'].append(account)
        else:
            roots.append(account)
    return roots
