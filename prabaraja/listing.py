"""
Pagination and free-text search helpers for list actions.

Search is expressed as a PostgREST ``or`` filter: ``ilike`` on text columns,
equality on numeric columns when the term parses as a number, and equality
on a number column when the term looks like a rendered document code
(``AST-2025001``, ``Expense #2025041``, ...).
"""

import re

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

# Characters with meaning inside a PostgREST or-filter
_FILTER_SPECIAL = re.compile(r'[,()]')


def _positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def page_window(payload, default_limit=DEFAULT_LIMIT):
    """
    Return (page, limit, start, end) for ``.range(start, end)``.

    Bad or non-positive values fall back to the defaults.
    """
    page = _positive_int(payload.get('page'), DEFAULT_PAGE)
    limit = min(_positive_int(payload.get('limit'), default_limit), MAX_LIMIT)
    start = (page - 1) * limit
    return page, limit, start, start + limit - 1


def sanitize_search(term):
    if term is None:
        return ''
    return _FILTER_SPECIAL.sub(' ', str(term)).strip()


def _as_int(term):
    try:
        return int(term)
    except ValueError:
        return None


def _as_float(term):
    try:
        value = float(term)
    except ValueError:
        return None
    # nan/inf parse as floats but never match a stored price
    return value if value == value and value not in (float('inf'), float('-inf')) else None


def build_search_filter(term, text_columns=(), int_columns=(), float_columns=(), code_patterns=()):
    """
    Build the or-filter string for ``term``, or None when there is nothing
    to search for.

    ``code_patterns`` is a sequence of (compiled regex, column); group 1 of a
    match is compared with the column as an integer.
    """
    term = sanitize_search(term)
    if not term:
        return None

    clauses = [f'{column}.ilike.%{term}%' for column in text_columns]

    as_int = _as_int(term)
    if as_int is not None:
        clauses.extend(f'{column}.eq.{as_int}' for column in int_columns)

    as_float = _as_float(term)
    if as_float is not None:
        clauses.extend(f'{column}.eq.{as_float}' for column in float_columns)

    for pattern, column in code_patterns:
        match = pattern.match(term)
        if match:
            clauses.append(f'{column}.eq.{int(match.group(1))}')

    return ','.join(clauses) if clauses else None


def apply_search(query, search_filter):
    return query.or_(search_filter) if search_filter else query
