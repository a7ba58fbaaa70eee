"""
In-memory stand-in for the Supabase client used by the handler tests.

Covers the part of the postgrest query builder the handlers call
(select/insert/update/delete, the filters, order, limit, range and ``or_``)
plus the auth, admin and storage calls. Rows live in plain dicts so tests
can seed and inspect them directly.
"""

import itertools
import re
from datetime import datetime, timedelta
from types import SimpleNamespace

from postgrest.exceptions import APIError
from supabase import AuthError


class FakeAuthError(AuthError):
    """AuthError with a one-argument constructor."""

    def __init__(self, message):
        Exception.__init__(self, message)
        self.message = message
        self.name = 'AuthError'
        self.code = None


class FakeModel(SimpleNamespace):
    """Attribute bag that dumps like the pydantic models from supabase_auth."""

    def model_dump(self, mode='python'):
        return dict(vars(self))


def api_error(message, code=None):
    return APIError({'message': message, 'code': code, 'hint': None, 'details': None})


def _same(a, b):
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return str(a).lower() == str(b).lower()
    try:
        return float(a) == float(b)
    except (TypeError, ValueError):
        return str(a) == str(b)


def _key(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, float(value), '')
    return (1, 0.0, str(value))


def _like(pattern, flags=0):
    parts = []
    for ch in pattern:
        if ch == '%':
            parts.append('.*')
        elif ch == '_':
            parts.append('.')
        else:
            parts.append(re.escape(ch))
    return re.compile('^' + ''.join(parts) + '$', flags | re.DOTALL)


def _matches_like(regex, value):
    return value is not None and bool(regex.match(str(value)))


class FakeQuery:
    def __init__(self, db, table):
        self._db = db
        self.table = table
        self.op = 'select'
        self.columns = '*'
        self.values = None
        self.filters = []
        self.orders = []
        self.or_filter = None
        self.limit_count = None
        self.range_window = None
        self._tests = []

    # --- operations ---

    def select(self, columns='*', count=None):
        self.op, self.columns = 'select', columns
        return self

    def insert(self, values):
        self.op, self.values = 'insert', values
        return self

    def update(self, values):
        self.op, self.values = 'update', values
        return self

    def delete(self):
        self.op = 'delete'
        return self

    # --- filters ---

    def _filter(self, description, test):
        self.filters.append(description)
        self._tests.append(test)
        return self

    def eq(self, column, value):
        return self._filter(('eq', column, value), lambda row: _same(row.get(column), value))

    def neq(self, column, value):
        return self._filter(('neq', column, value), lambda row: not _same(row.get(column), value))

    def _compare(self, name, column, value, check):
        def test(row):
            current = row.get(column)
            return current is not None and check(_key(current), _key(value))
        return self._filter((name, column, value), test)

    def gt(self, column, value):
        return self._compare('gt', column, value, lambda a, b: a > b)

    def gte(self, column, value):
        return self._compare('gte', column, value, lambda a, b: a >= b)

    def lt(self, column, value):
        return self._compare('lt', column, value, lambda a, b: a < b)

    def lte(self, column, value):
        return self._compare('lte', column, value, lambda a, b: a <= b)

    def like(self, column, pattern):
        regex = _like(pattern)
        return self._filter(('like', column, pattern), lambda row: _matches_like(regex, row.get(column)))

    def ilike(self, column, pattern):
        regex = _like(pattern, re.IGNORECASE)
        return self._filter(('ilike', column, pattern), lambda row: _matches_like(regex, row.get(column)))

    def in_(self, column, values):
        values = list(values)
        return self._filter(('in', column, values),
                            lambda row: any(_same(row.get(column), v) for v in values))

    def or_(self, filters):
        self.or_filter = filters
        clauses = [self._clause(text) for text in filters.split(',')]
        return self._filter(('or', filters), lambda row: any(test(row) for test in clauses))

    @staticmethod
    def _clause(text):
        column, op, value = text.split('.', 2)
        if op == 'eq':
            return lambda row: _same(row.get(column), value)
        if op in ('like', 'ilike'):
            regex = _like(value, re.IGNORECASE if op == 'ilike' else 0)
            return lambda row: _matches_like(regex, row.get(column))
        raise ValueError(f'Unsupported or-clause: {text}')

    # --- modifiers ---

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def range(self, start, end):
        self.range_window = (start, end)
        return self

    # --- execution ---

    def _matching(self):
        return [row for row in self._db.rows(self.table) if all(test(row) for test in self._tests)]

    def execute(self):
        self._db.queries.append(self)
        error = self._db.pop_failure(self.table, self.op)
        if error is not None:
            raise error
        return SimpleNamespace(data=getattr(self, f'_run_{self.op}')())

    def _run_select(self):
        found = self._matching()
        for column, desc in reversed(self.orders):
            present = [row for row in found if row.get(column) is not None]
            absent = [row for row in found if row.get(column) is None]
            present.sort(key=lambda row: _key(row.get(column)), reverse=desc)
            found = present + absent
        if self.range_window is not None:
            start, end = self.range_window
            found = found[start:end + 1]
        if self.limit_count is not None:
            found = found[:self.limit_count]
        if self.columns.strip() == '*':
            return [dict(row) for row in found]
        wanted = [c.strip() for c in self.columns.split(',')]
        return [{c: row.get(c) for c in wanted} for row in found]

    def _run_insert(self):
        values = self.values if isinstance(self.values, list) else [self.values]
        created = []
        for value in values:
            row = self._db.with_defaults(value)
            self._db.check_unique(self.table, row, created)
            created.append(row)
        self._db.rows(self.table).extend(created)
        return [dict(row) for row in created]

    def _run_update(self):
        changed = self._matching()
        for row in changed:
            row.update(self.values)
        return [dict(row) for row in changed]

    def _run_delete(self):
        doomed = self._matching()
        table = self._db.rows(self.table)
        table[:] = [row for row in table if row not in doomed]
        return [dict(row) for row in doomed]


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def remove(self, paths):
        if self.storage.error is not None:
            raise self.storage.error
        self.storage.removed.extend(paths)
        return [{'name': path} for path in paths]


class FakeStorage:
    def __init__(self):
        self.removed = []
        self.buckets = []
        self.error = None

    def from_(self, name):
        self.buckets.append(name)
        return FakeBucket(self, name)


class FakeAdmin:
    def __init__(self, auth):
        self._auth = auth

    def list_users(self, page=None, per_page=None):
        return list(self._auth.users)

    def sign_out(self, jwt, scope='global'):
        self._auth.calls.append(('sign_out', jwt))


class FakeAuth:
    def __init__(self):
        self.users = []
        self.tokens = {}
        self.passwords = {}
        self.calls = []
        self.confirm_on_sign_up = False
        self.admin = FakeAdmin(self)

    def add_user(self, token, user_id='user-1', email='owner@example.com', password='Secret#123'):
        user = FakeModel(id=user_id, email=email)
        self.users.append(user)
        self.tokens[token] = user
        self.passwords[email] = password
        return user

    def get_user(self, jwt=None):
        user = self.tokens.get(jwt)
        if user is None:
            raise FakeAuthError('invalid JWT')
        return SimpleNamespace(user=user)

    def sign_up(self, credentials):
        self.calls.append(('sign_up', credentials))
        email = credentials['email']
        metadata = credentials.get('options', {}).get('data', {})
        user = FakeModel(id=f'user-{len(self.users) + 1}', email=email, user_metadata=metadata)
        self.users.append(user)
        self.passwords[email] = credentials['password']
        session = None
        if self.confirm_on_sign_up:
            session = FakeModel(access_token='fresh-token', refresh_token='fresh-refresh')
            self.tokens['fresh-token'] = user
        return SimpleNamespace(user=user, session=session)

    def sign_in_with_password(self, credentials):
        email = credentials['email']
        if self.passwords.get(email) != credentials['password']:
            raise FakeAuthError('Invalid login credentials')
        user = next(u for u in self.users if u.email == email)
        return SimpleNamespace(user=user,
                               session=FakeModel(access_token='session-token', refresh_token='session-refresh'))

    def resend(self, params):
        self.calls.append(('resend', params))

    def reset_password_for_email(self, email, options=None):
        self.calls.append(('reset_password_for_email', email, options))

    def set_session(self, access_token, refresh_token):
        if access_token not in self.tokens:
            raise FakeAuthError('Invalid Refresh Token')
        self.calls.append(('set_session', access_token, refresh_token))

    def update_user(self, attributes):
        self.calls.append(('update_user', attributes))


class FakeSupabase:
    """One object plays the anonymous, admin and per-request clients."""

    def __init__(self):
        self.tables = {}
        self.unique = {}
        self.queries = []
        self.auth = FakeAuth()
        self.storage = FakeStorage()
        self.postgrest = SimpleNamespace(auth=lambda token: None)
        self._failures = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def with_defaults(self, values):
        row = dict(values)
        row.setdefault('id', next(self._ids))
        row.setdefault('created_at', (datetime(2025, 1, 1) + timedelta(seconds=next(self._clock))).isoformat())
        return row

    def seed(self, table, *rows):
        seeded = [self.with_defaults(row) for row in rows]
        self.rows(table).extend(seeded)
        return seeded

    def fail(self, table, op, message='boom', code=None):
        """Make the next ``op`` on ``table`` raise an APIError."""
        self._failures.append((table, op, api_error(message, code)))

    def pop_failure(self, table, op):
        for index, (t, o, error) in enumerate(self._failures):
            if t == table and o == op:
                del self._failures[index]
                return error
        return None

    def check_unique(self, table, row, pending):
        for column in self.unique.get(table, ()):
            value = row.get(column)
            if value is None:
                continue
            if any(_same(other.get(column), value) for other in self.rows(table) + pending):
                raise api_error(f'duplicate key value violates unique constraint "{table}_{column}_key"',
                                '23505')

    def queries_on(self, table, op='select'):
        return [q for q in self.queries if q.table == table and q.op == op]
