"""
Tests for document numbering: yearly asset tags, monthly numbers, base
sequences, journal codes and the insert retry on unique violations.
"""

from datetime import date, datetime

import pytest

from prabaraja.errors import ApiError, ConflictError
from prabaraja.numbering import (
    parse_date, month_bounds, compose_yearly_tag, compose_monthly_number, monthly_counter,
    format_journal_code, journal_counter, pad_number, next_asset_tag, next_monthly_number,
    next_sequential_number, next_global_number, next_journal_code, insert_with_retry,
)
from fake_supabase import FakeSupabase


class TestDateHelpers:
    """Tests for date parsing and month windows."""

    def test_parse_iso_string(self):
        assert parse_date('2025-04-09') == date(2025, 4, 9)

    def test_parse_timestamp_string(self):
        assert parse_date('2025-04-09T10:30:00Z') == date(2025, 4, 9)

    def test_parse_datetime(self):
        assert parse_date(datetime(2025, 4, 9, 8, 0)) == date(2025, 4, 9)

    def test_parse_invalid(self):
        with pytest.raises(ApiError) as exc:
            parse_date('next tuesday')
        assert exc.value.status == 400

    def test_month_bounds(self):
        assert month_bounds(date(2025, 4, 17)) == (date(2025, 4, 1), date(2025, 5, 1))

    def test_month_bounds_december(self):
        """December rolls over into January of the next year."""
        assert month_bounds(date(2025, 12, 31)) == (date(2025, 12, 1), date(2026, 1, 1))


class TestComposition:
    """Tests for the pure number formats."""

    def test_yearly_tag(self):
        assert compose_yearly_tag(2025, 1) == 2025001
        assert compose_yearly_tag(2025, 42) == 2025042

    def test_yearly_tag_limit(self):
        with pytest.raises(ConflictError):
            compose_yearly_tag(2025, 1000)

    def test_monthly_number_is_unpadded(self):
        assert compose_monthly_number(2025, 4, 1) == 2025041
        assert compose_monthly_number(2025, 4, 10) == 20250410

    def test_monthly_counter(self):
        assert monthly_counter(2025041, 2025, 4) == 1
        assert monthly_counter(20250412, 2025, 4) == 12

    def test_monthly_counter_other_month(self):
        assert monthly_counter(2025031, 2025, 4) == 0
        assert monthly_counter(None, 2025, 4) == 0

    def test_journal_code(self):
        assert format_journal_code(2025, 7) == 'JRN-2025-0007'
        assert journal_counter('JRN-2025-0007', 2025) == 7
        assert journal_counter('JRN-2024-0007', 2025) == 0

    def test_pad_number(self):
        assert pad_number(42) == '00042'
        assert pad_number(2025041) == '2025041'


class TestGenerators:
    """Tests for the generators that read existing rows."""

    def setup_method(self):
        self.db = FakeSupabase()

    def test_first_asset_tag_of_year(self):
        assert next_asset_tag(self.db, '2025-02-01') == 2025001

    def test_asset_tag_ignores_other_years(self):
        self.db.seed('assets', {'asset_tag': 2025003}, {'asset_tag': 2024017})
        assert next_asset_tag(self.db, '2025-06-30') == 2025004
        assert next_asset_tag(self.db, '2024-01-05') == 2024018

    def test_monthly_number_per_month(self):
        self.db.seed('expenses',
                     {'date': '2025-04-02', 'number': 2025041},
                     {'date': '2025-04-20', 'number': 2025042},
                     {'date': '2025-03-31', 'number': 2025039})
        assert next_monthly_number(self.db, 'expenses', 'date', '2025-04-28') == 2025043
        assert next_monthly_number(self.db, 'expenses', 'date', '2025-05-01') == 2025051

    def test_monthly_number_past_nine(self):
        self.db.seed('sales', {'invoice_date': '2025-04-02', 'number': 2025049})
        assert next_monthly_number(self.db, 'sales', 'invoice_date', '2025-04-03') == 20250410

    def test_sequential_number_starts_after_base(self):
        assert next_sequential_number(self.db, 'cashbank', 10000) == 10001

    def test_sequential_number_follows_last(self):
        self.db.seed('contacts', {'number': 101}, {'number': 107})
        assert next_sequential_number(self.db, 'contacts', 100) == 108

    def test_sequential_number_below_base(self):
        """Legacy rows numbered under the base do not pull the sequence down."""
        self.db.seed('products', {'number': 12})
        assert next_sequential_number(self.db, 'products', 1000) == 1001

    def test_global_number(self):
        self.db.seed('invoices', {'number': 3}, {'number': 9}, {'number': 5})
        assert next_global_number(self.db, 'invoices') == 10

    def test_journal_code_per_year(self):
        self.db.seed('journals', {'code': 'JRN-2025-0002'}, {'code': 'JRN-2024-0040'})
        assert next_journal_code(self.db, '2025-08-01') == 'JRN-2025-0003'
        assert next_journal_code(self.db, '2026-01-01') == 'JRN-2026-0001'

    def test_lookup_failure(self):
        self.db.fail('cashbank', 'select', 'connection reset')
        with pytest.raises(ApiError) as exc:
            next_sequential_number(self.db, 'cashbank', 10000)
        assert exc.value.status == 500
        assert exc.value.message == 'Failed to generate cashbank number: connection reset'


class TestInsertWithRetry:
    """Tests for the collision retry loop."""

    def setup_method(self):
        self.db = FakeSupabase()
        self.built = 0

    def build_row(self):
        self.built += 1
        return {'number': next_sequential_number(self.db, 'contacts', 100)}

    def test_inserts_once(self):
        created = insert_with_retry(self.db, 'contacts', self.build_row, 'add contact')
        assert created[0]['number'] == 101
        assert self.built == 1

    def test_retries_on_unique_violation(self):
        self.db.fail('contacts', 'insert', 'duplicate key', code='23505')
        created = insert_with_retry(self.db, 'contacts', self.build_row, 'add contact')
        assert created[0]['number'] == 101
        assert self.built == 2

    def test_gives_up_after_attempts(self):
        for _ in range(3):
            self.db.fail('contacts', 'insert', 'duplicate key', code='23505')
        with pytest.raises(ApiError) as exc:
            insert_with_retry(self.db, 'contacts', self.build_row, 'add contact')
        assert exc.value.status == 500
        assert self.built == 3

    def test_other_errors_are_not_retried(self):
        self.db.fail('contacts', 'insert', 'permission denied', code='42501')
        with pytest.raises(ApiError) as exc:
            insert_with_retry(self.db, 'contacts', self.build_row, 'add contact')
        assert exc.value.message == 'Failed to add contact: permission denied'
        assert self.built == 1
