"""
Tests for request validation schemas and the error mapping in load_payload.
"""

import pytest

from prabaraja.errors import ApiError
from validators import (
    is_valid_email, is_strong_password, load_payload, RegisterSchema, LoginSchema,
    UpdateNameSchema, AssetSchema, SellAssetSchema, ContactSchema, ExpenseSchema,
    PurchaseInvoiceSchema, COASchema, JournalSchema, BankAccountSchema,
)


def expect_error(schema, payload, partial=False):
    with pytest.raises(ApiError) as exc:
        load_payload(schema, payload, partial=partial)
    assert exc.value.status == 400
    return exc.value


class TestRules:
    """Tests for the e-mail and password rules."""

    @pytest.mark.parametrize('email', ['a@b.co', 'first.last@example.com'])
    def test_valid_emails(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize('email', ['', 'plain', 'a@b', 'a b@c.com', None])
    def test_invalid_emails(self, email):
        assert not is_valid_email(email)

    def test_strong_password(self):
        assert is_strong_password('Secret#123')
        assert is_strong_password('Abcdef1_')

    @pytest.mark.parametrize('password', ['short1!', 'alllower1!', 'ALLUPPER1!', 'NoDigits!!', 'NoSymbol12'])
    def test_weak_passwords(self, password):
        assert not is_strong_password(password)


class TestAuthSchemas:
    """Tests for the auth payloads."""

    def test_register_missing(self):
        error = expect_error(RegisterSchema(), {'email': 'a@b.co'})
        assert error.message == 'Name, email, and password are required.'

    def test_register_bad_email(self):
        error = expect_error(RegisterSchema(), {'name': 'A', 'email': 'nope', 'password': 'Secret#123'})
        assert error.message == 'Email address "nope" is invalid.'

    def test_register_weak_password(self):
        error = expect_error(RegisterSchema(), {'name': 'A', 'email': 'a@b.co', 'password': 'secret'})
        assert error.message == 'Password must contain uppercase, lowercase, number, and special character.'

    def test_login_missing_password(self):
        error = expect_error(LoginSchema(), {'email': 'a@b.co'})
        assert error.message == 'Password must contain uppercase, lowercase, number, and special character.'

    def test_login_missing_email(self):
        error = expect_error(LoginSchema(), {'password': 'Secret#123'})
        assert error.message == 'Please provide a valid email address.'

    def test_update_name_too_long(self):
        error = expect_error(UpdateNameSchema(), {'newName': 'x' * 101})
        assert error.message == 'Name must be a non-empty string with a maximum of 100 characters'


class TestDocumentSchemas:
    """Tests for the business document payloads."""

    def test_asset_dates_are_text(self):
        data = load_payload(AssetSchema(), {
            'asset_type': 'Laptop', 'asset_name': 'ThinkPad', 'assigned_to': 'Rina',
            'department': 'Finance', 'purchase_date': '2025-03-10T00:00:00Z', 'purchase_price': '15000000',
            'action': 'addAsset',
        })
        assert data['purchase_date'] == '2025-03-10'
        assert data['purchase_price'] == 15000000.0
        assert 'action' not in data

    def test_asset_partial(self):
        assert load_payload(AssetSchema(), {'id': 4, 'model': 'T14'}, partial=True) == {'model': 'T14'}

    def test_sell_missing(self):
        error = expect_error(SellAssetSchema(), {'sale_date': '2025-05-01'})
        assert error.message == 'Missing required fields for selling asset'

    def test_contact_category(self):
        error = expect_error(ContactSchema(), {
            'category': 'Friend', 'name': 'A', 'email': 'a@b.co', 'phone': 812, 'address': 'Jl. 1'})
        assert 'category' in error.details

    def test_contact_phone_number_as_text(self):
        data = load_payload(ContactSchema(), {
            'category': 'Vendor', 'name': 'A', 'email': 'a@b.co', 'phone': 812345, 'address': 'Jl. 1'})
        assert data['phone'] == '812345'

    def test_empty_string_counts_as_missing(self):
        payload = {'category': 'Vendor', 'name': '', 'email': 'a@b.co', 'phone': '1', 'address': 'x'}
        assert expect_error(ContactSchema(), payload).message == 'Missing required fields'

    def test_items_as_json_text(self):
        data = load_payload(ExpenseSchema(), {
            'date': '2025-04-02', 'category': 'Travel', 'beneficiary': 'Budi', 'status': 'Unpaid',
            'items': '[{"description": "Taxi", "qty": 1, "unit_price": 50000}]',
            'grand_total': 50000, 'tags': 'trip, client',
        })
        assert data['items'] == [{'description': 'Taxi', 'qty': 1, 'unit_price': 50000}]
        assert data['tags'] == ['trip', 'client']

    def test_items_bad_json(self):
        error = expect_error(ExpenseSchema(), {
            'date': '2025-04-02', 'category': 'Travel', 'beneficiary': 'Budi', 'status': 'Unpaid',
            'items': '[{', 'grand_total': 1})
        assert error.message.startswith('Invalid items format. Must be valid JSON array')

    def test_purchase_requires_items(self):
        error = expect_error(PurchaseInvoiceSchema(), {'date': '2025-04-02', 'items': []})
        assert error.message == 'Date and at least one item are required'

    def test_purchase_tax_range(self):
        error = expect_error(PurchaseInvoiceSchema(), {
            'date': '2025-04-02', 'items': [{'qty': 1, 'price': 1}], 'ppn_percentage': 120})
        assert error.message == 'Tax percentage must be between 0 and 100'

    def test_bank_account_type_default(self):
        data = load_payload(BankAccountSchema(), {
            'account_name': 'Ops', 'account_code': '1-10001', 'bank_name': 'BCA',
            'bank_number': 1234567890, 'balance': 0})
        assert data['account_type'] == 'Bank'
        assert data['bank_number'] == '1234567890'

    def test_coa_level_range(self):
        error = expect_error(COASchema(), {'name': 'Cash', 'level': 4})
        assert error.message == 'Level must be 1, 2 or 3'

    def test_coa_missing(self):
        assert expect_error(COASchema(), {'level': 1}).message == 'Name and level are required'

    def test_journal_lines(self):
        data = load_payload(JournalSchema(), {
            'date': '2025-04-02',
            'lines': [{'account_code': 'C-11001', 'debit': 10}, {'account_code': 'C-41001', 'credit': '10'}],
        })
        assert data['lines'][1] == {'account_code': 'C-41001', 'credit': '10'}

    def test_journal_missing(self):
        assert expect_error(JournalSchema(), {'date': '2025-04-02'}).message == \
            'Date and journal lines are required'
