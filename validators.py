import json
import re

from marshmallow import Schema, fields, validate, validates, validates_schema, ValidationError, EXCLUDE

from prabaraja.errors import ApiError

MISSING = 'Missing data for required field.'
NULL = 'Field may not be null.'

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
WEAK_PASSWORD = 'Password must contain uppercase, lowercase, number, and special character.'
NAME_RULE = 'Name must be a non-empty string with a maximum of 100 characters.'

_PASSWORD_RULES = (r'[A-Z]', r'[a-z]', r'[0-9]', r'[^A-Za-z0-9]')


def is_valid_email(email):
    return isinstance(email, str) and bool(EMAIL_PATTERN.match(email))


def is_strong_password(password):
    """At least 8 characters with upper, lower, digit and symbol."""
    if not isinstance(password, str) or len(password) < 8:
        return False
    return all(re.search(pattern, password) for pattern in _PASSWORD_RULES)


class Text(fields.String):
    """String that also takes plain numbers (phone, bank and account numbers)."""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        return super()._deserialize(value, attr, data, **kwargs)


def required_str(**kwargs):
    """A required string that also rejects the empty string."""
    return Text(required=True, validate=validate.Length(min=1, error=MISSING), **kwargs)


class DateString(fields.Date):
    """Parses an ISO date but hands it on as ``YYYY-MM-DD`` text."""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, str) and len(value) > 10 and value[10] in 'T ':
            value = value[:10]
        return super()._deserialize(value, attr, data, **kwargs).isoformat()


class ItemList(fields.List):
    """
    Line items: a list of objects. A JSON-encoded string is also accepted
    since form submissions send the array as text.
    """

    def __init__(self, **kwargs):
        kwargs.setdefault('validate', validate.Length(min=1, error=MISSING))
        super().__init__(fields.Dict(), **kwargs)

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError as e:
                raise ValidationError(f'Invalid items format. Must be valid JSON array: {e}')
            if not isinstance(value, list):
                raise ValidationError('Invalid items format. Must be valid JSON array: not an array')
        return super()._deserialize(value, attr, data, **kwargs)


class Tags(fields.Field):
    """Comma separated string or list of strings, stored as a list."""

    def _deserialize(self, value, attr, data, **kwargs):
        if value is None or value == '':
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(',') if t.strip()]
        if isinstance(value, list):
            return [str(t).strip() for t in value if str(t).strip()]
        raise ValidationError('Tags must be a comma separated string or a list')


class BaseSchema(Schema):
    """Common options: unknown keys (``action``, ``id``, ...) are dropped."""

    class Meta:
        unknown = EXCLUDE

    missing_message = 'Missing required fields'


def _flatten(messages):
    if isinstance(messages, dict):
        for value in messages.values():
            yield from _flatten(value)
    elif isinstance(messages, (list, tuple)):
        for value in messages:
            yield from _flatten(value)
    else:
        yield str(messages)


def load_payload(schema, payload, partial=False):
    """
    Load ``payload`` with ``schema``; raise a 400 ApiError on failure.

    Missing fields are reported with the schema's ``missing_message``; other
    failures with the first field message. Field detail goes in ``details``.
    """
    try:
        return schema.load(payload, partial=partial)
    except ValidationError as err:
        flat = list(_flatten(err.messages))
        if any(m in (MISSING, NULL) for m in flat):
            message = schema.missing_message
        else:
            message = flat[0] if flat else schema.missing_message
        raise ApiError(message, 400, details=err.messages)


# --- auth ---

class RegisterSchema(BaseSchema):
    missing_message = 'Name, email, and password are required.'

    name = required_str()
    email = required_str()
    password = required_str()

    @validates('name')
    def validate_name(self, value, **kwargs):
        if not value.strip() or len(value) > 100:
            raise ValidationError(NAME_RULE)

    @validates('email')
    def validate_email(self, value, **kwargs):
        if not is_valid_email(value):
            raise ValidationError(f'Email address "{value}" is invalid.')

    @validates('password')
    def validate_password(self, value, **kwargs):
        if not is_strong_password(value):
            raise ValidationError(WEAK_PASSWORD)


class EmailSchema(BaseSchema):
    missing_message = 'Please provide a valid email address.'

    email = required_str()

    @validates('email')
    def validate_email(self, value, **kwargs):
        if not is_valid_email(value):
            raise ValidationError('Please provide a valid email address.')


class LoginSchema(EmailSchema):
    # a missing password is reported as a weak one
    password = fields.String(required=True, error_messages={'required': WEAK_PASSWORD, 'null': WEAK_PASSWORD})

    @validates('password')
    def validate_password(self, value, **kwargs):
        if not is_strong_password(value):
            raise ValidationError(WEAK_PASSWORD)


class ResetPasswordSchema(BaseSchema):
    missing_message = 'Access token, refresh token, and new password are required'

    access_token = required_str()
    refresh_token = required_str()
    new_password = required_str()

    @validates('new_password')
    def validate_new_password(self, value, **kwargs):
        if not is_strong_password(value):
            raise ValidationError(WEAK_PASSWORD)


class UpdateNameSchema(BaseSchema):
    missing_message = 'Name must be a non-empty string with a maximum of 100 characters'

    newName = required_str()

    @validates('newName')
    def validate_new_name(self, value, **kwargs):
        if not value.strip() or len(value) > 100:
            raise ValidationError(self.missing_message)


# --- assets ---

class AssetSchema(BaseSchema):
    asset_type = required_str()
    asset_name = required_str()
    assigned_to = required_str()
    department = required_str()
    purchase_date = DateString(required=True)
    purchase_price = fields.Float(required=True)
    model = fields.String(allow_none=True)
    warranty_deadline = DateString(allow_none=True)
    manufacturer = fields.String(allow_none=True)
    serial_number = fields.String(allow_none=True)


class SellAssetSchema(BaseSchema):
    missing_message = 'Missing required fields for selling asset'

    sale_date = DateString(required=True)
    sale_price = fields.Float(required=True)
    sold_to = required_str()
    reason_for_sale = fields.String(allow_none=True)
    invoice_no = fields.String(allow_none=True)
    notes = fields.String(allow_none=True)


# --- cash & bank ---

ACCOUNT_TYPES = ('Cash', 'Bank', 'Credit')


class BankAccountSchema(BaseSchema):
    account_name = required_str()
    account_code = required_str()
    bank_name = required_str()
    bank_number = required_str()
    balance = fields.Float(required=True)
    account_type = fields.String(validate=validate.OneOf(ACCOUNT_TYPES), load_default='Bank')


class BankAccountEditSchema(BaseSchema):
    missing_message = 'Missing required fields'

    account_name = required_str()
    bank_name = required_str()
    account_number = required_str()
    balance = fields.Float(required=True)
    account_type = fields.String(validate=validate.OneOf(ACCOUNT_TYPES))


# --- contacts ---

CONTACT_CATEGORIES = ('Customer', 'Vendor', 'Employee')


class ContactSchema(BaseSchema):
    category = fields.String(required=True, validate=validate.OneOf(CONTACT_CATEGORIES))
    name = required_str()
    email = required_str()
    phone = required_str()
    address = required_str()

    @validates('email')
    def validate_email(self, value, **kwargs):
        if not is_valid_email(value):
            raise ValidationError(f'Email address "{value}" is invalid.')


# --- products ---

class ProductSchema(BaseSchema):
    category = required_str()
    name = required_str()
    total_stock = fields.Integer(required=True)
    min_stock = fields.Integer(required=True)
    unit = required_str()
    buy_price = fields.Float(required=True)
    status = required_str()


class WarehouseSchema(BaseSchema):
    name = required_str()
    location = required_str()
    total_stock = fields.Integer(required=True)


# --- expenses ---

class ExpenseSchema(BaseSchema):
    date = DateString(required=True)
    category = required_str()
    beneficiary = required_str()
    status = required_str()
    items = ItemList(required=True)
    grand_total = fields.Float(required=True)
    due_date = DateString(allow_none=True)
    memo = fields.String(allow_none=True)
    tags = Tags()


# --- purchases ---

class PurchaseDocumentSchema(BaseSchema):
    missing_message = 'Date and at least one item are required'

    date = DateString(required=True)
    items = ItemList(required=True)
    type = fields.String(allow_none=True)
    status = fields.String(allow_none=True)
    tags = Tags()
    due_date = DateString(allow_none=True)


class PurchaseInvoiceSchema(PurchaseDocumentSchema):
    approver = fields.String(allow_none=True)
    tax_calculation_method = fields.String(allow_none=True)
    ppn_percentage = fields.Float(load_default=0, allow_none=True)
    pph_type = fields.String(allow_none=True)
    pph_percentage = fields.Float(load_default=0, allow_none=True)

    @validates_schema
    def validate_tax_rates(self, data, **kwargs):
        for key in ('ppn_percentage', 'pph_percentage'):
            rate = data.get(key) or 0
            if rate < 0 or rate > 100:
                raise ValidationError('Tax percentage must be between 0 and 100', key)


class PurchaseOfferSchema(PurchaseDocumentSchema):
    discount_terms = fields.String(allow_none=True)
    expiry_date = DateString(allow_none=True)


class PurchaseOrderSchema(PurchaseDocumentSchema):
    orders_date = DateString(allow_none=True)


class PurchaseRequestSchema(PurchaseDocumentSchema):
    requested_by = fields.String(allow_none=True)
    urgency = fields.String(allow_none=True)


class PurchaseShipmentSchema(PurchaseDocumentSchema):
    tracking_number = fields.String(allow_none=True)
    carrier = fields.String(allow_none=True)
    shipping_date = DateString(allow_none=True)


# --- sales ---

class SaleSchema(BaseSchema):
    customer_name = required_str()
    invoice_date = DateString(required=True)
    due_date = DateString(required=True)
    status = required_str()
    items = ItemList(required=True)
    grand_total = fields.Float(required=True)
    memo = fields.String(allow_none=True)
    type = fields.String(allow_none=True)
    tax_details = fields.Raw(allow_none=True)
    attachment_url = fields.List(fields.String(), allow_none=True)


class OrderDeliverySchema(BaseSchema):
    customer_name = required_str()
    customer_phone = required_str()
    customer_email = required_str()
    shipping_address = required_str()
    order_date = DateString(required=True)
    delivery_date = DateString(required=True)
    shipping_method = required_str()
    payment_method = required_str()
    status = required_str()
    items = ItemList(required=True)
    tracking_number = fields.String(allow_none=True)
    notes = fields.String(allow_none=True)
    grand_total = fields.Float(allow_none=True)
    memo = fields.String(allow_none=True)
    type = fields.String(allow_none=True)
    tax_details = fields.Raw(allow_none=True)
    attachment_url = fields.List(fields.String(), allow_none=True)


class QuotationSchema(BaseSchema):
    customer_name = required_str()
    quotation_date = DateString(required=True)
    valid_until = DateString(required=True)
    status = required_str()
    terms = required_str()
    items = ItemList(required=True)
    total = fields.Float(required=True)
    attachment_url = fields.List(fields.String(), allow_none=True)


class SalesOfferSchema(BaseSchema):
    type = required_str()
    date = DateString(required=True)
    expiry_date = DateString(required=True)
    due_date = DateString(required=True)
    status = required_str()
    items = ItemList(required=True)
    grand_total = fields.Float(required=True)
    discount_terms = fields.String(allow_none=True)
    tags = Tags()
    memo = fields.String(allow_none=True)
    attachment_url = fields.List(fields.String(), allow_none=True)


# --- chart of accounts and journals ---

class COASchema(BaseSchema):
    missing_message = 'Name and level are required'

    name = required_str()
    level = fields.Integer(required=True, validate=validate.Range(min=1, max=3, error='Level must be 1, 2 or 3'))
    code = fields.String(allow_none=True)
    parent_code = fields.String(allow_none=True)
    category = fields.Integer(allow_none=True, validate=validate.Range(min=1, max=8, error='Category must be between 1 and 8'))
    detail_type = fields.String(allow_none=True)
    description = fields.String(allow_none=True)


class COAEditSchema(BaseSchema):
    name = fields.String(validate=validate.Length(min=1, max=200))
    detail_type = fields.String(allow_none=True)
    description = fields.String(allow_none=True)


class JournalLineSchema(BaseSchema):
    # amounts and codes are checked line by line when the journal is posted
    account_code = fields.String(allow_none=True)
    description = fields.String(allow_none=True)
    debit = fields.Raw(allow_none=True)
    credit = fields.Raw(allow_none=True)


class JournalSchema(BaseSchema):
    missing_message = 'Date and journal lines are required'

    date = DateString(required=True)
    description = fields.String(allow_none=True)
    reference = fields.String(allow_none=True)
    lines = fields.List(fields.Nested(JournalLineSchema), required=True,
                        validate=validate.Length(min=1, error=MISSING))
