"""
Tests for the contacts and products handlers.
"""

CONTACT = {
    'category': 'Customer',
    'name': 'PT Sinar',
    'email': 'billing@sinar.co.id',
    'phone': '0812345678',
    'address': 'Jl. Merdeka 1',
}

PRODUCT = {
    'category': 'Electronics',
    'name': 'Router',
    'total_stock': 12,
    'min_stock': 2,
    'unit': 'pcs',
    'buy_price': 450000,
    'status': 'In Stock',
}


class TestContacts:
    """Tests for customers, vendors and employees."""

    def test_add(self, call):
        resp = call('contacts', 'addContact', **CONTACT)
        assert resp.status_code == 201
        assert resp.get_json()['data']['number'] == 101

    def test_invalid_email(self, call):
        resp = call('contacts', 'addContact', **{**CONTACT, 'email': 'billing'})
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Email address "billing" is invalid.'

    def test_lists_by_category(self, call):
        call('contacts', 'addContact', **CONTACT)
        call('contacts', 'addContact', **{**CONTACT, 'category': 'Vendor', 'name': 'CV Baja'})
        call('contacts', 'addContact', **{**CONTACT, 'category': 'Employee', 'name': 'Rina'})
        assert [c['name'] for c in call('contacts', 'getCustomer', method='GET').get_json()['data']] == ['PT Sinar']
        assert [c['name'] for c in call('contacts', 'getVendor', method='GET').get_json()['data']] == ['CV Baja']
        assert [c['name'] for c in call('contacts', 'getEmployee', method='GET').get_json()['data']] == ['Rina']

    def test_contact_expenses(self, call, fake_db):
        fake_db.seed('invoices',
                     {'user_id': 'user-1', 'grand_total': 100},
                     {'user_id': 'user-1', 'grand_total': 25.5},
                     {'user_id': 'someone-else', 'grand_total': 999})
        data = call('contacts', 'getContactExpenses', method='GET').get_json()['data']
        assert data == {'user-1': 125.5}

    def test_unknown_action(self, call):
        resp = call('contacts', 'getSuppliers', method='GET')
        assert resp.status_code == 400
        assert resp.get_json()['message'] == 'Invalid action'


class TestProducts:
    """Tests for products and warehouses."""

    def test_add_product(self, call):
        resp = call('products', 'addProduct', **PRODUCT)
        assert resp.status_code == 201
        assert resp.get_json()['data']['number'] == 1001

    def test_add_warehouse(self, call):
        resp = call('products', 'addWarehouse', name='Main', location='Bekasi', total_stock=300)
        assert resp.status_code == 201
        assert resp.get_json()['message'] == 'Warehouse added successfully'
        assert resp.get_json()['data']['number'] == 1001

    def test_delete_product(self, call, fake_db):
        product = call('products', 'addProduct', **PRODUCT).get_json()['data']
        resp = call('products', 'deleteProduct', method='DELETE', id=product['id'])
        assert resp.status_code == 200
        assert fake_db.rows('products') == []

    def test_delete_unknown_warehouse(self, call):
        resp = call('products', 'deleteWarehouse', method='DELETE', id=3)
        assert resp.status_code == 404
        assert resp.get_json()['message'] == 'Warehouse not found'

    def test_delete_requires_id(self, call):
        resp = call('products', 'deleteProduct', method='DELETE')
        assert resp.get_json()['message'] == 'Product ID is required'

    def test_category_lists(self, call):
        call('products', 'addProduct', **PRODUCT)
        call('products', 'addProduct', **{**PRODUCT, 'category': 'Office', 'name': 'Stapler'})
        call('products', 'addProduct', **{**PRODUCT, 'category': 'Furniture', 'name': 'Desk'})
        assert [p['name'] for p in call('products', 'getElectronics', method='GET').get_json()['data']] == ['Router']
        assert [p['name'] for p in call('products', 'getOffice', method='GET').get_json()['data']] == ['Stapler']
        assert [p['name'] for p in call('products', 'getFurniture', method='GET').get_json()['data']] == ['Desk']
        assert len(call('products', 'getProducts', method='GET').get_json()['data']) == 3

    def test_warehouses_list(self, call):
        call('products', 'addWarehouse', name='Main', location='Bekasi', total_stock=300)
        data = call('products', 'getWarehouses', method='GET').get_json()['data']
        assert [w['name'] for w in data] == ['Main']
