"""
Test fixtures for the Prabaraja API.
"""

import os
from unittest.mock import patch

import pytest

# Set test environment before importing app so no real project is contacted
os.environ.setdefault('SUPABASE_URL', 'http://localhost:54321')
os.environ.setdefault('SUPABASE_ANON_KEY', 'test-anon-key')
os.environ.setdefault('SUPABASE_SERVICE_ROLE_KEY', 'test-service-key')
os.environ.pop('EMAIL_REDIRECT_URL', None)
os.environ.pop('PASSWORD_RESET_REDIRECT_URL', None)

from fake_supabase import FakeSupabase

TEST_TOKEN = 'valid-token'
TEST_USER_ID = 'user-1'


@pytest.fixture
def app():
    """Create a test Flask application."""
    from main import app as flask_app
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def fake_db():
    """
    In-memory Supabase wired in place of every client factory, with one
    registered user whose profile carries the admin role.
    """
    db = FakeSupabase()
    db.auth.add_user(TEST_TOKEN, user_id=TEST_USER_ID)
    db.seed('profiles', {'id': TEST_USER_ID, 'name': 'Owner', 'role': 'admin'})
    with patch('prabaraja.auth.get_supabase', return_value=db), \
            patch('prabaraja.actions.get_supabase_with_token', return_value=db), \
            patch('prabaraja.auths.get_supabase', return_value=db), \
            patch('prabaraja.auths.get_supabase_admin', return_value=db), \
            patch('prabaraja.auths.get_supabase_with_token', return_value=db):
        yield db


@pytest.fixture
def auth_headers(fake_db):
    """Bearer header for the registered test user."""
    return {'Authorization': f'Bearer {TEST_TOKEN}'}


@pytest.fixture
def set_role(fake_db):
    """Change the stored role of the test user."""
    def _set(role):
        fake_db.rows('profiles')[0]['role'] = role
    return _set


@pytest.fixture
def call(client, auth_headers):
    """Send an action to ``/api/<handler>``: query string on GET, JSON body otherwise."""
    def _call(handler, action, method='POST', headers=None, **payload):
        url = f'/api/{handler}'
        headers = auth_headers if headers is None else headers
        if method == 'GET':
            return client.get(url, query_string={'action': action, **payload}, headers=headers)
        return client.open(url, method=method, json={'action': action, **payload}, headers=headers)
    return _call
