"""
Supabase client factories.

Three flavours of client are handed out:
- anonymous (public key) for sign-up, sign-in and the other auth flows
- admin (service role key) for listing users
- per-request, carrying the caller's bearer token so row-level security
  applies to every query the handler issues
"""

import logging
import os

from supabase import create_client, ClientOptions

logger = logging.getLogger(__name__)

_anon_client = None
_admin_client = None


class SupabaseConfigError(RuntimeError):
    """Raised when the Supabase URL or keys are not configured."""


def _env(*names):
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def get_supabase_url():
    return _env('SUPABASE_URL', 'NEXT_PUBLIC_SUPABASE_URL')


def get_anon_key():
    return _env('SUPABASE_ANON_KEY', 'NEXT_PUBLIC_SUPABASE_ANON_KEY', 'SUPABASE_KEY')


def get_service_role_key():
    return _env('SUPABASE_SERVICE_ROLE_KEY')


def _require(url, key, key_name):
    if not url or not key:
        logger.error(f'Supabase is not configured: SUPABASE_URL and {key_name} are required')
        raise SupabaseConfigError(f'SUPABASE_URL and {key_name} must be set')


def get_supabase():
    """Return the shared anonymous client, creating it on first use."""
    global _anon_client
    if _anon_client is None:
        url, key = get_supabase_url(), get_anon_key()
        _require(url, key, 'SUPABASE_ANON_KEY')
        _anon_client = create_client(url, key)
    return _anon_client


def get_supabase_admin():
    """Return the shared service-role client used for admin auth calls."""
    global _admin_client
    if _admin_client is None:
        url, key = get_supabase_url(), get_service_role_key()
        _require(url, key, 'SUPABASE_SERVICE_ROLE_KEY')
        _admin_client = create_client(url, key)
    return _admin_client


def get_supabase_with_token(token):
    """
    Build a client whose database and storage calls are made as the user
    owning ``token``. A fresh client is created per request; clients are
    never shared between callers.
    """
    url, key = get_supabase_url(), get_anon_key()
    _require(url, key, 'SUPABASE_ANON_KEY')
    client = create_client(
        url, key,
        options=ClientOptions(headers={'Authorization': f'Bearer {token}'}),
    )
    client.postgrest.auth(token)
    return client
