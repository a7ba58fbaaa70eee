"""
Bearer-token authentication and role-based authorization.

Identity is delegated to Supabase Auth: the token from the Authorization
header is handed to ``auth.get_user`` and the role is read from the
caller's ``profiles`` row.
"""

import logging

from flask import request
from postgrest.exceptions import APIError
from supabase import AuthError

from prabaraja.errors import ApiError
from supabase_client import get_supabase

logger = logging.getLogger(__name__)

ACCESS_DENIED = 'Access denied. You are not authorized to perform this action.'


def get_bearer_token():
    """Return the bearer token from the request or raise a 401."""
    header = request.headers.get('Authorization')
    if not header:
        raise ApiError('No authorization header provided', 401)
    parts = header.split(' ', 1)
    if len(parts) == 2 and parts[0].lower() == 'bearer':
        token = parts[1].strip()
    else:
        token = header.strip()
    if not token:
        raise ApiError('No authorization header provided', 401)
    return token


def get_current_user(token):
    """Resolve the Supabase user for ``token``; invalid tokens are a 401."""
    try:
        response = get_supabase().auth.get_user(token)
    except AuthError as e:
        logger.warning(f'Token rejected by auth provider: {e}')
        raise ApiError('Invalid or expired token', 401)
    user = getattr(response, 'user', None) if response else None
    if not user:
        raise ApiError('Invalid or expired token', 401)
    return user


def get_user_role(client, user_id):
    """Read ``profiles.role`` for the user, lowercased. None when missing."""
    try:
        rows = (client.table('profiles')
                .select('role')
                .eq('id', user_id)
                .limit(1)
                .execute()).data
    except APIError as e:
        logger.error(f'Failed to fetch role for user {user_id}: {e.message}')
        return None
    if not rows or not rows[0].get('role'):
        return None
    return str(rows[0]['role']).strip().lower()


def authorize(client, user_id, allowed_roles):
    """
    Check the caller's stored role against ``allowed_roles``.

    Returns the role on success, raises a 403 otherwise.
    """
    role = get_user_role(client, user_id)
    if role is None:
        raise ApiError('Unable to fetch user role or user not found', 403)
    allowed = {r.lower() for r in allowed_roles}
    if role not in allowed:
        logger.info(f'User {user_id} with role {role} denied; requires one of {sorted(allowed)}')
        raise ApiError(ACCESS_DENIED, 403)
    return role
