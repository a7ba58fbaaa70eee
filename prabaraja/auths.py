"""
Account actions backed by Supabase Auth: register, login, logout, e-mail
confirmation, password reset and display-name changes.
"""

import logging
import os

from postgrest.exceptions import APIError
from supabase import AuthError

from prabaraja.actions import ActionRouter, success
from prabaraja.auth import get_bearer_token
from prabaraja.errors import ApiError, ConflictError, NotFoundError, db_error
from supabase_client import get_supabase, get_supabase_admin, get_supabase_with_token
from validators import (RegisterSchema, LoginSchema, EmailSchema, ResetPasswordSchema,
                        UpdateNameSchema, load_payload)

logger = logging.getLogger(__name__)

router = ActionRouter('auths')
auths_blueprint = router.blueprint

USER_LOOKUP_PAGE_SIZE = 1000


def _redirect_url(name):
    return os.environ.get(name) or None


def _dump(obj):
    """Pydantic models from supabase_auth become plain JSON-able dicts."""
    if obj is None:
        return None
    if hasattr(obj, 'model_dump'):
        return obj.model_dump(mode='json')
    return obj


def _auth_failure(e, prefix=''):
    message = getattr(e, 'message', None) or str(e)
    logger.error(f'Auth provider error: {message}')
    return ApiError(f'{prefix}{message}', 500)


def find_user_by_email(email):
    """Look the e-mail up among registered users with the admin API."""
    try:
        users = get_supabase_admin().auth.admin.list_users(page=1, per_page=USER_LOOKUP_PAGE_SIZE)
    except AuthError as e:
        raise _auth_failure(e)
    target = email.lower()
    for user in users or []:
        if (getattr(user, 'email', None) or '').lower() == target:
            return user
    return None


@router.action('register', 'POST', auth=False)
def register(ctx):
    """Sign up a new account."""
    data = load_payload(RegisterSchema(), ctx.payload)
    if find_user_by_email(data['email']) is not None:
        raise ConflictError('Account already has been registered.')

    options = {'data': {'name': data['name']}}
    if _redirect_url('EMAIL_REDIRECT_URL'):
        options['email_redirect_to'] = _redirect_url('EMAIL_REDIRECT_URL')
    try:
        response = get_supabase().auth.sign_up({
            'email': data['email'],
            'password': data['password'],
            'options': options,
        })
    except AuthError as e:
        raise _auth_failure(e)

    user = getattr(response, 'user', None)
    if user is None:
        raise ApiError('Sign up failed: user not returned.', 500)

    session = getattr(response, 'session', None)
    if session is None or not getattr(session, 'access_token', None):
        logger.info(f'User {user.id} signed up, awaiting e-mail confirmation')
        return success(message='Sign up successful. Please confirm your email before continuing.',
                       userId=user.id)

    db = get_supabase_with_token(session.access_token)
    try:
        db.table('profiles').update({'name': data['name']}).eq('id', user.id).execute()
    except APIError as e:
        logger.error(f'Failed to store profile name for {user.id}: {e.message}')
        raise db_error('update profile', e)

    logger.info(f'User {user.id} registered')
    return success(message='Registration successful', user=_dump(user))


@router.action('login', 'POST', auth=False)
def login(ctx):
    """Sign in with email and password."""
    data = load_payload(LoginSchema(), ctx.payload)
    if find_user_by_email(data['email']) is None:
        raise NotFoundError('Account not registered.')

    try:
        response = get_supabase().auth.sign_in_with_password({
            'email': data['email'],
            'password': data['password'],
        })
    except AuthError as e:
        logger.info(f'Sign-in rejected for {data["email"]}: {e}')
        raise ApiError('Invalid password or account is not confirmed yet.', 401)

    return success(message='Login successful',
                   user=_dump(response.user), session=_dump(response.session))


@router.action('logout', 'POST', auth=False)
def logout(ctx):
    """Sign out, revoking the caller's session when a token is sent."""
    # Sessions are stateless on this side; revoke the caller's refresh
    # tokens when a bearer token is supplied.
    try:
        token = get_bearer_token()
    except ApiError:
        token = None
    if token:
        try:
            get_supabase_admin().auth.admin.sign_out(token)
        except AuthError as e:
            raise _auth_failure(e, 'Failed to logout: ')
    return success(message='Logout successful')


@router.action('resendConfirm', 'POST', auth=False)
def resend_confirm(ctx):
    """Resend the sign-up confirmation email."""
    data = load_payload(EmailSchema(), ctx.payload)
    params = {'type': 'signup', 'email': data['email']}
    if _redirect_url('EMAIL_REDIRECT_URL'):
        params['options'] = {'email_redirect_to': _redirect_url('EMAIL_REDIRECT_URL')}
    try:
        get_supabase().auth.resend(params)
    except AuthError as e:
        raise _auth_failure(e, 'Failed to resend confirmation email: ')
    return success(message='Confirmation email sent')


@router.action('resetPass', 'POST', auth=False)
def reset_password(ctx):
    """Set a new password using the tokens from a reset link."""
    data = load_payload(ResetPasswordSchema(), ctx.payload)
    client = get_supabase_with_token(data['access_token'])
    try:
        client.auth.set_session(data['access_token'], data['refresh_token'])
    except AuthError as e:
        raise ApiError(f'Failed to establish session: {getattr(e, "message", e)}', 401)
    try:
        client.auth.update_user({'password': data['new_password']})
    except AuthError as e:
        raise _auth_failure(e, 'Failed to update password: ')
    return success(message='Password updated successfully')


@router.action('forgotPass', 'POST', auth=False)
def forgot_password(ctx):
    """Send a password reset email."""
    data = load_payload(EmailSchema(), ctx.payload)
    options = {}
    if _redirect_url('PASSWORD_RESET_REDIRECT_URL'):
        options['redirect_to'] = _redirect_url('PASSWORD_RESET_REDIRECT_URL')
    try:
        get_supabase().auth.reset_password_for_email(data['email'], options)
    except AuthError as e:
        raise _auth_failure(e)
    return success(message='Reset password email sent. Please check your inbox.')


@router.action('updateName', ['PUT', 'PATCH'])
def update_name(ctx):
    """Change the caller's display name."""
    data = load_payload(UpdateNameSchema(), ctx.payload)
    try:
        ctx.db.table('profiles').update({'name': data['newName']}).eq('id', ctx.user_id).execute()
    except APIError as e:
        logger.error(f'Failed to update name for {ctx.user_id}: {e.message}')
        raise db_error('update name', e)
    return success(message='Name updated successfully')
