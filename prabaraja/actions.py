"""
Action dispatch for the ``/api/<handler>`` endpoints.

Each handler module owns one blueprint with a single URL. The operation is
selected by an ``action`` name, read from the query string on GET and from
the JSON body otherwise. Every action declares the HTTP methods it accepts,
whether it needs a bearer token, and which roles may call it.
"""

import logging

from flask import Blueprint, request, jsonify

from prabaraja.auth import get_bearer_token, get_current_user, authorize
from prabaraja.errors import ApiError, error_response
from supabase_client import get_supabase_with_token

logger = logging.getLogger(__name__)

_ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']


class ActionContext:
    """What an action function gets to work with."""

    def __init__(self, payload, user=None, db=None, token=None, role=None):
        self.payload = payload
        self.user = user
        self.db = db
        self.token = token
        self.role = role

    @property
    def user_id(self):
        return self.user.id if self.user is not None else None


class Action:
    def __init__(self, name, func, methods, auth=True, roles=None):
        self.name = name
        self.func = func
        self.methods = [m.upper() for m in methods]
        self.auth = auth
        self.roles = roles


class ActionRouter:
    """
    Blueprint wrapper mapping action names to functions.

    ``unknown_status``/``unknown_message`` control the reply for actions the
    handler does not know; some handlers answer 404, others 400.
    """

    def __init__(self, name, unknown_status=404, unknown_message='Endpoint not found'):
        self.name = name
        self.unknown_status = unknown_status
        self.unknown_message = unknown_message
        self.actions = {}
        self.blueprint = Blueprint(name, __name__, url_prefix=f'/api/{name}')
        self.blueprint.add_url_rule('', endpoint='dispatch', view_func=self.dispatch,
                                    methods=_ALL_METHODS, strict_slashes=False)

    def action(self, name, methods, auth=True, roles=None, aliases=()):
        """Register the decorated function under ``name`` (and any aliases)."""
        if isinstance(methods, str):
            methods = [methods]

        def decorator(func):
            for action_name in (name,) + tuple(aliases):
                self.actions[action_name] = Action(action_name, func, methods, auth, roles)
            return func
        return decorator

    def _read_payload(self):
        if request.method == 'GET':
            return request.args.to_dict()
        raw = request.get_data(cache=True)
        if not raw or not raw.strip():
            payload = {}
        else:
            payload = request.get_json(force=True, silent=True)
            if not isinstance(payload, dict):
                raise ApiError('Invalid JSON body', 400)
        if 'action' not in payload and request.args.get('action'):
            payload['action'] = request.args.get('action')
        return payload

    def dispatch(self):
        if request.method == 'OPTIONS':
            return '', 200

        payload = self._read_payload()
        action_name = payload.get('action')
        action = self.actions.get(action_name) if isinstance(action_name, str) else None
        if action is None:
            logger.info(f'{self.name}: unknown action {action_name!r} ({request.method})')
            return error_response(self.unknown_message, self.unknown_status)

        if request.method not in action.methods:
            return error_response(
                f'Method not allowed. Use {" or ".join(action.methods)} for {action.name}.', 405)

        ctx = ActionContext(payload)
        if action.auth:
            ctx.token = get_bearer_token()
            ctx.user = get_current_user(ctx.token)
            ctx.db = get_supabase_with_token(ctx.token)
            if action.roles:
                ctx.role = authorize(ctx.db, ctx.user.id, action.roles)

        logger.debug(f'{self.name}.{action.name} by {ctx.user_id or "anonymous"}')
        return action.func(ctx)


def success(data=None, message=None, status=200, **extra):
    """Build the success envelope ``{"error": false, ...}``."""
    body = {'error': False}
    if message is not None:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status
