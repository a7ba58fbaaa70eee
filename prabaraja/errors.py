"""
API error type and the JSON failure envelope.

Handlers raise ApiError anywhere below the dispatch layer; the app-level
error handlers in app.py turn it into ``{"error": true, "message": ...}``
with the matching HTTP status.
"""

from flask import jsonify


class ApiError(Exception):
    """An error with a client-facing message and an HTTP status."""

    def __init__(self, message, status=400, details=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def to_response(self):
        body = {'error': True, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body


class NotFoundError(ApiError):
    def __init__(self, message='Not found', details=None):
        super().__init__(message, 404, details)


class ConflictError(ApiError):
    def __init__(self, message, details=None):
        super().__init__(message, 409, details)


def error_response(message, status=400, details=None):
    """Build a failure envelope tuple without raising."""
    return jsonify(ApiError(message, status, details).to_response()), status


def db_error(action_label, exc):
    """
    Wrap a backend query failure the way every handler reports it:
    500 with ``Failed to <action>: <backend message>``.
    """
    message = getattr(exc, 'message', None) or str(exc)
    return ApiError(f'Failed to {action_label}: {message}', 500)
