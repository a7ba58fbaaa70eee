import logging
from flask import jsonify, request
from postgrest.exceptions import APIError
from werkzeug.exceptions import HTTPException
from main import app
from prabaraja.errors import ApiError
from supabase_client import SupabaseConfigError

logger = logging.getLogger(__name__)


@app.route('/')
@app.route('/api/health')
def health():
    """Liveness probe for the deployment."""
    return jsonify({'error': False, 'message': 'Prabaraja API is running'})


@app.errorhandler(ApiError)
def handle_api_error(e):
    if e.status >= 500:
        logger.error(f'{request.method} {request.path}: {e.message}')
    else:
        logger.info(f'{request.method} {request.path} -> {e.status}: {e.message}')
    return jsonify(e.to_response()), e.status


@app.errorhandler(APIError)
def handle_database_error(e):
    logger.error(f'Database error on {request.path}: {e.message}')
    return jsonify({'error': True, 'message': e.message or 'Database error'}), 500


@app.errorhandler(SupabaseConfigError)
def handle_config_error(e):
    logger.error(f'Configuration error: {str(e)}')
    return jsonify({'error': True, 'message': 'Server is not configured'}), 500


@app.errorhandler(404)
def handle_not_found(e):
    return jsonify({'error': True, 'message': 'Endpoint not found'}), 404


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'error': True, 'message': e.description}), e.code
    logger.exception(f'Unhandled error on {request.method} {request.path}')
    return jsonify({'error': True, 'message': 'Unexpected server error'}), 500
