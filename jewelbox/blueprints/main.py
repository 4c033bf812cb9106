"""Main blueprint with health check endpoints."""
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from jewelbox.database import get_session

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        503: Unhealthy (DB error)
    """
    try:
        row = get_session().execute(text("SELECT 1 as health_check")).fetchone()
        if row and row[0] == 1:
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
            }), 200
        return jsonify({
            'status': 'unhealthy',
            'database': 'error',
            'message': 'Unexpected query result'
        }), 503

    except SQLAlchemyError as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
        }), 503


@main_bp.route('/health/cache')
def health_cache():
    """
    Cache health check endpoint.

    Never returns an error status: the app keeps working without Redis, so
    an unreachable cache is reported as "degraded".
    """
    from jewelbox.services.cache_service import get_cache
    cache = get_cache()

    if not cache.is_available():
        return jsonify({
            'status': 'degraded',
            'cache': 'unavailable',
            'message': 'Cache disabled or Redis unavailable (app continues without cache)'
        }), 200

    cache.set('system', 'health_check', {'test': 'ok'}, ttl=10)
    result = cache.get('system', 'health_check')
    if result and result.get('test') == 'ok':
        return jsonify({'status': 'ok', 'cache': 'connected'}), 200
    return jsonify({
        'status': 'degraded',
        'cache': 'error',
        'message': 'Redis connected but operations failing'
    }), 200
