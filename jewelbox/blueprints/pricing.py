"""
Pricing blueprint: rate-change preview, sync and history.

GET /preview is a dry run and never writes. POST /sync commits a new variant
rate and re-prices every product that uses it.
"""
from flask import Blueprint, request, jsonify, current_app, g

from jewelbox.blueprints.metrics import record_price_sync
from jewelbox.database import get_session
from jewelbox.decorators.admin_security import admin_required
from jewelbox.services import price_sync_service
from jewelbox.utils.formatters import decimal_to_json

pricing_bp = Blueprint('pricing', __name__, url_prefix='/api/pricing')

PRICE_FIELDS = ('old_price', 'new_price', 'old_total_price', 'new_total_price', 'price_difference')


def _jsonable(row: dict) -> dict:
    """Copy of a service dict with Decimal prices as JSON numbers."""
    return {key: decimal_to_json(value) if key in PRICE_FIELDS else value for key, value in row.items()}


@pricing_bp.route('/preview', methods=['GET'])
@admin_required
def preview():
    """Impact of changing one variant's rate, without saving anything."""
    report = price_sync_service.preview_price_change(
        get_session(),
        request.args.get('entity_type'),
        request.args.get('entity_id'),
        request.args.get('variant_id'),
        request.args.get('new_price'),
    )
    data = _jsonable(report)
    data['products'] = [_jsonable(p) for p in report['products']]
    return jsonify({'status': 'success', 'preview': data})


@pricing_bp.route('/sync', methods=['POST'])
@admin_required
def sync():
    """Commit a variant rate change and re-price affected products."""
    data = request.get_json(silent=True) or {}
    result = price_sync_service.sync_price_change(
        get_session(),
        data.get('entity_type'),
        data.get('entity_id'),
        data.get('variant_id'),
        data.get('new_price'),
        changed_by=g.admin_user.id,
    )
    record_price_sync(result['entity_type'], result['synced_products'])
    return jsonify({
        'status': 'success',
        'message': f"Updated {result['synced_products']} products",
        'result': _jsonable(result),
    })


@pricing_bp.route('/history', methods=['GET'])
@admin_required
def history():
    limit = request.args.get('limit') or current_app.config['PRICE_HISTORY_LIMIT']
    rows = price_sync_service.get_price_history(get_session(), limit=limit)
    return jsonify({'status': 'success', 'history': [_jsonable(row) for row in rows]})
